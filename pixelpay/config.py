"""
PixelPay Configuration Management
Uses pydantic-settings for type-safe environment variable loading
"""

import logging
from typing import Literal

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Monad testnet defaults (CAIP-2 network identifier)
DEFAULT_NETWORK = "eip155:10143"
DEFAULT_RPC_URL = "https://testnet-rpc.monad.xyz"
DEFAULT_USDC_ADDRESS = "0x754704Bc059F8C67012fEd69BC8a327a5aafb603"


def _normalize_private_key(v: str) -> str:
    if v and not v.startswith("0x"):
        return f"0x{v}"
    return v


class SellerConfig(BaseSettings):
    """Configuration for the Seller Agent (resource server)"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Configuration
    seller_host: str = Field(default="0.0.0.0", description="Host to bind the server to")
    seller_port: int = Field(default=4001, description="Port to bind the server to")
    server_url: str = Field(default="", description="Public base URL used in NFT metadata links")

    # Wallet Configuration
    seller_private_key: str = Field(default="", description="Operator key for minting and rewards")
    pay_to_address: str = Field(default="", description="Address that receives USDC payments")

    # Network Configuration
    network: str = Field(default=DEFAULT_NETWORK, description="CAIP-2 network identifier")
    rpc_url: str = Field(default=DEFAULT_RPC_URL)
    usdc_contract_address: str = Field(default=DEFAULT_USDC_ADDRESS)
    usdc_decimals: int = Field(default=6)

    # x402 Protocol
    facilitator_url: str = Field(default="", description="Remote facilitator; empty uses local verification")
    testnet_mode: bool = Field(default=True, description="Simulate local settlement instead of submitting")
    price_usd: str = Field(default="0.01", description="Price per protected request in USD")
    payment_timeout_seconds: int = Field(default=300, description="maxTimeoutSeconds advertised to buyers")

    # Timeouts
    http_timeout_seconds: float = Field(default=30.0)
    chain_timeout_seconds: float = Field(default=120.0)

    # Resource generation
    openai_api_key: str = Field(default="")
    seed_images_on_startup: int = Field(default=3, description="Placeholder images created at startup")

    # Persistence
    supabase_url: str = Field(default="")
    supabase_key: str = Field(default="")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    @field_validator("seller_private_key")
    @classmethod
    def validate_private_key(cls, v):
        return _normalize_private_key(v)

    @property
    def public_url(self) -> str:
        return self.server_url or f"http://localhost:{self.seller_port}"


class BuyerConfig(BaseSettings):
    """Configuration for the Buyer Agent"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Configuration
    buyer_host: str = Field(default="0.0.0.0")
    buyer_port: int = Field(default=4002)

    # Wallet Configuration
    buyer_private_key: str = Field(default="", description="Overrides any key stored in settings")

    # Seller Connection
    seller_url: str = Field(default="http://localhost:4001", description="URL of the seller agent")

    # Network Configuration
    network: str = Field(default=DEFAULT_NETWORK)

    # Scheduling
    buyer_interval_seconds: int = Field(default=300, description="Seconds between pipeline runs")
    buyer_initial_delay_seconds: int = Field(default=120, description="Delay before the first run")
    scheduler_enabled: bool = Field(default=True)

    # Timeouts
    http_timeout_seconds: float = Field(default=30.0)

    # Evaluation
    anthropic_api_key: str = Field(default="", description="Enables ranking-based selection")
    anthropic_model: str = Field(default="claude-haiku-4-5-20251001")

    # Storage
    storage_dir: str = Field(default="storage/purchases", description="Where purchased artifacts are saved")

    # Persistence
    supabase_url: str = Field(default="")
    supabase_key: str = Field(default="")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    @field_validator("buyer_private_key")
    @classmethod
    def validate_private_key(cls, v):
        return _normalize_private_key(v)


_seller_config: SellerConfig | None = None
_buyer_config: BuyerConfig | None = None


def get_seller_config() -> SellerConfig:
    """Get or create seller configuration"""
    global _seller_config
    if _seller_config is None:
        _seller_config = SellerConfig()
    return _seller_config


def get_buyer_config() -> BuyerConfig:
    """Get or create buyer configuration"""
    global _buyer_config
    if _buyer_config is None:
        _buyer_config = BuyerConfig()
    return _buyer_config


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure structlog rendering for a service process"""
    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
    )
