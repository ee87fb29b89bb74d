"""
x402-compliant payment models for PixelPay
Minimal models following the x402 protocol specification (v2 field names)
"""

from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator


X402_VERSION = 2


class AcceptOption(BaseModel):
    """Single payment option in x402 format"""
    model_config = ConfigDict(populate_by_name=True)

    scheme: str = Field(default="exact", description="Payment scheme")
    network: str = Field(description="CAIP-2 network identifier, e.g. eip155:10143")
    amount: str = Field(description="Amount in the asset's smallest unit (USDC has 6 decimals)")
    asset: str = Field(description="Token contract address")
    pay_to: str = Field(alias="payTo", description="Seller wallet address")
    max_timeout_seconds: int = Field(default=300, alias="maxTimeoutSeconds")
    extra: Optional[Dict[str, Any]] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        if not (v.isascii() and v.isdigit()):
            raise ValueError("amount must be a non-negative integer string")
        return v


class ResourceInfo(BaseModel):
    """What the payment unlocks"""
    model_config = ConfigDict(populate_by_name=True)

    url: str
    description: str = ""
    mime_type: str = Field(default="application/json", alias="mimeType")


class PaymentRequirement(BaseModel):
    """x402 Payment Required descriptor (HTTP 402)"""
    model_config = ConfigDict(populate_by_name=True)

    x402_version: int = Field(default=X402_VERSION, alias="x402Version")
    error: Optional[str] = None
    resource: Optional[ResourceInfo] = None
    accepts: List[AcceptOption] = Field(min_length=1)


class Authorization(BaseModel):
    """EIP-3009 TransferWithAuthorization message"""
    model_config = ConfigDict(populate_by_name=True)

    from_address: str = Field(alias="from")
    to: str
    value: str
    valid_after: int = Field(default=0, alias="validAfter")
    valid_before: int = Field(alias="validBefore")
    nonce: str


class PaymentPayload(BaseModel):
    """x402 payment proof submitted by the buyer"""
    model_config = ConfigDict(populate_by_name=True)

    x402_version: int = Field(default=X402_VERSION, alias="x402Version")
    accepted: Optional[AcceptOption] = None
    payload: Dict[str, Any] = Field(description="Contains signature and authorization")

    @property
    def signature(self) -> str:
        return str(self.payload.get("signature") or "")

    def authorization(self) -> Authorization:
        """Parse the scheme payload's authorization block"""
        return Authorization.model_validate(self.payload.get("authorization") or {})

    @property
    def payer(self) -> Optional[str]:
        auth = self.payload.get("authorization") or {}
        return auth.get("from") or self.payload.get("from")

    @property
    def expires_at(self) -> Optional[int]:
        """The authorization's validBefore, if it is readable"""
        auth = self.payload.get("authorization") or {}
        try:
            return int(auth.get("validBefore"))
        except (TypeError, ValueError):
            return None

    @property
    def proof_id(self) -> str:
        """Identity used to enforce single use: payer + authorization nonce"""
        auth = self.payload.get("authorization") or {}
        return f"{str(auth.get('from', '')).lower()}:{str(auth.get('nonce', '')).lower()}"


class VerificationResult(BaseModel):
    """Outcome of verifying a payment proof"""
    is_valid: bool
    invalid_reason: Optional[str] = None
    payer: Optional[str] = None


class SettlementResult(BaseModel):
    """Payment confirmation returned after settlement"""
    success: bool
    transaction: Optional[str] = None
    network: Optional[str] = None
    payer: Optional[str] = None
    amount: Optional[str] = None
    error_reason: Optional[str] = None
    settled_at: datetime = Field(default_factory=datetime.utcnow)
