"""
PixelPay Seller Agent
FastAPI resource server selling AI-generated images behind x402
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import structlog
import uvicorn

from pixelpay.chain.client import ChainClient
from pixelpay.chain.contracts import ProvenanceMinter, RewardToken
from pixelpay.config import SellerConfig, configure_logging, get_seller_config
from pixelpay.database import create_database
from pixelpay.database.base import CatalogStore
from pixelpay.database.settings import SettingsStore
from pixelpay.models import LogType, Resource
from pixelpay.payments.authority import FacilitatorAuthority, LocalAuthority, PaymentAuthority
from pixelpay.seller.dependencies import (
    BUY_ROUTE,
    GENERATE_ROUTE,
    PaymentRequired,
    SellerServices,
    limiter,
    payment_required_handler,
)
from pixelpay.seller.generator import ImageGenerator, PlaceholderGenerator, create_generator, random_prompt
from pixelpay.seller.guard import PaymentGuard, RoutePolicy
from pixelpay.seller.routers import gallery, generate, status
from pixelpay.seller.side_effects import SaleSideEffects

logger = structlog.get_logger()

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def build_services(
    config: SellerConfig,
    db: Optional[CatalogStore] = None,
    authority: Optional[PaymentAuthority] = None,
    generator: Optional[ImageGenerator] = None,
    chain: Optional[ChainClient] = None,
) -> SellerServices:
    db = db or create_database(config)
    settings = SettingsStore(db)

    if chain is None:
        chain = ChainClient.from_private_key(
            config.rpc_url,
            config.seller_private_key,
            timeout=config.chain_timeout_seconds,
        )

    if authority is None:
        if config.facilitator_url:
            authority = FacilitatorAuthority(config.facilitator_url, timeout=config.http_timeout_seconds)
        else:
            authority = LocalAuthority(chain, testnet_mode=config.testnet_mode)

    pay_to = config.pay_to_address or chain.address or ZERO_ADDRESS
    if pay_to == ZERO_ADDRESS:
        logger.warning("pay_to_not_configured", message="Payments will go to the zero address")

    guard = PaymentGuard(
        authority=authority,
        pay_to=pay_to,
        network=config.network,
        asset=config.usdc_contract_address,
        asset_decimals=config.usdc_decimals,
        max_timeout_seconds=config.payment_timeout_seconds,
    )

    minter = ProvenanceMinter(chain, settings)
    reward_token = RewardToken(chain, settings)

    return SellerServices(
        config=config,
        db=db,
        settings=settings,
        chain=chain,
        guard=guard,
        side_effects=SaleSideEffects(db, minter, reward_token, public_url=config.public_url),
        generator=generator or create_generator(config.openai_api_key),
        minter=minter,
        reward_token=reward_token,
        policies={
            GENERATE_ROUTE: RoutePolicy(
                price_usd=config.price_usd,
                description="Generate an AI image from a text prompt",
            ),
            BUY_ROUTE: RoutePolicy(
                price_usd=config.price_usd,
                description="Purchase a gallery image",
            ),
        },
    )


async def seed_gallery(services: SellerServices, count: int) -> None:
    """Add placeholder images so the gallery isn't empty"""
    placeholder = PlaceholderGenerator()
    for _ in range(count):
        prompt = random_prompt()
        resource = await services.db.add_resource(
            Resource(prompt=prompt, image_url=await placeholder.generate(prompt))
        )
        await services.db.add_log(LogType.GENERATE.value, f'Auto generated: "{prompt}"', {"id": resource.id})
    if count:
        logger.info("gallery_seeded", count=count)


def create_app(
    config: Optional[SellerConfig] = None,
    db: Optional[CatalogStore] = None,
    authority: Optional[PaymentAuthority] = None,
    generator: Optional[ImageGenerator] = None,
    chain: Optional[ChainClient] = None,
) -> FastAPI:
    config = config or get_seller_config()
    services = build_services(config, db=db, authority=authority, generator=generator, chain=chain)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle manager for the FastAPI app"""
        logger.info(
            "seller_starting",
            host=config.seller_host,
            port=config.seller_port,
            network=config.network,
            pay_to=services.guard.pay_to,
            authority=type(services.guard.authority).__name__,
        )
        await seed_gallery(services, config.seed_images_on_startup)
        yield
        logger.info("seller_shutting_down")

    app = FastAPI(
        title="PixelPay Seller Agent",
        description="Pay-per-image gallery using the x402 protocol",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.limiter = limiter

    app.add_exception_handler(PaymentRequired, payment_required_handler)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["PAYMENT-REQUIRED", "PAYMENT-RESPONSE"],
    )

    app.include_router(status.router)
    app.include_router(gallery.router)
    app.include_router(generate.router)
    return app


def main():
    config = get_seller_config()
    configure_logging(config.log_level, config.log_format)
    uvicorn.run(create_app(config), host=config.seller_host, port=config.seller_port)


if __name__ == "__main__":
    main()
