"""
PixelPay Buyer Agent
Periodically discovers unsold gallery images and buys one via x402
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import httpx
import structlog
import uvicorn

from pixelpay.buyer.evaluator import PickStrategy, create_strategy
from pixelpay.buyer.gallery_client import GalleryClient
from pixelpay.buyer.routes import BuyerServices, router
from pixelpay.buyer.scheduler import BuyerScheduler
from pixelpay.buyer.wallet import WalletProvider
from pixelpay.config import BuyerConfig, configure_logging, get_buyer_config
from pixelpay.database import create_database
from pixelpay.database.base import PurchaseLedger
from pixelpay.database.settings import SettingsStore

logger = structlog.get_logger()

BUYER_TABLE_PREFIX = "buyer_"


def build_services(
    config: BuyerConfig,
    db: Optional[PurchaseLedger] = None,
    client: Optional[httpx.AsyncClient] = None,
    strategy: Optional[PickStrategy] = None,
) -> BuyerServices:
    db = db or create_database(config, table_prefix=BUYER_TABLE_PREFIX)
    client = client or httpx.AsyncClient(timeout=config.http_timeout_seconds)
    wallet = WalletProvider(SettingsStore(db), env_private_key=config.buyer_private_key)

    scheduler = BuyerScheduler(
        wallet=wallet,
        gallery=GalleryClient(config.seller_url, client),
        ledger=db,
        strategy=strategy or create_strategy(config.anthropic_api_key, config.anthropic_model, client),
        client=client,
        network=config.network,
        storage_dir=config.storage_dir,
    )
    return BuyerServices(config=config, db=db, wallet=wallet, scheduler=scheduler, client=client)


def create_app(
    config: Optional[BuyerConfig] = None,
    db: Optional[PurchaseLedger] = None,
    client: Optional[httpx.AsyncClient] = None,
    strategy: Optional[PickStrategy] = None,
) -> FastAPI:
    config = config or get_buyer_config()
    services = build_services(config, db=db, client=client, strategy=strategy)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the periodic pipeline and stop it on shutdown"""
        logger.info(
            "buyer_starting",
            host=config.buyer_host,
            port=config.buyer_port,
            seller_url=config.seller_url,
            interval_seconds=config.buyer_interval_seconds,
        )
        loop_task = None
        if config.scheduler_enabled:
            loop_task = asyncio.create_task(
                services.scheduler.run_forever(
                    config.buyer_interval_seconds,
                    config.buyer_initial_delay_seconds,
                )
            )
        yield
        if loop_task is not None:
            loop_task.cancel()
            try:
                await loop_task
            except asyncio.CancelledError:
                pass
        await services.client.aclose()
        logger.info("buyer_shutting_down")

    app = FastAPI(
        title="PixelPay Buyer Agent",
        description="Autonomous x402 buyer for the PixelPay gallery",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


def main():
    config = get_buyer_config()
    configure_logging(config.log_level, config.log_format)
    uvicorn.run(create_app(config), host=config.buyer_host, port=config.buyer_port)


if __name__ == "__main__":
    main()
