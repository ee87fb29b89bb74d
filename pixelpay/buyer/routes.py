from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import httpx
import structlog

from pixelpay.buyer.scheduler import BuyerScheduler
from pixelpay.buyer.wallet import WalletProvider
from pixelpay.config import BuyerConfig
from pixelpay.database.base import PurchaseLedger
from pixelpay.errors import PipelineBusy, PixelPayError

logger = structlog.get_logger()

router = APIRouter()


@dataclass
class BuyerServices:
    config: BuyerConfig
    db: PurchaseLedger
    wallet: WalletProvider
    scheduler: BuyerScheduler
    client: httpx.AsyncClient


class WalletSetup(BaseModel):
    privateKey: Optional[str] = None
    mnemonic: Optional[str] = None


def get_services(request: Request) -> BuyerServices:
    return request.app.state.services


@router.get("/")
async def root():
    return {
        "name": "PixelPay Buyer Agent",
        "description": "Autonomous buyer that discovers and purchases AI art via x402",
        "endpoints": {
            "GET /api/status": "Purchase stats",
            "GET /api/purchases": "Purchase history",
            "GET /api/wallet": "Wallet status",
            "POST /api/trigger": "Manual purchase trigger",
            "GET /health": "Health check",
        },
    }


@router.get("/health")
async def health_check():
    return {"status": "ok", "agent": "buyer", "timestamp": datetime.utcnow().isoformat()}


@router.get("/api/status")
async def buyer_status(request: Request):
    services = get_services(request)
    stats = await services.db.purchase_stats()
    return {
        "agent": "buyer",
        "walletAddress": await services.wallet.address(),
        "walletConfigured": await services.wallet.is_configured(),
        "pipelineState": services.scheduler.state.value,
        **stats,
    }


@router.get("/api/purchases")
async def list_purchases(request: Request, limit: int = 100):
    purchases = await get_services(request).db.get_purchases(limit=limit)
    return [p.model_dump(mode="json") for p in purchases]


@router.get("/api/logs")
async def list_logs(request: Request, limit: int = 100):
    logs = await get_services(request).db.get_logs(limit=limit)
    return [entry.model_dump(mode="json") for entry in logs]


@router.get("/api/wallet")
async def get_wallet(request: Request):
    address = await get_services(request).wallet.address()
    if not address:
        return {"configured": False}
    return {"configured": True, "address": address}


@router.post("/api/wallet")
async def set_wallet(request: Request, body: WalletSetup):
    """Store a private key or mnemonic (mnemonic wins when both are given)"""
    wallet = get_services(request).wallet
    try:
        address, kind = await wallet.configure(private_key=body.privateKey, mnemonic=body.mnemonic)
    except ValueError as e:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})
    return {"success": True, "address": address, "type": kind}


@router.delete("/api/wallet")
async def delete_wallet(request: Request):
    await get_services(request).wallet.clear()
    return {"success": True}


@router.post("/api/trigger")
async def trigger_pipeline(request: Request):
    """Run the purchase pipeline once"""
    scheduler = get_services(request).scheduler
    try:
        result = await scheduler.run_once()
    except PipelineBusy as e:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"error": str(e)})
    except PixelPayError as e:
        logger.error("pipeline_trigger_failed", error=str(e), error_type=type(e).__name__)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(e)})
    except Exception as e:
        logger.exception("pipeline_trigger_error", error=str(e))
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(e)})

    return {"success": True, **result.as_dict()}
