from datetime import datetime

from fastapi import APIRouter, HTTPException, Request, status
from web3 import Web3
import structlog

from pixelpay.chain.contracts import ERC20_ABI, format_units
from pixelpay.models import RewardStatus
from pixelpay.seller.dependencies import BUY_ROUTE, GENERATE_ROUTE, get_services
from pixelpay.seller.routers.gallery import token_metadata

logger = structlog.get_logger()

router = APIRouter(tags=["Status"])


@router.get("/")
async def root(request: Request):
    """Service descriptor"""
    services = get_services(request)
    policies = services.policies
    return {
        "name": "PixelPay Seller Agent",
        "description": "Autonomous AI art economy powered by x402 micropayments",
        "network": services.config.network,
        "payTo": services.guard.pay_to,
        "endpoints": {
            GENERATE_ROUTE: f"${policies[GENERATE_ROUTE].price_usd} USDC - Generate AI image (x402)",
            "GET /api/gallery": "Free - Browse gallery",
            f"{BUY_ROUTE}?id=X": f"${policies[BUY_ROUTE].price_usd} USDC - Purchase image (x402)",
            "GET /api/status": "Free - Revenue stats",
            "GET /api/token-stats": "Free - Reward token info",
            "GET /health": "Free - Health check",
        },
    }


@router.get("/health")
async def health_check():
    return {"status": "ok", "agent": "seller", "timestamp": datetime.utcnow().isoformat()}


@router.get("/api/status")
async def seller_status(request: Request):
    """Catalog totals and revenue"""
    stats = await get_services(request).db.catalog_stats()
    return {"agent": "seller", **stats}


@router.get("/api/status/logs")
async def seller_logs(request: Request, limit: int = 100):
    logs = await get_services(request).db.get_logs(limit=limit)
    return [entry.model_dump(mode="json") for entry in logs]


@router.get("/api/nft/{token_id}")
async def nft_metadata(request: Request, token_id: int):
    """Provenance token metadata by token id"""
    db = get_services(request).db

    record = await db.get_provenance_by_token(token_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="NFT not found")

    resource = await db.get_resource(record.resource_id)
    if resource is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")

    return token_metadata(resource, record)


@router.get("/api/nft-stats")
async def nft_stats(request: Request):
    return {"totalMinted": await get_services(request).db.count_provenance()}


@router.get("/api/token-stats")
async def token_stats(request: Request):
    """Reward token supply, operator reserve and distribution totals"""
    services = get_services(request)
    if not await services.reward_token.is_configured():
        return {"deployed": False}

    rewards = [r for r in await services.db.list_rewards() if r.status == RewardStatus.SUCCESS]
    distributed = sum(float(r.amount) for r in rewards)

    try:
        info = await services.reward_token.token_info()
    except Exception as e:
        logger.error("token_stats_failed", error=str(e))
        return {"deployed": False, "error": "Failed to fetch token info"}

    return {
        "deployed": True,
        **info,
        "totalDistributed": distributed,
        "distributionCount": len(rewards),
    }


@router.get("/api/wallet-info")
async def wallet_info(request: Request):
    """Operator balances: native, USDC and reward token"""
    services = get_services(request)
    address = services.chain.address
    if not address:
        return {"configured": False}

    try:
        native = await services.chain.native_balance(address)
        usdc = services.chain.contract(services.config.usdc_contract_address, ERC20_ABI)
        usdc_balance = await services.chain.call(usdc.functions.balanceOf(address))
    except Exception as e:
        logger.error("wallet_info_failed", error=str(e))
        return {"configured": True, "address": address, "error": "Failed to fetch balances"}

    reward_balance = "0"
    if await services.reward_token.is_configured():
        try:
            reward_balance = await services.reward_token.balance_of(address)
        except Exception as e:
            logger.warning("reward_balance_failed", error=str(e))

    return {
        "configured": True,
        "address": address,
        "mon": str(Web3.from_wei(native, "ether")),
        "usdc": format_units(int(usdc_balance), services.config.usdc_decimals),
        "pxpay": reward_balance,
    }
