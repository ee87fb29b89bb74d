from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
import structlog

from pixelpay.errors import ResourceNotFound
from pixelpay.models import LogType, ProvenanceRecord, Resource, RewardDistribution
from pixelpay.payments.codec import PAYMENT_RESPONSE_HEADER, encode_settlement
from pixelpay.seller.dependencies import BUY_ROUTE, get_services, require_payment, settle_or_requote
from pixelpay.seller.guard import Paid
from pixelpay.seller.side_effects import REWARD_TOKEN_SYMBOL, StepResult

logger = structlog.get_logger()

router = APIRouter(tags=["Gallery"])


def _nft_view(record: Optional[ProvenanceRecord]) -> Optional[Dict[str, Any]]:
    if record is None:
        return None
    return {"tokenId": record.token_id, "owner": record.owner, "txHash": record.tx_hash}


def _reward_view(reward: Optional[RewardDistribution]) -> Optional[Dict[str, Any]]:
    if reward is None:
        return None
    return {
        "amount": reward.amount,
        "txHash": reward.tx_hash,
        "token": REWARD_TOKEN_SYMBOL,
        "status": reward.status.value,
    }


def _step_reward_view(step: Optional[StepResult]) -> Optional[Dict[str, Any]]:
    if step is None:
        return None
    return {
        "amount": step.data.get("amount", "0"),
        "txHash": step.data.get("txHash"),
        "token": REWARD_TOKEN_SYMBOL,
        "status": step.status.value,
    }


def gallery_item(resource: Resource) -> Dict[str, Any]:
    return {
        "id": resource.id,
        "prompt": resource.prompt,
        "imageUrl": resource.image_url,
        "previewUrl": resource.image_url,
        "price": resource.price,
        "sold": resource.sold,
        "createdAt": resource.created_at.isoformat(),
    }


@router.get("/api/gallery")
async def list_gallery(request: Request):
    """List all images (free)"""
    db = get_services(request).db

    items = []
    for resource in await db.list_resources():
        item = gallery_item(resource)
        if resource.sold:
            item["nft"] = _nft_view(await db.get_provenance_by_resource(resource.id))
            item["tokenReward"] = _reward_view(await db.get_reward_by_resource(resource.id))
        else:
            item["nft"] = None
            item["tokenReward"] = None
        items.append(item)

    logger.info("gallery_listed", count=len(items))
    return items


@router.get("/api/gallery/buy")
async def buy_image(
    request: Request,
    response: Response,
    id: Optional[str] = None,
    paid: Paid = Depends(require_payment(BUY_ROUTE)),
):
    """
    Buy an image (x402 protected)

    The image is looked up, paid for and marked sold while holding its
    lock, so a concurrent buyer sees "already sold" before being charged.
    """
    if not id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="id query parameter is required")

    services = get_services(request)
    db = services.db

    async with services.resource_lock(id):
        resource = await db.get_resource(id)
        if resource is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Image {id} not found")
        if resource.sold:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Image already sold")

        settlement = await settle_or_requote(request, BUY_ROUTE, paid)
        await db.add_log(
            LogType.PAYMENT.value,
            f"Received ${resource.price} USDC for image {resource.id}",
            {"imageId": resource.id, "payer": paid.payer, "transaction": settlement.transaction},
        )

        try:
            won = await services.side_effects.mark_sold(resource, paid.payer)
        except ResourceNotFound:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Image {id} not found")

    nft = reward = None
    if won:
        nft, reward = await services.side_effects.distribute(resource, paid.payer)

    response.headers[PAYMENT_RESPONSE_HEADER] = encode_settlement(settlement)

    return {
        "id": resource.id,
        "prompt": resource.prompt,
        "imageUrl": resource.image_url,
        "purchased": True,
        "alreadySold": not won,
        "nft": nft.data if nft is not None and nft.succeeded else None,
        "tokenReward": _step_reward_view(reward),
    }


@router.get("/api/gallery/{resource_id}/metadata")
async def image_metadata(request: Request, resource_id: str):
    """ERC-721 metadata for an image (tokenURI target)"""
    db = get_services(request).db

    resource = await db.get_resource(resource_id)
    if resource is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Image {resource_id} not found")

    record = await db.get_provenance_by_resource(resource_id)
    return token_metadata(resource, record)


def token_metadata(resource: Resource, record: Optional[ProvenanceRecord]) -> Dict[str, Any]:
    metadata = {
        "name": f"PixelPay #{record.token_id}" if record else f"PixelPay {resource.id}",
        "description": "AI-generated image purchased via x402 agent-to-agent economy",
        "image": resource.image_url,
        "attributes": [
            {"trait_type": "Prompt", "value": resource.prompt},
            {"trait_type": "Price", "value": f"{resource.price} USDC"},
            {"trait_type": "Image ID", "value": resource.id},
        ],
    }
    if record and record.tx_hash:
        metadata["external_url"] = f"https://testnet.monadscan.com/tx/{record.tx_hash}"
    return metadata
