from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field
import structlog

from pixelpay.errors import UpstreamUnavailable
from pixelpay.models import LogType, Resource
from pixelpay.payments.codec import PAYMENT_RESPONSE_HEADER, encode_settlement
from pixelpay.seller.dependencies import (
    GENERATE_ROUTE,
    get_services,
    limiter,
    require_payment,
    settle_or_requote,
)
from pixelpay.seller.generator import PlaceholderGenerator
from pixelpay.seller.guard import Paid

logger = structlog.get_logger()

router = APIRouter(tags=["Generation"])


class GenerateRequest(BaseModel):
    prompt: str = Field(default="", max_length=1000)


@router.post("/generate")
@limiter.limit("10/minute")
async def generate_image(
    request: Request,
    response: Response,
    body: GenerateRequest,
    paid: Paid = Depends(require_payment(GENERATE_ROUTE)),
):
    """
    Generate an image from a prompt (x402 protected)

    Payment settles only after generation succeeded; the image is then
    added to the gallery.
    """
    prompt = body.prompt.strip()
    if not prompt:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="prompt is required")

    services = get_services(request)

    try:
        image_url = await services.generator.generate(prompt)
    except UpstreamUnavailable as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Image generation failed: {e}")

    settlement = await settle_or_requote(request, GENERATE_ROUTE, paid)

    resource = await services.db.add_resource(Resource(prompt=prompt, image_url=image_url))
    await services.db.add_log(
        LogType.GENERATE.value,
        f'Generated: "{prompt}"',
        {"id": resource.id, "imageUrl": image_url, "payer": paid.payer},
    )
    logger.info("image_generated", resource_id=resource.id, payer=paid.payer)

    response.headers[PAYMENT_RESPONSE_HEADER] = encode_settlement(settlement)
    return {"prompt": prompt, "imageUrl": image_url, "id": resource.id}


@router.post("/generate-mock")
@limiter.limit("30/minute")
async def generate_mock(request: Request, body: GenerateRequest):
    """Add a placeholder image to the gallery (free, for development)"""
    prompt = body.prompt.strip()
    if not prompt:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="prompt is required")

    services = get_services(request)
    image_url = await PlaceholderGenerator().generate(prompt)

    resource = await services.db.add_resource(Resource(prompt=prompt, image_url=image_url))
    await services.db.add_log(
        LogType.GENERATE.value,
        f'Mock generated: "{prompt}"',
        {"id": resource.id, "imageUrl": image_url},
    )
    return {"prompt": prompt, "imageUrl": image_url, "id": resource.id}
