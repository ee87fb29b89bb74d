"""
HTTP client for the seller's free gallery endpoints
"""

from typing import List

import httpx
from pydantic import BaseModel, ConfigDict, Field
import structlog

from pixelpay.errors import UnexpectedResponse, UpstreamUnavailable

logger = structlog.get_logger()


class GalleryItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    prompt: str = ""
    image_url: str = Field(default="", alias="imageUrl")
    preview_url: str = Field(default="", alias="previewUrl")
    price: str = "0.01"
    sold: bool = False
    created_at: str = Field(default="", alias="createdAt")


def filter_unsold(items: List[GalleryItem]) -> List[GalleryItem]:
    return [item for item in items if not item.sold]


class GalleryClient:
    def __init__(self, seller_url: str, client: httpx.AsyncClient):
        self.seller_url = seller_url.rstrip("/")
        self.client = client

    async def fetch_gallery(self) -> List[GalleryItem]:
        try:
            response = await self.client.get(f"{self.seller_url}/api/gallery")
        except httpx.TransportError as e:
            raise UpstreamUnavailable("gallery", str(e)) from e

        if not response.is_success:
            raise UnexpectedResponse(response.status_code, response.text)

        items = [GalleryItem.model_validate(item) for item in response.json()]
        logger.info("gallery_fetched", count=len(items))
        return items

    def buy_request(self, resource_id: str) -> httpx.Request:
        return self.client.build_request(
            "GET",
            f"{self.seller_url}/api/gallery/buy",
            params={"id": resource_id},
        )
