"""
Selection strategies for the buyer pipeline

A strategy picks the index of one candidate. RankingPick asks a ranker
(Claude over the Anthropic messages API) and falls back to random on
errors, or to the first candidate when the answer is unusable.
"""

import random
import re
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
import structlog

from pixelpay.buyer.gallery_client import GalleryItem
from pixelpay.errors import UpstreamUnavailable

logger = structlog.get_logger()

_LEADING_INT = re.compile(r"\s*(-?\d+)")


class PickStrategy(ABC):
    @abstractmethod
    async def pick(self, candidates: List[GalleryItem]) -> int:
        """Return the index of the chosen candidate (candidates is non-empty)"""


class RandomPick(PickStrategy):
    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    async def pick(self, candidates: List[GalleryItem]) -> int:
        return self.rng.randrange(len(candidates))


class Ranker(ABC):
    @abstractmethod
    async def rank(self, candidates: List[GalleryItem]) -> str:
        """Return the raw answer naming the preferred index"""


class AnthropicRanker(Ranker):
    """Asks Claude to act as an art collector"""

    API_URL = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"

    def __init__(self, api_key: str, model: str, client: httpx.AsyncClient):
        self.api_key = api_key
        self.model = model
        self.client = client

    def prompt_for(self, candidates: List[GalleryItem]) -> str:
        listing = "\n".join(
            f'{i}: [id {item.id}] "{item.prompt}" (price: {item.price})' for i, item in enumerate(candidates)
        )
        return (
            "You are an art collector AI. Pick the most interesting image to buy "
            f"from this gallery listing. Reply with ONLY the index number.\n\n{listing}"
        )

    async def rank(self, candidates: List[GalleryItem]) -> str:
        try:
            response = await self.client.post(
                self.API_URL,
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": self.API_VERSION,
                },
                json={
                    "model": self.model,
                    "max_tokens": 100,
                    "messages": [{"role": "user", "content": self.prompt_for(candidates)}],
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamUnavailable("ranker", str(e)) from e

        content = response.json().get("content") or []
        return str(content[0].get("text", "")).strip() if content else ""


class RankingPick(PickStrategy):
    def __init__(self, ranker: Ranker, fallback: Optional[PickStrategy] = None):
        self.ranker = ranker
        self.fallback = fallback or RandomPick()

    async def pick(self, candidates: List[GalleryItem]) -> int:
        try:
            answer = await self.ranker.rank(candidates)
        except Exception as e:
            logger.warning("ranker_failed_using_fallback", error=str(e))
            return await self.fallback.pick(candidates)

        match = _LEADING_INT.match(answer)
        index = int(match.group(1)) if match else -1
        if 0 <= index < len(candidates):
            return index

        logger.info("ranker_answer_unusable", answer=answer[:50])
        return 0


def create_strategy(api_key: str, model: str, client: httpx.AsyncClient) -> PickStrategy:
    if api_key:
        return RankingPick(AnthropicRanker(api_key, model, client))
    return RandomPick()
