"""
Resource generation capability

PlaceholderGenerator returns picsum.photos images and needs no key;
OpenAIImageGenerator calls the OpenAI images API over httpx.
"""

import random
from abc import ABC, abstractmethod

import httpx
import structlog

from pixelpay.errors import UpstreamUnavailable

logger = structlog.get_logger()

AUTO_PROMPTS = [
    "pixel art cat sitting on a rainbow cloud",
    "neon cyberpunk street market at night",
    "abstract geometric waves in pastel colors",
    "retro 8-bit spaceship battle scene",
    "watercolor landscape of floating islands",
    "minimalist line art portrait of a fox",
    "vaporwave sunset over digital ocean",
    "isometric pixel art coffee shop interior",
    "glitch art portrait with neon distortion",
    "low-poly mountain scene at golden hour",
    "kawaii food characters having a party",
    "steampunk mechanical bird in flight",
    "synthwave grid with palm trees silhouette",
    "hand-drawn botanical illustration of alien plants",
    "pixel art medieval castle under northern lights",
]


def random_prompt() -> str:
    return random.choice(AUTO_PROMPTS)


class ImageGenerator(ABC):
    """Turns a prompt into an image URL"""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        ...


class PlaceholderGenerator(ImageGenerator):
    async def generate(self, prompt: str) -> str:
        seed = random.randint(0, 9999)
        return f"https://picsum.photos/seed/{seed}/1024/1024"


class OpenAIImageGenerator(ImageGenerator):
    API_URL = "https://api.openai.com/v1/images/generations"

    def __init__(self, api_key: str, model: str = "dall-e-3", timeout: float = 120.0):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    async def generate(self, prompt: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.API_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"model": self.model, "prompt": prompt, "n": 1, "size": "1024x1024"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error("image_generation_failed", error=str(e))
            raise UpstreamUnavailable("image generation", str(e)) from e

        images = data.get("data") or []
        image_url = images[0].get("url") if images else None
        if not image_url:
            raise UpstreamUnavailable("image generation", "no image returned")
        return image_url


def create_generator(openai_api_key: str = "") -> ImageGenerator:
    if openai_api_key:
        return OpenAIImageGenerator(openai_api_key)
    return PlaceholderGenerator()
