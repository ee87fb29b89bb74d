"""
Settings store: signing material, deployed contract addresses, reward amount
"""

from typing import Optional

import structlog

from pixelpay.database.base import SettingsBackend

logger = structlog.get_logger()


class SettingsStore:
    """Load, rotate and clear settings on top of the database settings table"""

    def __init__(self, backend: SettingsBackend):
        self.backend = backend

    async def load(self, key: str) -> Optional[str]:
        value = await self.backend.get_setting(key)
        return value or None

    async def rotate(self, key: str, value: str) -> None:
        await self.backend.set_setting(key, value)
        # Values can be key material; only the key name is logged
        logger.info("setting_rotated", key=key)

    async def clear(self, key: str) -> None:
        await self.backend.delete_setting(key)
        logger.info("setting_cleared", key=key)
