"""
In-process storage used for development and tests
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

from pixelpay.database.base import CatalogStore, PurchaseLedger
from pixelpay.errors import ResourceNotFound
from pixelpay.models import (
    LogEntry,
    ProvenanceRecord,
    Purchase,
    Resource,
    RewardDistribution,
)


class InMemoryDatabase(CatalogStore, PurchaseLedger):
    """Dictionary-backed implementation of both storage interfaces"""

    def __init__(self):
        self.resources: Dict[str, Resource] = {}
        self.provenance: Dict[int, ProvenanceRecord] = {}
        self.rewards: List[RewardDistribution] = []
        self.purchases: List[Purchase] = []
        self.settings: Dict[str, str] = {}
        self.logs: List[LogEntry] = []
        self._lock = asyncio.Lock()

    # ===== SETTINGS =====

    async def get_setting(self, key: str) -> Optional[str]:
        return self.settings.get(key)

    async def set_setting(self, key: str, value: str) -> None:
        self.settings[key] = value

    async def delete_setting(self, key: str) -> None:
        self.settings.pop(key, None)

    # ===== LOGS =====

    async def add_log(self, type: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> LogEntry:
        entry = LogEntry(id=len(self.logs) + 1, type=type, message=message, metadata=metadata)
        self.logs.append(entry)
        return entry

    async def get_logs(self, limit: int = 100) -> List[LogEntry]:
        return list(reversed(self.logs))[:limit]

    # ===== RESOURCES =====

    async def add_resource(self, resource: Resource) -> Resource:
        self.resources[resource.id] = resource
        return resource

    async def get_resource(self, resource_id: str) -> Optional[Resource]:
        return self.resources.get(resource_id)

    async def list_resources(self) -> List[Resource]:
        return sorted(self.resources.values(), key=lambda r: r.created_at, reverse=True)

    async def mark_sold(self, resource_id: str) -> bool:
        async with self._lock:
            resource = self.resources.get(resource_id)
            if resource is None:
                raise ResourceNotFound(resource_id)
            if resource.sold:
                return False
            self.resources[resource_id] = resource.model_copy(
                update={"sold": True, "sold_at": datetime.utcnow()}
            )
            return True

    # ===== PROVENANCE =====

    async def add_provenance(self, record: ProvenanceRecord) -> ProvenanceRecord:
        self.provenance[record.token_id] = record
        return record

    async def get_provenance_by_resource(self, resource_id: str) -> Optional[ProvenanceRecord]:
        for record in self.provenance.values():
            if record.resource_id == resource_id:
                return record
        return None

    async def get_provenance_by_token(self, token_id: int) -> Optional[ProvenanceRecord]:
        return self.provenance.get(token_id)

    async def count_provenance(self) -> int:
        return len(self.provenance)

    # ===== REWARDS =====

    async def add_reward(self, reward: RewardDistribution) -> RewardDistribution:
        stored = reward.model_copy(update={"id": len(self.rewards) + 1})
        self.rewards.append(stored)
        return stored

    async def get_reward_by_resource(self, resource_id: str) -> Optional[RewardDistribution]:
        for reward in self.rewards:
            if reward.resource_id == resource_id:
                return reward
        return None

    async def list_rewards(self) -> List[RewardDistribution]:
        return list(self.rewards)

    # ===== PURCHASES =====

    async def add_purchase(self, purchase: Purchase) -> Purchase:
        stored = purchase.model_copy(update={"id": len(self.purchases) + 1})
        self.purchases.append(stored)
        return stored

    async def get_purchases(self, limit: int = 100) -> List[Purchase]:
        return sorted(self.purchases, key=lambda p: p.bought_at, reverse=True)[:limit]
