"""
Storage interfaces for PixelPay

The seller persists its catalog (CatalogStore); the buyer its purchase
history (PurchaseLedger). Both keep a settings table and an audit log.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pixelpay.models import (
    LogEntry,
    ProvenanceRecord,
    Purchase,
    Resource,
    RewardDistribution,
)


class SettingsBackend(ABC):
    """Flat key/value settings table"""

    @abstractmethod
    async def get_setting(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set_setting(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete_setting(self, key: str) -> None:
        ...


class AuditLog(ABC):
    """Append-only business event log"""

    @abstractmethod
    async def add_log(self, type: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> LogEntry:
        ...

    @abstractmethod
    async def get_logs(self, limit: int = 100) -> List[LogEntry]:
        """Most recent entries first"""


class CatalogStore(SettingsBackend, AuditLog):
    """Resource inventory plus provenance and reward records"""

    # ===== RESOURCES =====

    @abstractmethod
    async def add_resource(self, resource: Resource) -> Resource:
        ...

    @abstractmethod
    async def get_resource(self, resource_id: str) -> Optional[Resource]:
        ...

    @abstractmethod
    async def list_resources(self) -> List[Resource]:
        """All resources, newest first"""

    @abstractmethod
    async def mark_sold(self, resource_id: str) -> bool:
        """
        Compare-and-set unsold -> sold.

        Returns:
            True if this call flipped the flag, False if it was already sold

        Raises:
            ResourceNotFound: no resource with this id
        """

    # ===== PROVENANCE =====

    @abstractmethod
    async def add_provenance(self, record: ProvenanceRecord) -> ProvenanceRecord:
        ...

    @abstractmethod
    async def get_provenance_by_resource(self, resource_id: str) -> Optional[ProvenanceRecord]:
        ...

    @abstractmethod
    async def get_provenance_by_token(self, token_id: int) -> Optional[ProvenanceRecord]:
        ...

    @abstractmethod
    async def count_provenance(self) -> int:
        ...

    # ===== REWARDS =====

    @abstractmethod
    async def add_reward(self, reward: RewardDistribution) -> RewardDistribution:
        ...

    @abstractmethod
    async def get_reward_by_resource(self, resource_id: str) -> Optional[RewardDistribution]:
        ...

    @abstractmethod
    async def list_rewards(self) -> List[RewardDistribution]:
        ...

    # ===== STATS =====

    async def catalog_stats(self) -> Dict[str, Any]:
        resources = await self.list_resources()
        sold = [r for r in resources if r.sold]
        revenue = sum((Decimal(r.price) for r in sold), Decimal("0"))
        return {
            "totalImages": len(resources),
            "totalSold": len(sold),
            "availableImages": len(resources) - len(sold),
            "totalRevenue": float(revenue),
        }


class PurchaseLedger(SettingsBackend, AuditLog):
    """Purchase history of the buyer agent"""

    @abstractmethod
    async def add_purchase(self, purchase: Purchase) -> Purchase:
        ...

    @abstractmethod
    async def get_purchases(self, limit: int = 100) -> List[Purchase]:
        """Most recent purchases first"""

    async def purchase_stats(self) -> Dict[str, Any]:
        purchases = await self.get_purchases(limit=10_000)
        spent = sum((Decimal(p.price) for p in purchases), Decimal("0"))
        return {
            "totalPurchases": len(purchases),
            "totalSpent": float(spent),
        }
