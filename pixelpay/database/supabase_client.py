"""
Supabase storage for PixelPay

Tables: images, nfts, token_distributions, purchases, settings, logs.
The buyer agent uses a table prefix so both agents can share a project.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from supabase import create_client, Client

from pixelpay.database.base import CatalogStore, PurchaseLedger
from pixelpay.errors import ResourceNotFound
from pixelpay.models import (
    LogEntry,
    ProvenanceRecord,
    Purchase,
    Resource,
    RewardDistribution,
)


def _resource_from_row(row: Dict[str, Any]) -> Resource:
    return Resource(
        id=row["id"],
        prompt=row["prompt"],
        image_url=row["image_url"],
        mime_type=row.get("mime_type") or "image/png",
        price=str(row.get("price") or "0.01"),
        sold=bool(row.get("sold")),
        sold_at=row.get("sold_at"),
        created_at=row.get("created_at") or datetime.utcnow(),
    )


def _provenance_from_row(row: Dict[str, Any]) -> ProvenanceRecord:
    return ProvenanceRecord(
        token_id=row["token_id"],
        resource_id=row["image_id"],
        owner=row["owner"],
        tx_hash=row.get("tx_hash"),
        metadata_uri=row.get("metadata_uri"),
        minted_at=row.get("minted_at") or datetime.utcnow(),
    )


def _reward_from_row(row: Dict[str, Any]) -> RewardDistribution:
    return RewardDistribution(
        id=row.get("id"),
        buyer_address=row["buyer_address"],
        resource_id=row["image_id"],
        amount=str(row.get("amount") or "0"),
        tx_hash=row.get("tx_hash"),
        status=row.get("status") or "success",
        created_at=row.get("created_at") or datetime.utcnow(),
    )


def _purchase_from_row(row: Dict[str, Any]) -> Purchase:
    return Purchase(
        id=row.get("id"),
        resource_id=row["image_id"],
        prompt=row.get("prompt"),
        price=str(row.get("price") or "0.01"),
        bought_at=row.get("purchased_at") or datetime.utcnow(),
        artifact_path=row.get("filename"),
    )


def _log_from_row(row: Dict[str, Any]) -> LogEntry:
    metadata = row.get("metadata")
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return LogEntry(
        id=row.get("id"),
        type=row["type"],
        message=row["message"],
        metadata=metadata,
        created_at=row.get("created_at") or datetime.utcnow(),
    )


class SupabaseDatabase(CatalogStore, PurchaseLedger):
    """
    Supabase client for PixelPay operations
    """

    def __init__(self, supabase_url: str, supabase_key: str, table_prefix: str = "", client: Optional[Client] = None):
        """Initialize Supabase client"""
        self.client: Client = client or create_client(supabase_url, supabase_key)
        self.table_prefix = table_prefix

    def _table(self, name: str):
        return self.client.table(f"{self.table_prefix}{name}")

    # ===== SETTINGS =====

    async def get_setting(self, key: str) -> Optional[str]:
        result = self._table("settings").select("value").eq("key", key).execute()
        return result.data[0]["value"] if result.data else None

    async def set_setting(self, key: str, value: str) -> None:
        self._table("settings").upsert({"key": key, "value": value}).execute()

    async def delete_setting(self, key: str) -> None:
        self._table("settings").delete().eq("key", key).execute()

    # ===== LOGS =====

    async def add_log(self, type: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> LogEntry:
        result = self._table("logs").insert({
            "type": type,
            "message": message,
            "metadata": metadata,
        }).execute()
        if result.data:
            return _log_from_row(result.data[0])
        return LogEntry(type=type, message=message, metadata=metadata)

    async def get_logs(self, limit: int = 100) -> List[LogEntry]:
        result = self._table("logs").select("*").order("id", desc=True).limit(limit).execute()
        return [_log_from_row(row) for row in result.data]

    # ===== RESOURCES =====

    async def add_resource(self, resource: Resource) -> Resource:
        self._table("images").insert({
            "id": resource.id,
            "prompt": resource.prompt,
            "image_url": resource.image_url,
            "mime_type": resource.mime_type,
            "price": resource.price,
            "sold": resource.sold,
            "created_at": resource.created_at.isoformat(),
        }).execute()
        return resource

    async def get_resource(self, resource_id: str) -> Optional[Resource]:
        result = self._table("images").select("*").eq("id", resource_id).execute()
        return _resource_from_row(result.data[0]) if result.data else None

    async def list_resources(self) -> List[Resource]:
        result = self._table("images").select("*").order("created_at", desc=True).execute()
        return [_resource_from_row(row) for row in result.data]

    async def mark_sold(self, resource_id: str) -> bool:
        """Conditional update on sold = false acts as compare-and-set"""
        result = self._table("images").update({
            "sold": True,
            "sold_at": datetime.utcnow().isoformat(),
        }).eq("id", resource_id).eq("sold", False).execute()

        if len(result.data) > 0:
            return True

        if await self.get_resource(resource_id) is None:
            raise ResourceNotFound(resource_id)
        return False

    # ===== PROVENANCE =====

    async def add_provenance(self, record: ProvenanceRecord) -> ProvenanceRecord:
        self._table("nfts").insert({
            "token_id": record.token_id,
            "image_id": record.resource_id,
            "owner": record.owner,
            "tx_hash": record.tx_hash,
            "metadata_uri": record.metadata_uri,
        }).execute()
        return record

    async def get_provenance_by_resource(self, resource_id: str) -> Optional[ProvenanceRecord]:
        result = self._table("nfts").select("*").eq("image_id", resource_id).limit(1).execute()
        return _provenance_from_row(result.data[0]) if result.data else None

    async def get_provenance_by_token(self, token_id: int) -> Optional[ProvenanceRecord]:
        result = self._table("nfts").select("*").eq("token_id", token_id).limit(1).execute()
        return _provenance_from_row(result.data[0]) if result.data else None

    async def count_provenance(self) -> int:
        result = self._table("nfts").select("id", count="exact").execute()
        return result.count or 0

    # ===== REWARDS =====

    async def add_reward(self, reward: RewardDistribution) -> RewardDistribution:
        result = self._table("token_distributions").insert({
            "buyer_address": reward.buyer_address,
            "image_id": reward.resource_id,
            "amount": reward.amount,
            "tx_hash": reward.tx_hash,
            "status": reward.status.value,
        }).execute()
        return _reward_from_row(result.data[0]) if result.data else reward

    async def get_reward_by_resource(self, resource_id: str) -> Optional[RewardDistribution]:
        result = self._table("token_distributions").select("*").eq("image_id", resource_id).limit(1).execute()
        return _reward_from_row(result.data[0]) if result.data else None

    async def list_rewards(self) -> List[RewardDistribution]:
        result = self._table("token_distributions").select("*").order("id").execute()
        return [_reward_from_row(row) for row in result.data]

    # ===== PURCHASES =====

    async def add_purchase(self, purchase: Purchase) -> Purchase:
        result = self._table("purchases").insert({
            "image_id": purchase.resource_id,
            "prompt": purchase.prompt,
            "price": purchase.price,
            "purchased_at": purchase.bought_at.isoformat(),
            "filename": purchase.artifact_path,
        }).execute()
        return _purchase_from_row(result.data[0]) if result.data else purchase

    async def get_purchases(self, limit: int = 100) -> List[Purchase]:
        result = self._table("purchases").select("*").order("purchased_at", desc=True).limit(limit).execute()
        return [_purchase_from_row(row) for row in result.data]
