"""
Post-sale side effects: mark sold, mint provenance, distribute reward

The sold flag is flipped first and is never rolled back. Mint and reward
are best effort and run concurrently; each reports a StepResult and never
raises.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Optional, Tuple

import structlog

from pixelpay.chain.contracts import ProvenanceMinter, RewardSkipped, RewardToken
from pixelpay.database.base import CatalogStore
from pixelpay.errors import SideEffectFailure
from pixelpay.models import LogType, ProvenanceRecord, Resource, RewardDistribution, RewardStatus

logger = structlog.get_logger()

REWARD_TOKEN_SYMBOL = "PXPAY"


@dataclass
class StepResult:
    """Tagged outcome of one side effect"""
    status: RewardStatus
    detail: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == RewardStatus.SUCCESS


def metadata_uri_for(public_url: str, resource_id: str) -> str:
    return f"{public_url.rstrip('/')}/api/gallery/{resource_id}/metadata"


class SaleSideEffects:
    """Runs the side effects of a settled sale against the catalog"""

    def __init__(
        self,
        db: CatalogStore,
        minter: Optional[ProvenanceMinter] = None,
        reward_token: Optional[RewardToken] = None,
        public_url: str = "http://localhost:4001",
    ):
        self.db = db
        self.minter = minter
        self.reward_token = reward_token
        self.public_url = public_url

    async def mark_sold(self, resource: Resource, payer: Optional[str] = None) -> bool:
        """
        Flip the sold flag.

        Returns:
            True if this sale won, False if the resource was already sold
        """
        won = await self.db.mark_sold(resource.id)
        if not won:
            logger.info("sale_already_sold", resource_id=resource.id, payer=payer)
            await self.db.add_log(
                LogType.SALE.value,
                f"Image {resource.id} was already sold",
                {"imageId": resource.id, "buyer": payer, "alreadySold": True},
            )
            return False

        logger.info("sale_recorded", resource_id=resource.id, payer=payer, price=resource.price)
        await self.db.add_log(
            LogType.SALE.value,
            f"Sold image {resource.id} for ${resource.price}",
            {"imageId": resource.id, "buyer": payer, "price": resource.price},
        )
        return True

    async def mint_provenance(self, resource: Resource, payer: Optional[str]) -> StepResult:
        """Mint the provenance NFT; any failure becomes a FAILED result"""
        try:
            return await self._mint(resource, payer)
        except Exception as e:
            logger.error("nft_step_failed", resource_id=resource.id, buyer=payer, error=str(e))
            return StepResult(RewardStatus.FAILED, str(SideEffectFailure("mint", str(e))))

    async def _mint(self, resource: Resource, payer: Optional[str]) -> StepResult:
        if not payer:
            return StepResult(RewardStatus.SKIPPED, "Payer address unknown")

        if self.minter is None or not await self.minter.is_configured():
            logger.info("nft_mint_skipped", resource_id=resource.id, reason="contract_not_configured")
            return StepResult(RewardStatus.SKIPPED, "NFT contract not configured")

        metadata_uri = metadata_uri_for(self.public_url, resource.id)
        try:
            minted = await self.minter.mint(payer, metadata_uri)
        except Exception as e:
            failure = SideEffectFailure("mint", str(e))
            logger.error("nft_mint_failed", resource_id=resource.id, buyer=payer, error=str(e))
            await self._record("mint", resource, self.db.add_log(
                LogType.NFT_ERROR.value,
                f"NFT minting failed for image {resource.id}",
                {"error": failure.reason, "buyer": payer},
            ))
            return StepResult(RewardStatus.FAILED, str(failure))

        # The token exists on-chain from here on
        await self._record("mint", resource, self.db.add_provenance(ProvenanceRecord(
            token_id=minted.token_id,
            resource_id=resource.id,
            owner=payer,
            tx_hash=minted.tx_hash,
            metadata_uri=metadata_uri,
        )))
        await self._record("mint", resource, self.db.add_log(
            LogType.NFT_MINT.value,
            f"Minted NFT #{minted.token_id} to {payer}",
            {"tokenId": minted.token_id, "txHash": minted.tx_hash, "imageId": resource.id},
        ))
        return StepResult(
            RewardStatus.SUCCESS,
            data={"tokenId": minted.token_id, "txHash": minted.tx_hash, "owner": payer},
        )

    async def distribute_reward(self, resource: Resource, payer: Optional[str]) -> StepResult:
        """Attempt the reward transfer and persist exactly one distribution row"""
        try:
            result = await self._reward(resource, payer)
        except Exception as e:
            logger.error("reward_step_failed", resource_id=resource.id, buyer=payer, error=str(e))
            result = StepResult(RewardStatus.FAILED, str(SideEffectFailure("reward", str(e))))

        amount = result.data.get("amount", "0") if result.succeeded else "0"
        result.data.setdefault("amount", amount)

        await self._record("reward", resource, self.db.add_reward(RewardDistribution(
            buyer_address=payer or "",
            resource_id=resource.id,
            amount=amount,
            tx_hash=result.data.get("txHash"),
            status=result.status,
        )))
        if result.status == RewardStatus.SKIPPED:
            await self._record("reward", resource, self.db.add_log(
                LogType.TOKEN_SKIP.value,
                result.detail or "Reward skipped",
                {"buyer": payer, "imageId": resource.id},
            ))
        return result

    async def _reward(self, resource: Resource, payer: Optional[str]) -> StepResult:
        if not payer:
            return StepResult(RewardStatus.SKIPPED, "Payer address unknown")
        if self.reward_token is None or not await self.reward_token.is_configured():
            return StepResult(RewardStatus.SKIPPED, "Reward token not configured")

        try:
            transfer = await self.reward_token.transfer_reward(payer)
        except Exception as e:
            failure = SideEffectFailure("reward", str(e))
            logger.error("reward_transfer_failed", resource_id=resource.id, buyer=payer, error=str(e))
            await self._record("reward", resource, self.db.add_log(
                LogType.TOKEN_ERROR.value,
                f"{REWARD_TOKEN_SYMBOL} reward failed for image {resource.id}",
                {"error": failure.reason, "buyer": payer},
            ))
            return StepResult(RewardStatus.FAILED, str(failure))

        if isinstance(transfer, RewardSkipped):
            return StepResult(RewardStatus.SKIPPED, transfer.reason)

        await self._record("reward", resource, self.db.add_log(
            LogType.TOKEN_REWARD.value,
            f"Sent {transfer.amount} {REWARD_TOKEN_SYMBOL} to {payer}",
            {"txHash": transfer.tx_hash, "imageId": resource.id},
        ))
        return StepResult(
            RewardStatus.SUCCESS,
            data={"amount": transfer.amount, "txHash": transfer.tx_hash},
        )

    async def _record(self, step: str, resource: Resource, write: Awaitable[Any]) -> None:
        """Await a catalog write; a failed write never changes the step's outcome"""
        try:
            await write
        except Exception as e:
            logger.error("side_effect_record_failed", step=step, resource_id=resource.id, error=str(e))

    async def distribute(self, resource: Resource, payer: Optional[str]) -> Tuple[StepResult, StepResult]:
        """Mint and reward concurrently once the sale is recorded"""
        nft, reward = await asyncio.gather(
            self.mint_provenance(resource, payer),
            self.distribute_reward(resource, payer),
        )
        return nft, reward
