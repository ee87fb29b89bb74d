"""
Autonomous buying pipeline

1. Check the wallet
2. Fetch the seller's gallery and keep unsold images
3. Pick one with the selection strategy
4. Pay for it through the x402 handshake
5. Download the image and record the purchase
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

import httpx
import structlog

from pixelpay.buyer.evaluator import PickStrategy
from pixelpay.buyer.gallery_client import GalleryClient, GalleryItem, filter_unsold
from pixelpay.buyer.wallet import WalletProvider
from pixelpay.database.base import PurchaseLedger
from pixelpay.errors import PipelineBusy, PixelPayError, WalletNotConfigured
from pixelpay.models import LogType, Purchase
from pixelpay.payments.executor import PaymentExecutor
from pixelpay.payments.signer import ExactEvmSigner

logger = structlog.get_logger()


class PipelineState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EVALUATING = "evaluating"
    PURCHASING = "purchasing"
    RECORDING = "recording"


@dataclass
class PipelineResult:
    checked: int
    unsold: int
    purchased: Optional[str]

    def as_dict(self) -> dict:
        return asdict(self)


class BuyerScheduler:
    """
    Runs the buying pipeline on demand or periodically.

    Runs never overlap: a trigger while one is in flight raises PipelineBusy.
    """

    def __init__(
        self,
        wallet: WalletProvider,
        gallery: GalleryClient,
        ledger: PurchaseLedger,
        strategy: PickStrategy,
        client: httpx.AsyncClient,
        network: str,
        storage_dir: str = "storage/purchases",
    ):
        self.wallet = wallet
        self.gallery = gallery
        self.ledger = ledger
        self.strategy = strategy
        self.client = client
        self.network = network
        self.storage_dir = Path(storage_dir)
        self.state = PipelineState.IDLE
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> PipelineResult:
        if self._lock.locked():
            raise PipelineBusy()

        async with self._lock:
            try:
                return await self._run()
            finally:
                self.state = PipelineState.IDLE

    async def _run(self) -> PipelineResult:
        try:
            account = await self.wallet.account()
        except WalletNotConfigured:
            await self.ledger.add_log(LogType.ERROR.value, "Pipeline skipped - wallet not configured")
            raise

        self.state = PipelineState.FETCHING
        await self.ledger.add_log(LogType.PIPELINE.value, "Fetching gallery listing")
        try:
            gallery = await self.gallery.fetch_gallery()
        except Exception as e:
            await self.ledger.add_log(LogType.ERROR.value, f"Failed to fetch gallery: {e}")
            logger.error("pipeline_gallery_failed", error=str(e))
            raise

        unsold = filter_unsold(gallery)
        await self.ledger.add_log(
            LogType.PIPELINE.value,
            f"Gallery: {len(gallery)} total, {len(unsold)} unsold",
        )
        logger.info("pipeline_gallery_checked", total=len(gallery), unsold=len(unsold))

        if not unsold:
            await self.ledger.add_log(LogType.PIPELINE.value, "No unsold images available - skipping")
            return PipelineResult(checked=len(gallery), unsold=0, purchased=None)

        self.state = PipelineState.EVALUATING
        picked = unsold[await self.strategy.pick(unsold)]
        await self.ledger.add_log(
            LogType.PIPELINE.value,
            f'Selected: "{picked.prompt}"',
            {"imageId": picked.id},
        )
        logger.info("pipeline_image_selected", image_id=picked.id, prompt=picked.prompt)

        self.state = PipelineState.PURCHASING
        executor = PaymentExecutor(ExactEvmSigner(account, [self.network]), self.client)
        try:
            response = await executor.call(self.gallery.buy_request(picked.id))
        except Exception as e:
            await self.ledger.add_log(
                LogType.ERROR.value,
                f"Purchase failed: {e}",
                {"imageId": picked.id},
            )
            logger.error("pipeline_purchase_failed", image_id=picked.id, error=str(e))
            raise

        self.state = PipelineState.RECORDING
        artifact_path = await self._save_artifact(picked, response)
        await self.ledger.add_purchase(Purchase(
            resource_id=picked.id,
            prompt=picked.prompt,
            price=picked.price or "0.01",
            artifact_path=artifact_path,
        ))
        await self.ledger.add_log(
            LogType.PURCHASE.value,
            f'Bought: "{picked.prompt}"',
            {"imageId": picked.id, "filename": artifact_path},
        )
        logger.info("pipeline_purchase_complete", image_id=picked.id, artifact=artifact_path)

        return PipelineResult(checked=len(gallery), unsold=len(unsold), purchased=picked.id)

    async def _save_artifact(self, picked: GalleryItem, response: httpx.Response) -> Optional[str]:
        """Download the purchased image; failures leave the purchase without a file"""
        content_type = response.headers.get("content-type", "")
        try:
            if content_type.startswith("image/"):
                content = response.content
                ext = "png" if "png" in content_type else "jpg"
            else:
                image_url = response.json().get("imageUrl") or picked.image_url
                if not image_url:
                    return None
                image = await self.client.get(image_url, follow_redirects=True)
                image.raise_for_status()
                content = image.content
                ext = "png"

            self.storage_dir.mkdir(parents=True, exist_ok=True)
            filename = f"{picked.id}_{int(time.time() * 1000)}.{ext}"
            (self.storage_dir / filename).write_bytes(content)
            logger.info("artifact_saved", path=str(self.storage_dir / filename))
            return filename
        except (httpx.HTTPError, OSError, ValueError) as e:
            logger.warning("artifact_download_failed", image_id=picked.id, error=str(e))
            return None

    async def run_forever(self, interval_seconds: float, initial_delay_seconds: float = 0) -> None:
        """Background loop: one pipeline run every ``interval_seconds``"""
        await asyncio.sleep(initial_delay_seconds)
        await self.ledger.add_log(LogType.SYSTEM.value, "Buyer Agent started")

        while True:
            try:
                result = await self.run_once()
                logger.info("pipeline_run_complete", **result.as_dict())
            except asyncio.CancelledError:
                logger.info("pipeline_loop_stopped")
                raise
            except PixelPayError as e:
                logger.warning("pipeline_run_skipped", error=str(e))
            except Exception as e:
                logger.error("pipeline_run_error", error=str(e))

            await asyncio.sleep(interval_seconds)
