"""
PixelPay Buyer CLI
Command-line interface for browsing the gallery and buying images via x402
"""

import asyncio
import sys
from typing import List, Optional

import httpx
import structlog
from rich.console import Console
from rich.table import Table

from pixelpay.buyer.gallery_client import GalleryClient, GalleryItem
from pixelpay.buyer.server import build_services
from pixelpay.config import BuyerConfig, get_buyer_config
from pixelpay.database import InMemoryDatabase
from pixelpay.errors import PixelPayError
from pixelpay.payments.executor import PaymentExecutor, settlement_from
from pixelpay.payments.signer import ExactEvmSigner

logger = structlog.get_logger()
console = Console()


class BuyerCLI:
    """
    Buyer CLI for:
    1. Browsing the seller's gallery
    2. Buying a specific image through the x402 handshake
    3. Running the autonomous pipeline once
    """

    def __init__(self, config: Optional[BuyerConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or get_buyer_config()
        self.client = client or httpx.AsyncClient(timeout=self.config.http_timeout_seconds)
        self.gallery = GalleryClient(self.config.seller_url, self.client)

    async def fetch_gallery(self) -> List[GalleryItem]:
        try:
            return await self.gallery.fetch_gallery()
        except PixelPayError as e:
            logger.error("gallery_fetch_failed", error=str(e))
            console.print(f"[red]Could not fetch gallery: {e}[/red]")
            return []

    def display_gallery(self, items: List[GalleryItem]):
        """Display gallery items in a formatted table"""
        if not items:
            console.print("[yellow]Gallery is empty[/yellow]")
            return

        table = Table(title="PixelPay Gallery", show_header=True, header_style="bold magenta")

        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Prompt", style="white")
        table.add_column("Price (USD)", justify="right", style="yellow")
        table.add_column("Status", style="green")

        for item in items:
            table.add_row(
                item.id,
                item.prompt[:50] + ("..." if len(item.prompt) > 50 else ""),
                f"${item.price}",
                "[red]sold[/red]" if item.sold else "available",
            )

        console.print(table)

    async def buy(self, resource_id: str) -> Optional[dict]:
        """Buy one image, paying through the x402 handshake"""
        if not self.config.buyer_private_key:
            console.print("[red]BUYER_PRIVATE_KEY is not set[/red]")
            return None

        signer = ExactEvmSigner.from_key(self.config.buyer_private_key, [self.config.network])
        executor = PaymentExecutor(signer, self.client)

        try:
            response = await executor.call(self.gallery.buy_request(resource_id))
        except PixelPayError as e:
            logger.error("purchase_failed", resource_id=resource_id, error=str(e))
            console.print(f"[red]Purchase failed: {e}[/red]")
            return None

        data = response.json()
        settlement = settlement_from(response)

        console.print(f"[green]Purchased {data.get('id')}[/green]: {data.get('prompt')}")
        console.print(f"Image: {data.get('imageUrl')}")
        if settlement:
            console.print(f"Payment tx: {settlement.transaction}")
        if data.get("nft"):
            console.print(f"NFT: #{data['nft'].get('tokenId')} (tx {data['nft'].get('txHash')})")
        reward = data.get("tokenReward")
        if reward:
            console.print(f"Reward: {reward.get('amount')} {reward.get('token')} [{reward.get('status')}]")
        return data

    async def run_pipeline(self):
        """Run the autonomous pipeline once with an in-memory ledger"""
        services = build_services(self.config, db=InMemoryDatabase(), client=self.client)
        try:
            result = await services.scheduler.run_once()
        except PixelPayError as e:
            console.print(f"[red]Pipeline failed: {e}[/red]")
            return

        console.print(
            f"Checked [bold]{result.checked}[/bold], "
            f"unsold [bold]{result.unsold}[/bold], "
            f"purchased: [green]{result.purchased or '-'}[/green]"
        )

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()


async def main():
    """Main entry point for buyer CLI"""
    # Configure structured logging
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer()
        ]
    )

    cli = BuyerCLI()
    command = sys.argv[1] if len(sys.argv) > 1 else "gallery"

    if command == "gallery":
        cli.display_gallery(await cli.fetch_gallery())

    elif command == "buy" and len(sys.argv) > 2:
        await cli.buy(sys.argv[2])

    elif command == "run":
        await cli.run_pipeline()

    else:
        console.print("[red]Invalid command[/red]")
        console.print("Usage: python -m pixelpay.buyer.cli [gallery|buy <id>|run]")

    await cli.close()


if __name__ == "__main__":
    asyncio.run(main())
