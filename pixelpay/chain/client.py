"""
Async EVM access for PixelPay
Wraps AsyncWeb3 with the operator account and bounded waits
"""

import asyncio
from typing import Any, Optional, Tuple

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3
import structlog

logger = structlog.get_logger()

# ERC-20 Transfer(address,address,uint256) / ERC-721 Transfer(address,address,uint256)
TRANSFER_EVENT_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


class ChainClient:
    """
    Thin async wrapper around AsyncWeb3.

    Every call is bounded by ``timeout`` seconds; exceeding it raises
    asyncio.TimeoutError which callers treat as an ordinary failure.
    """

    def __init__(
        self,
        rpc_url: str,
        account: Optional[LocalAccount] = None,
        timeout: float = 120.0,
        w3: Optional[AsyncWeb3] = None,
    ):
        self.rpc_url = rpc_url
        self.account = account
        self.timeout = timeout
        self.w3 = w3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
        )

    @classmethod
    def from_private_key(cls, rpc_url: str, private_key: str, timeout: float = 120.0) -> "ChainClient":
        account = Account.from_key(private_key) if private_key else None
        return cls(rpc_url, account=account, timeout=timeout)

    @property
    def address(self) -> Optional[str]:
        return self.account.address if self.account else None

    def contract(self, address: str, abi: list):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    async def call(self, function) -> Any:
        """Execute a read-only contract call"""
        return await asyncio.wait_for(function.call(), timeout=self.timeout)

    async def native_balance(self, address: str) -> int:
        return await asyncio.wait_for(
            self.w3.eth.get_balance(Web3.to_checksum_address(address)),
            timeout=self.timeout,
        )

    async def transact(self, function) -> Tuple[str, Any]:
        """
        Build, sign and submit a contract transaction from the operator
        account, then wait for its receipt.

        Returns:
            Tuple of (tx_hash, receipt)

        Raises:
            RuntimeError: no operator account, or the transaction reverted
            asyncio.TimeoutError: the receipt did not arrive in time
        """
        if self.account is None:
            raise RuntimeError("Operator account not configured")

        async def _submit() -> Tuple[str, Any]:
            nonce = await self.w3.eth.get_transaction_count(self.account.address)
            tx = await function.build_transaction({
                "from": self.account.address,
                "nonce": nonce,
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.timeout)
            return Web3.to_hex(tx_hash), receipt

        tx_hash, receipt = await asyncio.wait_for(_submit(), timeout=self.timeout)

        if receipt["status"] != 1:
            logger.error("transaction_reverted", tx_hash=tx_hash)
            raise RuntimeError(f"Transaction reverted on-chain: {tx_hash}")

        logger.info(
            "transaction_confirmed",
            tx_hash=tx_hash,
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
        )
        return tx_hash, receipt


def _as_hex(value: Any) -> str:
    return value if isinstance(value, str) else Web3.to_hex(value)


def transfer_token_id(receipt: Any) -> Optional[int]:
    """Read the token id from the first Transfer log of a mint receipt"""
    for log in receipt.get("logs", []):
        topics = log.get("topics", [])
        if len(topics) < 4:
            continue
        if _as_hex(topics[0]).lower() == TRANSFER_EVENT_TOPIC:
            return int(_as_hex(topics[3]), 16)
    return None
