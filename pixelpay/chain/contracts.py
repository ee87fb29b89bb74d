"""
Provenance NFT and reward token contracts
Deployed addresses are read from the settings store
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

import structlog

from pixelpay.chain.client import ChainClient, transfer_token_id
from pixelpay.database.settings import SettingsStore
from pixelpay.errors import ContractNotConfigured

logger = structlog.get_logger()

NFT_CONTRACT_SETTING = "nft_contract_address"
REWARD_TOKEN_SETTING = "reward_token_address"
REWARD_AMOUNT_SETTING = "reward_per_purchase"

DEFAULT_REWARD_AMOUNT = "100"

# Percentage of the operator's own balance that is never distributed
RESERVE_PERCENT = 5

# Minimal ERC20 ABI for balances, rewards and EIP-3009 settlement
ERC20_ABI = [
    {
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    # EIP-3009: transferWithAuthorization for gasless transfers
    {
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "validAfter", "type": "uint256"},
            {"name": "validBefore", "type": "uint256"},
            {"name": "nonce", "type": "bytes32"},
            {"name": "v", "type": "uint8"},
            {"name": "r", "type": "bytes32"},
            {"name": "s", "type": "bytes32"},
        ],
        "name": "transferWithAuthorization",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    # Check if authorization nonce has been used
    {
        "inputs": [
            {"name": "authorizer", "type": "address"},
            {"name": "nonce", "type": "bytes32"},
        ],
        "name": "authorizationState",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
]

PROVENANCE_NFT_ABI = [
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "uri", "type": "string"},
        ],
        "name": "mint",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "tokenURI",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def parse_units(amount: str, decimals: int) -> int:
    return int(Decimal(amount) * (Decimal(10) ** decimals))


def format_units(raw: int, decimals: int) -> str:
    value = Decimal(raw) / (Decimal(10) ** decimals)
    return format(value.normalize(), "f")


def reserve_allows(balance: int, amount: int, reserve_percent: int = RESERVE_PERCENT) -> bool:
    """True when sending ``amount`` keeps at least ``reserve_percent`` of ``balance``"""
    min_hold = balance * reserve_percent // 100
    return balance - amount >= min_hold


@dataclass
class MintResult:
    token_id: int
    tx_hash: str


@dataclass
class RewardTransfer:
    tx_hash: str
    amount: str


@dataclass
class RewardSkipped:
    reason: str


class ProvenanceMinter:
    """Mints ERC-721 provenance tokens to buyers"""

    def __init__(self, chain: ChainClient, settings: SettingsStore):
        self.chain = chain
        self.settings = settings

    async def _contract(self):
        address = await self.settings.load(NFT_CONTRACT_SETTING)
        if not address:
            raise ContractNotConfigured(NFT_CONTRACT_SETTING)
        return self.chain.contract(address, PROVENANCE_NFT_ABI)

    async def is_configured(self) -> bool:
        return bool(await self.settings.load(NFT_CONTRACT_SETTING))

    async def mint(self, to: str, metadata_uri: str) -> MintResult:
        contract = await self._contract()
        tx_hash, receipt = await self.chain.transact(contract.functions.mint(to, metadata_uri))

        token_id = transfer_token_id(receipt)
        if token_id is None:
            token_id = 0
            logger.warning("mint_transfer_log_missing", tx_hash=tx_hash)

        logger.info("nft_minted", token_id=token_id, to=to, tx_hash=tx_hash)
        return MintResult(token_id=token_id, tx_hash=tx_hash)


class RewardToken:
    """ERC-20 reward token distributed to buyers after each purchase"""

    def __init__(self, chain: ChainClient, settings: SettingsStore):
        self.chain = chain
        self.settings = settings

    async def _contract(self):
        address = await self.settings.load(REWARD_TOKEN_SETTING)
        if not address:
            raise ContractNotConfigured(REWARD_TOKEN_SETTING)
        return self.chain.contract(address, ERC20_ABI)

    async def is_configured(self) -> bool:
        return bool(await self.settings.load(REWARD_TOKEN_SETTING))

    async def reward_amount(self) -> str:
        return await self.settings.load(REWARD_AMOUNT_SETTING) or DEFAULT_REWARD_AMOUNT

    async def transfer_reward(
        self,
        to: str,
        amount: Optional[str] = None,
    ) -> Union[RewardTransfer, RewardSkipped]:
        """
        Send the per-purchase reward to ``to``, keeping the operator reserve.

        Returns:
            RewardTransfer on success, RewardSkipped when the reserve rule blocks it
        """
        contract = await self._contract()
        operator = self.chain.address
        if operator is None:
            raise RuntimeError("Operator account not configured")

        reward = amount or await self.reward_amount()
        decimals = int(await self.chain.call(contract.functions.decimals()))
        parsed_amount = parse_units(reward, decimals)

        balance = int(await self.chain.call(contract.functions.balanceOf(operator)))
        if not reserve_allows(balance, parsed_amount):
            min_hold = balance * RESERVE_PERCENT // 100
            reason = (
                f"Insufficient creator balance (have: {format_units(balance, decimals)}, "
                f"need to keep: {format_units(min_hold, decimals)})"
            )
            logger.info("reward_skipped", reason=reason, to=to)
            return RewardSkipped(reason=reason)

        tx_hash, _ = await self.chain.transact(contract.functions.transfer(to, parsed_amount))
        logger.info("reward_sent", amount=reward, to=to, tx_hash=tx_hash)
        return RewardTransfer(tx_hash=tx_hash, amount=reward)

    async def balance_of(self, address: str) -> str:
        contract = await self._contract()
        decimals = int(await self.chain.call(contract.functions.decimals()))
        raw = int(await self.chain.call(contract.functions.balanceOf(address)))
        return format_units(raw, decimals)

    async def token_info(self) -> dict:
        contract = await self._contract()
        address = await self.settings.load(REWARD_TOKEN_SETTING)
        total_supply = int(await self.chain.call(contract.functions.totalSupply()))
        decimals = int(await self.chain.call(contract.functions.decimals()))
        creator_balance = 0
        if self.chain.address:
            creator_balance = int(await self.chain.call(contract.functions.balanceOf(self.chain.address)))

        creator_percent = (creator_balance * 10000 // total_supply) / 100 if total_supply > 0 else 0

        return {
            "address": address,
            "totalSupply": format_units(total_supply, decimals),
            "creatorBalance": format_units(creator_balance, decimals),
            "creatorPercent": creator_percent,
            "rewardPerPurchase": await self.reward_amount(),
            "decimals": decimals,
        }
