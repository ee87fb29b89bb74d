"""
Unit tests for post-sale side effects and the reward reserve rule
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account

from pixelpay.chain.client import TRANSFER_EVENT_TOPIC, transfer_token_id
from pixelpay.chain.contracts import (
    REWARD_TOKEN_SETTING,
    MintResult,
    RewardSkipped,
    RewardToken,
    RewardTransfer,
    format_units,
    parse_units,
    reserve_allows,
)
from pixelpay.database import InMemoryDatabase
from pixelpay.database.settings import SettingsStore
from pixelpay.errors import ContractNotConfigured
from pixelpay.models import LogType, RewardStatus
from pixelpay.seller.side_effects import SaleSideEffects, metadata_uri_for
from tests.factories import ResourceFactory

BUYER = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"
TOKEN = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def _chain(call_results=None, transact_result=("0xreward", {"status": 1, "logs": []})):
    chain = MagicMock()
    chain.address = Account.create().address
    chain.call = AsyncMock(side_effect=call_results or [])
    chain.transact = AsyncMock(return_value=transact_result)
    return chain


@pytest.fixture
def db():
    return InMemoryDatabase()


@pytest.fixture
def resource(db):
    item = ResourceFactory(sold=True)
    db.resources[item.id] = item
    return item


class TestReserveRule:
    def test_exactly_five_percent_left(self):
        assert reserve_allows(1000, 950)

    def test_below_reserve(self):
        assert not reserve_allows(1000, 951)

    def test_empty_balance(self):
        assert not reserve_allows(0, 1)

    def test_units(self):
        assert parse_units("100", 18) == 100 * 10**18
        assert format_units(1500000, 6) == "1.5"
        assert format_units(0, 18) == "0"


class TestRewardToken:
    @pytest.mark.asyncio
    async def test_unconfigured_token_raises(self, db):
        token = RewardToken(_chain(), SettingsStore(db))

        assert not await token.is_configured()
        with pytest.raises(ContractNotConfigured):
            await token.transfer_reward(BUYER)

    @pytest.mark.asyncio
    async def test_transfer_within_reserve(self, db):
        db.settings[REWARD_TOKEN_SETTING] = TOKEN
        chain = _chain(call_results=[18, parse_units("1000", 18)])
        chain.contract = MagicMock()
        token = RewardToken(chain, SettingsStore(db))

        result = await token.transfer_reward(BUYER)

        assert result.amount == "100"
        assert result.tx_hash == "0xreward"
        chain.contract.return_value.functions.transfer.assert_called_once_with(BUYER, parse_units("100", 18))

    @pytest.mark.asyncio
    async def test_reserve_breach_skips(self, db):
        db.settings[REWARD_TOKEN_SETTING] = TOKEN
        chain = _chain(call_results=[18, parse_units("100", 18)])
        chain.contract = MagicMock()
        token = RewardToken(chain, SettingsStore(db))

        result = await token.transfer_reward(BUYER)

        assert isinstance(result, RewardSkipped)
        assert result.reason.startswith("Insufficient creator balance")
        chain.transact.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reward_amount_from_settings(self, db):
        db.settings["reward_per_purchase"] = "25"
        token = RewardToken(_chain(), SettingsStore(db))

        assert await token.reward_amount() == "25"


class TestSaleSideEffects:
    @pytest.mark.asyncio
    async def test_mark_sold_once(self, db):
        item = ResourceFactory()
        db.resources[item.id] = item
        effects = SaleSideEffects(db)

        assert await effects.mark_sold(item, BUYER) is True
        assert await effects.mark_sold(item, BUYER) is False
        assert db.resources[item.id].sold
        assert [e.metadata.get("alreadySold", False) for e in db.logs] == [False, True]

    @pytest.mark.asyncio
    async def test_no_contracts_configured(self, db, resource):
        effects = SaleSideEffects(db)

        nft, reward = await effects.distribute(resource, BUYER)

        assert nft.status == RewardStatus.SKIPPED
        assert reward.status == RewardStatus.SKIPPED
        assert len(db.rewards) == 1
        assert db.rewards[0].amount == "0"
        assert db.rewards[0].status == RewardStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_successful_reward(self, db, resource):
        reward_token = MagicMock()
        reward_token.is_configured = AsyncMock(return_value=True)
        reward_token.transfer_reward = AsyncMock(return_value=RewardTransfer(tx_hash="0xr", amount="100"))
        effects = SaleSideEffects(db, reward_token=reward_token)

        result = await effects.distribute_reward(resource, BUYER)

        assert result.succeeded
        assert result.data == {"amount": "100", "txHash": "0xr"}
        row = db.rewards[0]
        assert row.amount == "100"
        assert row.tx_hash == "0xr"
        assert row.buyer_address == BUYER
        assert LogType.TOKEN_REWARD.value in [e.type for e in db.logs]

    @pytest.mark.asyncio
    async def test_reserve_breach_records_skipped_row(self, db, resource):
        db.settings[REWARD_TOKEN_SETTING] = TOKEN
        chain = _chain(call_results=[18, parse_units("50", 18)])
        chain.contract = MagicMock()
        effects = SaleSideEffects(db, reward_token=RewardToken(chain, SettingsStore(db)))

        result = await effects.distribute_reward(resource, BUYER)

        assert result.status == RewardStatus.SKIPPED
        assert db.rewards[0].status == RewardStatus.SKIPPED
        assert db.rewards[0].amount == "0"
        assert db.logs[-1].type == LogType.TOKEN_SKIP.value
        assert "Insufficient creator balance" in db.logs[-1].message

    @pytest.mark.asyncio
    async def test_reward_error_records_failed_row(self, db, resource):
        reward_token = MagicMock()
        reward_token.is_configured = AsyncMock(return_value=True)
        reward_token.transfer_reward = AsyncMock(side_effect=TimeoutError())
        effects = SaleSideEffects(db, reward_token=reward_token)

        result = await effects.distribute_reward(resource, BUYER)

        assert result.status == RewardStatus.FAILED
        assert len(db.rewards) == 1
        assert db.rewards[0].status == RewardStatus.FAILED
        assert LogType.TOKEN_ERROR.value in [e.type for e in db.logs]

    @pytest.mark.asyncio
    async def test_mint_and_reward_are_independent(self, db, resource):
        minter = MagicMock()
        minter.is_configured = AsyncMock(return_value=True)
        minter.mint = AsyncMock(side_effect=RuntimeError("reverted"))
        reward_token = MagicMock()
        reward_token.is_configured = AsyncMock(return_value=True)
        reward_token.transfer_reward = AsyncMock(return_value=RewardTransfer(tx_hash="0xr", amount="100"))
        effects = SaleSideEffects(db, minter=minter, reward_token=reward_token)

        nft, reward = await effects.distribute(resource, BUYER)

        assert nft.status == RewardStatus.FAILED
        assert "reverted" in nft.detail
        assert reward.succeeded

    @pytest.mark.asyncio
    async def test_unknown_payer_skips_everything(self, db, resource):
        minter = MagicMock()
        minter.is_configured = AsyncMock(return_value=True)
        effects = SaleSideEffects(db, minter=minter)

        nft, reward = await effects.distribute(resource, None)

        assert nft.status == RewardStatus.SKIPPED
        assert reward.status == RewardStatus.SKIPPED
        minter.is_configured.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_catalog_write_failure_after_mint(self, db, resource):
        minter = MagicMock()
        minter.is_configured = AsyncMock(return_value=True)
        minter.mint = AsyncMock(return_value=MintResult(token_id=3, tx_hash="0xmint"))
        db.add_provenance = AsyncMock(side_effect=RuntimeError("disk full"))
        effects = SaleSideEffects(db, minter=minter)

        nft, reward = await effects.distribute(resource, BUYER)

        assert nft.succeeded
        assert nft.data["tokenId"] == 3
        assert reward.status == RewardStatus.SKIPPED
        assert len(db.rewards) == 1

    @pytest.mark.asyncio
    async def test_settings_read_failure_fails_both_steps(self, db, resource):
        minter = MagicMock()
        minter.is_configured = AsyncMock(side_effect=RuntimeError("settings offline"))
        reward_token = MagicMock()
        reward_token.is_configured = AsyncMock(side_effect=RuntimeError("settings offline"))
        effects = SaleSideEffects(db, minter=minter, reward_token=reward_token)

        nft, reward = await effects.distribute(resource, BUYER)

        assert nft.status == RewardStatus.FAILED
        assert "settings offline" in nft.detail
        assert reward.status == RewardStatus.FAILED
        assert db.rewards[0].status == RewardStatus.FAILED

    @pytest.mark.asyncio
    async def test_reward_row_failure_is_contained(self, db, resource):
        db.add_reward = AsyncMock(side_effect=RuntimeError("insert failed"))
        db.add_log = AsyncMock(side_effect=RuntimeError("insert failed"))

        result = await SaleSideEffects(db).distribute_reward(resource, BUYER)

        assert result.status == RewardStatus.SKIPPED
        assert result.data == {"amount": "0"}
        db.add_reward.assert_awaited_once()

    def test_metadata_uri(self):
        assert metadata_uri_for("https://pixelpay.example/", "abc") == "https://pixelpay.example/api/gallery/abc/metadata"


class TestTransferLog:
    def test_token_id_from_mint_receipt(self):
        receipt = {
            "logs": [
                {"topics": ["0x" + "00" * 32]},
                {
                    "topics": [
                        TRANSFER_EVENT_TOPIC,
                        "0x" + "00" * 32,
                        "0x" + "00" * 12 + "11" * 20,
                        "0x" + "00" * 31 + "2a",
                    ]
                },
            ]
        }

        assert transfer_token_id(receipt) == 42

    def test_missing_transfer_log(self):
        assert transfer_token_id({"logs": []}) is None
