"""
Tests for configuration management
"""

import pytest

from pixelpay.config import DEFAULT_NETWORK, BuyerConfig, SellerConfig
from pixelpay.database import InMemoryDatabase, SupabaseDatabase, create_database


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host environment variables out of default checks"""
    for name in (
        "NETWORK",
        "SELLER_PORT",
        "SELLER_PRIVATE_KEY",
        "BUYER_PRIVATE_KEY",
        "SERVER_URL",
        "SUPABASE_URL",
        "SUPABASE_KEY",
        "LOG_LEVEL",
        "BUYER_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


class TestConfigurationLoading:
    """Test configuration loading and validation"""

    def test_seller_config_defaults(self):
        config = SellerConfig(_env_file=None)

        assert config.seller_port == 4001
        assert config.network == DEFAULT_NETWORK
        assert config.price_usd == "0.01"
        assert config.testnet_mode is True
        assert config.facilitator_url == ""

    def test_buyer_config_defaults(self):
        config = BuyerConfig(_env_file=None)

        assert config.buyer_port == 4002
        assert config.seller_url == "http://localhost:4001"
        assert config.buyer_interval_seconds == 300
        assert config.buyer_initial_delay_seconds == 120

    def test_config_validates_private_key_format(self):
        """Private keys gain a 0x prefix"""
        config = SellerConfig(_env_file=None, seller_private_key="1234abcd")
        assert config.seller_private_key == "0x1234abcd"

        config = BuyerConfig(_env_file=None, buyer_private_key="0x1234abcd")
        assert config.buyer_private_key == "0x1234abcd"

    def test_config_environment_variables(self, monkeypatch):
        monkeypatch.setenv("SELLER_PORT", "9000")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("BUYER_INTERVAL_SECONDS", "60")

        assert SellerConfig(_env_file=None).seller_port == 9000
        assert SellerConfig(_env_file=None).log_level == "DEBUG"
        assert BuyerConfig(_env_file=None).buyer_interval_seconds == 60

    def test_public_url(self):
        assert SellerConfig(_env_file=None).public_url == "http://localhost:4001"
        assert SellerConfig(_env_file=None, server_url="https://pixelpay.example").public_url == "https://pixelpay.example"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValueError):
            SellerConfig(_env_file=None, log_level="LOUD")


class TestDatabaseSelection:
    def test_memory_without_credentials(self):
        assert isinstance(create_database(SellerConfig(_env_file=None)), InMemoryDatabase)

    def test_supabase_with_credentials(self, monkeypatch):
        created = {}

        def fake_create_client(url, key):
            created["url"] = url
            return object()

        monkeypatch.setattr("pixelpay.database.supabase_client.create_client", fake_create_client)
        config = BuyerConfig(_env_file=None, supabase_url="https://db.example", supabase_key="anon")

        db = create_database(config, table_prefix="buyer_")

        assert isinstance(db, SupabaseDatabase)
        assert created["url"] == "https://db.example"
        assert db.table_prefix == "buyer_"
