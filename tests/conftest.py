"""
Pytest configuration and shared fixtures
"""

import pytest
from eth_account import Account
from fastapi.testclient import TestClient

from pixelpay.buyer.server import create_app as create_buyer_app
from pixelpay.config import BuyerConfig, SellerConfig
from pixelpay.database import InMemoryDatabase
from pixelpay.payments.codec import PAYMENT_REQUIRED_HEADER, decode_requirement, encode_payload
from pixelpay.payments.signer import ExactEvmSigner
from pixelpay.seller.dependencies import limiter
from pixelpay.seller.server import create_app as create_seller_app

SELLER_KEY = "0x1234567890abcdef1234567890abcdef1234567890abcdef1234567890abcdef"
BUYER_KEY = "0xabcdef1234567890abcdef1234567890abcdef1234567890abcdef1234567890"


@pytest.fixture
def test_seller_account():
    """Create a test seller account"""
    return Account.from_key(SELLER_KEY)


@pytest.fixture
def test_buyer_account():
    """Create a test buyer account"""
    return Account.from_key(BUYER_KEY)


@pytest.fixture
def seller_config(test_seller_account) -> SellerConfig:
    """Seller config isolated from the environment: local authority, simulated settlement"""
    return SellerConfig(
        _env_file=None,
        pay_to_address=test_seller_account.address,
        seller_private_key="",
        facilitator_url="",
        testnet_mode=True,
        openai_api_key="",
        seed_images_on_startup=0,
        supabase_url="",
        supabase_key="",
    )


@pytest.fixture
def buyer_config(tmp_path) -> BuyerConfig:
    return BuyerConfig(
        _env_file=None,
        buyer_private_key="",
        seller_url="http://seller",
        scheduler_enabled=False,
        anthropic_api_key="",
        storage_dir=str(tmp_path / "purchases"),
        supabase_url="",
        supabase_key="",
    )


@pytest.fixture
def catalog() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def seller_app(seller_config, catalog):
    return create_seller_app(seller_config, db=catalog)


@pytest.fixture
def seller_client(seller_app) -> TestClient:
    """Create FastAPI test client (sync)"""
    return TestClient(seller_app)


@pytest.fixture
def buyer_db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def buyer_client(buyer_config, buyer_db) -> TestClient:
    return TestClient(create_buyer_app(buyer_config, db=buyer_db))


@pytest.fixture
def buyer_signer(test_buyer_account, seller_config) -> ExactEvmSigner:
    return ExactEvmSigner(test_buyer_account, [seller_config.network])


@pytest.fixture
def pay(buyer_signer):
    """Turn a 402 response into the headers of a paid retry"""

    def _pay(response) -> dict:
        requirement = decode_requirement(response.headers[PAYMENT_REQUIRED_HEADER])
        payload = buyer_signer.sign(requirement.accepts[0])
        return {"PAYMENT-SIGNATURE": encode_payload(payload)}

    return _pay


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Rate limit counters are process-wide"""
    limiter.reset()
    yield
