"""
Integration tests for the buyer agent API
"""

import httpx
from fastapi.testclient import TestClient

from pixelpay.buyer.server import create_app
from pixelpay.buyer.wallet import MNEMONIC_SETTING, PRIVATE_KEY_SETTING
from pixelpay.models import LogType
from tests.conftest import BUYER_KEY
from tests.factories import PurchaseFactory

TEST_MNEMONIC = "test test test test test test test test test test test junk"
TEST_MNEMONIC_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


class TestBuyerEndpoints:
    def test_root(self, buyer_client):
        response = buyer_client.get("/")

        assert response.status_code == 200
        assert response.json()["name"] == "PixelPay Buyer Agent"

    def test_health(self, buyer_client):
        assert buyer_client.get("/health").json()["agent"] == "buyer"

    def test_status_without_wallet(self, buyer_client):
        data = buyer_client.get("/api/status").json()

        assert data["agent"] == "buyer"
        assert data["walletConfigured"] is False
        assert data["walletAddress"] is None
        assert data["totalPurchases"] == 0
        assert data["pipelineState"] == "idle"

    def test_purchases_listing(self, buyer_client, buyer_db):
        buyer_db.purchases.append(PurchaseFactory(id=1))
        buyer_db.purchases.append(PurchaseFactory(id=2))

        data = buyer_client.get("/api/purchases").json()
        status = buyer_client.get("/api/status").json()

        assert len(data) == 2
        assert status["totalPurchases"] == 2
        assert status["totalSpent"] == 0.02

    def test_logs_newest_first(self, buyer_client, buyer_db):
        buyer_client.post("/api/trigger")
        buyer_client.post("/api/trigger")

        logs = buyer_client.get("/api/logs", params={"limit": 1}).json()
        assert len(logs) == 1
        assert logs[0]["type"] == LogType.ERROR.value


class TestWalletEndpoints:
    def test_no_wallet(self, buyer_client):
        assert buyer_client.get("/api/wallet").json() == {"configured": False}

    def test_configure_private_key(self, buyer_client, buyer_db, test_buyer_account):
        response = buyer_client.post("/api/wallet", json={"privateKey": BUYER_KEY[2:]})

        assert response.status_code == 200
        assert response.json() == {"success": True, "address": test_buyer_account.address, "type": "privateKey"}
        assert buyer_db.settings[PRIVATE_KEY_SETTING] == BUYER_KEY
        assert buyer_client.get("/api/wallet").json() == {"configured": True, "address": test_buyer_account.address}

    def test_mnemonic_takes_priority(self, buyer_client, buyer_db):
        response = buyer_client.post("/api/wallet", json={"privateKey": BUYER_KEY, "mnemonic": TEST_MNEMONIC})

        assert response.json()["address"] == TEST_MNEMONIC_ADDRESS
        assert response.json()["type"] == "mnemonic"
        assert PRIVATE_KEY_SETTING not in buyer_db.settings

    def test_replacing_mnemonic_with_key(self, buyer_client, buyer_db, test_buyer_account):
        buyer_client.post("/api/wallet", json={"mnemonic": TEST_MNEMONIC})
        buyer_client.post("/api/wallet", json={"privateKey": BUYER_KEY})

        assert MNEMONIC_SETTING not in buyer_db.settings
        assert buyer_client.get("/api/wallet").json()["address"] == test_buyer_account.address

    def test_invalid_private_key(self, buyer_client):
        response = buyer_client.post("/api/wallet", json={"privateKey": "0x1234"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid private key"}

    def test_invalid_mnemonic(self, buyer_client):
        response = buyer_client.post("/api/wallet", json={"mnemonic": "not a real phrase"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid mnemonic phrase"}

    def test_missing_material(self, buyer_client):
        response = buyer_client.post("/api/wallet", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "privateKey or mnemonic is required"}

    def test_delete_wallet(self, buyer_client, buyer_db):
        buyer_client.post("/api/wallet", json={"privateKey": BUYER_KEY})

        response = buyer_client.delete("/api/wallet")

        assert response.json() == {"success": True}
        assert buyer_db.settings == {}
        assert buyer_client.get("/api/wallet").json() == {"configured": False}


class TestTrigger:
    def test_trigger_without_wallet(self, buyer_client):
        response = buyer_client.post("/api/trigger")

        assert response.status_code == 500
        assert "Wallet not configured" in response.json()["error"]

    def test_trigger_with_unreachable_seller(self, buyer_config, buyer_db):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        buyer_client = TestClient(create_app(buyer_config, db=buyer_db, client=client))
        buyer_client.post("/api/wallet", json={"privateKey": BUYER_KEY})

        response = buyer_client.post("/api/trigger")

        assert response.status_code == 500
        assert "gallery unavailable" in response.json()["error"]

    def test_trigger_with_malformed_gallery(self, buyer_config, buyer_db):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>maintenance</html>"))
        )
        buyer_client = TestClient(create_app(buyer_config, db=buyer_db, client=client))
        buyer_client.post("/api/wallet", json={"privateKey": BUYER_KEY})

        response = buyer_client.post("/api/trigger")

        assert response.status_code == 500
        assert response.json()["error"]
        errors = [e for e in buyer_db.logs if e.type == LogType.ERROR.value]
        assert errors[-1].message.startswith("Failed to fetch gallery")
