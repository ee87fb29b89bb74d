"""
Tests for the buyer CLI
"""

import httpx
import pytest
import pytest_asyncio

from pixelpay.buyer.cli import BuyerCLI
from tests.conftest import BUYER_KEY
from tests.factories import GalleryItemFactory, ResourceFactory


@pytest_asyncio.fixture
async def seller_http(seller_app):
    transport = httpx.ASGITransport(app=seller_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://seller") as client:
        yield client


class TestBuyerCLI:
    @pytest.mark.asyncio
    async def test_fetch_gallery(self, buyer_config, seller_http, catalog):
        resource = ResourceFactory()
        catalog.resources[resource.id] = resource

        items = await BuyerCLI(buyer_config, seller_http).fetch_gallery()

        assert [item.id for item in items] == [resource.id]

    @pytest.mark.asyncio
    async def test_fetch_gallery_failure_is_empty(self, buyer_config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await BuyerCLI(buyer_config, client).fetch_gallery() == []

    def test_display_gallery(self, buyer_config, capsys):
        cli = BuyerCLI(buyer_config, httpx.AsyncClient())

        cli.display_gallery([GalleryItemFactory(prompt="moonlit harbor", sold=True)])
        cli.display_gallery([])

        output = capsys.readouterr().out
        assert "moonlit harbor" in output
        assert "Gallery is empty" in output

    @pytest.mark.asyncio
    async def test_buy_requires_key(self, buyer_config, seller_http):
        assert await BuyerCLI(buyer_config, seller_http).buy("anything") is None

    @pytest.mark.asyncio
    async def test_buy(self, buyer_config, seller_http, catalog):
        resource = ResourceFactory()
        catalog.resources[resource.id] = resource
        config = buyer_config.model_copy(update={"buyer_private_key": BUYER_KEY})

        data = await BuyerCLI(config, seller_http).buy(resource.id)

        assert data["id"] == resource.id
        assert data["purchased"] is True
        assert catalog.resources[resource.id].sold

    @pytest.mark.asyncio
    async def test_buy_sold_image(self, buyer_config, seller_http, catalog):
        resource = ResourceFactory(sold=True)
        catalog.resources[resource.id] = resource
        config = buyer_config.model_copy(update={"buyer_private_key": BUYER_KEY})

        assert await BuyerCLI(config, seller_http).buy(resource.id) is None
