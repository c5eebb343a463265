"""
Unit tests for the HTTP ledger gateway using httpx's mock transport.
"""

import json

import httpx
import pytest

from sdk.arfs_sdk.config import Settings
from sdk.arfs_sdk.crypto import b64url_encode
from sdk.arfs_sdk.errors import LedgerConnectionError, LedgerError
from sdk.arfs_sdk.ledger.base import TagFilter
from sdk.arfs_sdk.ledger.http import HttpLedgerGateway
from tests.factories import FakeWallet


def gateway_with(handler):
    settings = Settings(gateway_url="https://gw.test")
    client = httpx.AsyncClient(base_url="https://gw.test", transport=httpx.MockTransport(handler))
    return HttpLedgerGateway(settings, client=client)


class TestHttpLedgerGateway:
    @pytest.mark.asyncio
    async def test_query_posts_graphql(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"data": {"transactions": {"pageInfo": {"hasNextPage": False}, "edges": []}}},
            )

        async with gateway_with(handler) as gateway:
            page = await gateway.query([TagFilter.of("Drive-Id", "d1")], first=10)

        assert seen["path"] == "/graphql"
        assert seen["body"]["variables"]["tags"] == [{"name": "Drive-Id", "values": ["d1"]}]
        assert page.edges == ()

    @pytest.mark.asyncio
    async def test_get_tags_decodes_base64url(self):
        def handler(request):
            assert request.url.path == "/tx/tx1/tags"
            return httpx.Response(
                200,
                json=[{"name": b64url_encode(b"Cipher-IV"), "value": b64url_encode(b"iv-value")}],
            )

        async with gateway_with(handler) as gateway:
            tags = await gateway.get_tags("tx1")

        assert tags[0].name == "Cipher-IV"
        assert tags[0].value == "iv-value"

    @pytest.mark.asyncio
    async def test_create_transaction_prices_and_anchors(self):
        def handler(request):
            if request.url.path == "/price/5":
                return httpx.Response(200, text="1234")
            if request.url.path == "/tx_anchor":
                return httpx.Response(200, text="anchor-1")
            return httpx.Response(404)

        async with gateway_with(handler) as gateway:
            tx = await gateway.create_transaction(b"hello", FakeWallet())

        assert tx.reward == 1234
        assert tx.anchor == "anchor-1"

    @pytest.mark.asyncio
    async def test_pending_status(self):
        async with gateway_with(lambda r: httpx.Response(202)) as gateway:
            status = await gateway.get_status("tx1")
        assert status.block_height is None

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        async with gateway_with(lambda r: httpx.Response(500)) as gateway:
            with pytest.raises(LedgerError) as exc_info:
                await gateway.get_data("tx1")
        assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_transport_error_raises_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with gateway_with(handler) as gateway:
            with pytest.raises(LedgerConnectionError):
                await gateway.get_balance("addr")
