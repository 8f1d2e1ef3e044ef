"""
Tests for the Mosaic quote client.
"""

from decimal import Decimal

import httpx
import pytest

from app.providers.mosaic import MosaicClient, MosaicError

BASE_URL = "https://mosaic.test/v1"
USDC = "0x83121c9f9b0527d1f056e21a950d6bf3b9e9e2e8353d0e95ccea726713cbea39"


def _quote_body(**overrides):
    body = {
        "code": 0,
        "message": "ok",
        "requestId": "req-123",
        "data": {
            "srcAsset": USDC,
            "dstAsset": "0xa",
            "srcAmount": 1000000,
            "dstAmount": 250000000,
            "feeAmount": 0,
            "isFeeIn": False,
            "paths": [{"source": "razor", "srcAmount": 1000000, "dstAmount": 250000000}],
            "tx": {
                "function": "0xede23ef2::router::swap",
                "typeArguments": [],
                "functionArguments": ["1000000", "247500000"],
            },
        },
    }
    body.update(overrides)
    return body


def _client(handler, api_key="mosaic-key") -> MosaicClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MosaicClient(api_key, BASE_URL, client=http)


async def _quote(client):
    return await client.get_quote(
        src_asset=USDC,
        dst_asset="0xa",
        amount_raw=1_000_000,
        sender="0x1",
        slippage_bps=100,
        dst_decimals=8,
    )


class TestGetQuote:

    @pytest.mark.asyncio
    async def test_parses_quote(self):
        def handler(request):
            assert request.url.path == "/v1/quote"
            assert request.headers["X-API-Key"] == "mosaic-key"
            params = request.url.params
            assert params["srcAsset"] == USDC
            assert params["dstAsset"] == "0xa"
            assert params["amount"] == "1000000"
            assert params["sender"] == "0x1"
            assert params["slippage"] == "100"
            return httpx.Response(200, json=_quote_body())

        quote = await _quote(_client(handler))

        assert quote.dst_amount_raw == 250_000_000
        assert quote.dst_amount == Decimal("2.5")
        assert quote.function == "0xede23ef2::router::swap"
        assert quote.function_arguments == ["1000000", "247500000"]
        assert quote.sources == ["razor"]
        assert quote.request_id == "req-123"

    @pytest.mark.asyncio
    async def test_nonzero_code(self):
        def handler(request):
            return httpx.Response(200, json=_quote_body(code=400, message="No route found"))

        with pytest.raises(MosaicError, match="No route found"):
            await _quote(_client(handler))

    @pytest.mark.asyncio
    async def test_http_error(self):
        def handler(request):
            return httpx.Response(500, json={})

        with pytest.raises(MosaicError, match="500"):
            await _quote(_client(handler))

    @pytest.mark.asyncio
    async def test_missing_payload(self):
        body = _quote_body()
        del body["data"]["tx"]

        def handler(request):
            return httpx.Response(200, json=body)

        with pytest.raises(MosaicError, match="no transaction payload"):
            await _quote(_client(handler))

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with pytest.raises(MosaicError, match="MOSAIC_API_KEY not configured"):
            await _quote(MosaicClient("", BASE_URL))
