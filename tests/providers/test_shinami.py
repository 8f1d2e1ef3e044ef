import json

import httpx
import pytest

from app.providers.shinami import GasStationClient, GasStationError

URL = "https://gas.test/v1"


def _client(handler, api_key="gas-key") -> GasStationClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GasStationClient(api_key, URL, client=http)


@pytest.mark.asyncio
async def test_sponsor_transaction():
    raw_txn = {"sender": "0x1", "sequence_number": "3"}

    def handler(request):
        assert request.headers["X-Api-Key"] == "gas-key"
        body = json.loads(request.content)
        assert body["method"] == "gas_sponsorTransaction"
        assert body["params"] == [raw_txn]
        return httpx.Response(
            200,
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "result": {
                    "feePayer": {"address": "0xfee", "publicKey": "0xpk", "signature": "0xsig"},
                    "signingMessage": "0xabcd",
                },
            },
        )

    fee_payer = await _client(handler).sponsor_transaction(raw_txn)

    assert fee_payer.address == "0xfee"
    assert fee_payer.signing_message == "0xabcd"
    assert fee_payer.to_authenticator() == {
        "type": "ed25519_signature",
        "public_key": "0xpk",
        "signature": "0xsig",
    }


@pytest.mark.asyncio
async def test_rpc_error():
    def handler(request):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "Fund exhausted"}})

    with pytest.raises(GasStationError, match="Fund exhausted"):
        await _client(handler).sponsor_transaction({})


@pytest.mark.asyncio
async def test_http_error():
    def handler(request):
        return httpx.Response(401, json={})

    with pytest.raises(GasStationError):
        await _client(handler).sponsor_transaction({})


@pytest.mark.asyncio
async def test_not_configured():
    client = GasStationClient("", URL)

    assert client.is_configured() is False
    assert (await client.health_check())["status"] == "disabled"
    with pytest.raises(GasStationError, match="not configured"):
        await client.sponsor_transaction({})
