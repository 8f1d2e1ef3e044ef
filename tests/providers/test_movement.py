"""
Tests for the Movement REST client.
"""

import json

import httpx
import pytest

from app.providers.movement import (
    MovementClient,
    MovementError,
    TransactionFailedError,
    TransactionPendingError,
)

RPC = "https://rpc.test/v1"
TX_HASH = "0x" + "aa" * 32


def _client(handler, **kwargs) -> MovementClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MovementClient(RPC, client=http, poll_interval_s=0, **kwargs)


class TestReads:

    @pytest.mark.asyncio
    async def test_sequence_number(self):
        def handler(request):
            assert request.url.path == "/v1/accounts/0x1"
            return httpx.Response(200, json={"sequence_number": "42", "authentication_key": "0x1"})

        assert await _client(handler).get_account_sequence_number("0x1") == 42

    @pytest.mark.asyncio
    async def test_gas_price(self):
        def handler(request):
            return httpx.Response(200, json={"gas_estimate": 100, "prioritized_gas_estimate": 150})

        assert await _client(handler).estimate_gas_price() == 100

    @pytest.mark.asyncio
    async def test_view(self):
        def handler(request):
            body = json.loads(request.content)
            assert body == {
                "function": "0x1::coin::balance",
                "type_arguments": ["0x1::aptos_coin::AptosCoin"],
                "arguments": ["0x1"],
            }
            return httpx.Response(200, json=["12345"])

        result = await _client(handler).view(
            "0x1::coin::balance", ["0x1::aptos_coin::AptosCoin"], ["0x1"]
        )
        assert result == ["12345"]

    @pytest.mark.asyncio
    async def test_error_message(self):
        def handler(request):
            return httpx.Response(404, json={"message": "Account not found", "error_code": "account_not_found"})

        with pytest.raises(MovementError, match="Account not found"):
            await _client(handler).get_account_sequence_number("0x1")

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        with pytest.raises(MovementError, match="unreachable"):
            await _client(handler).estimate_gas_price()


class TestSubmission:

    @pytest.mark.asyncio
    async def test_submit_returns_hash(self):
        def handler(request):
            assert request.method == "POST"
            assert request.url.path == "/v1/transactions"
            return httpx.Response(202, json={"hash": TX_HASH, "type": "pending_transaction"})

        assert await _client(handler).submit_transaction({"sender": "0x1"}) == TX_HASH

    @pytest.mark.asyncio
    async def test_encode_submission(self):
        def handler(request):
            assert request.url.path == "/v1/transactions/encode_submission"
            return httpx.Response(200, json="0xdeadbeef")

        assert await _client(handler).encode_submission({"sender": "0x1"}) == "0xdeadbeef"

    @pytest.mark.asyncio
    async def test_wait_polls_until_committed(self):
        responses = iter(
            [
                httpx.Response(404, json={"message": "not found"}),
                httpx.Response(200, json={"type": "pending_transaction", "hash": TX_HASH}),
                httpx.Response(200, json={"type": "user_transaction", "hash": TX_HASH, "success": True, "vm_status": "Executed successfully"}),
            ]
        )

        def handler(request):
            assert request.url.path == f"/v1/transactions/wait_by_hash/{TX_HASH}"
            return next(responses)

        txn = await _client(handler).wait_for_transaction(TX_HASH)
        assert txn["success"] is True

    @pytest.mark.asyncio
    async def test_wait_raises_on_vm_failure(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"type": "user_transaction", "hash": TX_HASH, "success": False, "vm_status": "Move abort: E_SLIPPAGE"},
            )

        with pytest.raises(TransactionFailedError) as exc_info:
            await _client(handler).wait_for_transaction(TX_HASH)

        assert exc_info.value.tx_hash == TX_HASH
        assert exc_info.value.vm_status == "Move abort: E_SLIPPAGE"

    @pytest.mark.asyncio
    async def test_wait_times_out(self):
        def handler(request):
            return httpx.Response(200, json={"type": "pending_transaction", "hash": TX_HASH})

        client = _client(handler, wait_timeout_s=1)
        client.wait_timeout_s = 0

        with pytest.raises(TransactionPendingError) as exc_info:
            await client.wait_for_transaction(TX_HASH)

        assert exc_info.value.tx_hash == TX_HASH
        assert "timed out" in str(exc_info.value)
