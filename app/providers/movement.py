"""
Movement Provider

Async client for the Aptos-compatible REST API exposed by Movement
fullnodes. Only the endpoints the executor wallet needs are wrapped.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional

import httpx

from .base import Provider
from ..config import settings


class MovementError(Exception):
    """Movement REST API error."""
    pass


class TransactionFailedError(MovementError):
    """Transaction was committed but its execution did not succeed."""

    def __init__(self, tx_hash: str, vm_status: str):
        self.tx_hash = tx_hash
        self.vm_status = vm_status
        super().__init__(f"Transaction {tx_hash} failed: {vm_status}")


class TransactionPendingError(MovementError):
    """Transaction was submitted but its outcome could not be confirmed."""

    def __init__(self, tx_hash: str, reason: Optional[str] = None):
        self.tx_hash = tx_hash
        self.reason = reason or "confirmation timed out"
        super().__init__(f"Transaction {tx_hash} unconfirmed: {self.reason}")


class MovementClient(Provider):
    name = "movement"
    timeout_s = 30

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        *,
        wait_timeout_s: Optional[int] = None,
        poll_interval_s: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(client)
        self.rpc_url = (rpc_url or settings.movement_rpc_url).rstrip("/")
        self.wait_timeout_s = wait_timeout_s or settings.tx_wait_timeout_seconds
        self.poll_interval_s = poll_interval_s

    async def ready(self) -> bool:
        return bool(self.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        try:
            ledger = await self._request("GET", "/")
            return {
                "status": "healthy",
                "chainId": ledger.get("chain_id"),
                "ledgerVersion": ledger.get("ledger_version"),
            }
        except MovementError as exc:
            return {"status": "error", "reason": str(exc)}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Any:
        try:
            response = await self._http().request(
                method,
                f"{self.rpc_url}{path}",
                json=json,
                params=params,
                headers={"accept": "application/json"},
            )
        except httpx.RequestError as exc:
            raise MovementError(f"Movement RPC unreachable: {exc}") from exc

        if allow_not_found and response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise MovementError(_error_message(response))
        return response.json()

    async def get_account_sequence_number(self, address: str) -> int:
        account = await self._request("GET", f"/accounts/{address}")
        return int(account["sequence_number"])

    async def estimate_gas_price(self) -> int:
        estimate = await self._request("GET", "/estimate_gas_price")
        return int(estimate["gas_estimate"])

    async def view(
        self,
        function: str,
        type_arguments: Optional[List[str]] = None,
        arguments: Optional[List[Any]] = None,
    ) -> List[Any]:
        return await self._request(
            "POST",
            "/view",
            json={
                "function": function,
                "type_arguments": type_arguments or [],
                "arguments": arguments or [],
            },
        )

    async def encode_submission(self, txn: Dict[str, Any]) -> str:
        """Return the hex signing message for an unsigned transaction."""
        return await self._request("POST", "/transactions/encode_submission", json=txn)

    async def submit_transaction(self, signed_txn: Dict[str, Any]) -> str:
        pending = await self._request("POST", "/transactions", json=signed_txn)
        return pending["hash"]

    async def wait_for_transaction(self, tx_hash: str) -> Dict[str, Any]:
        """Block until the transaction is committed.

        Raises TransactionFailedError when the VM reports failure and
        TransactionPendingError when the wait times out.
        """
        deadline = time.monotonic() + self.wait_timeout_s
        while True:
            txn = await self._request(
                "GET", f"/transactions/wait_by_hash/{tx_hash}", allow_not_found=True
            )
            if txn is not None and txn.get("type") != "pending_transaction":
                if not txn.get("success", False):
                    raise TransactionFailedError(tx_hash, txn.get("vm_status", "unknown"))
                return txn
            if time.monotonic() >= deadline:
                raise TransactionPendingError(tx_hash, f"timed out after {self.wait_timeout_s}s")
            await asyncio.sleep(self.poll_interval_s)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return f"HTTP {response.status_code}: {body['message']}"
    return f"HTTP {response.status_code}"


_movement_client: Optional[MovementClient] = None


def get_movement_client() -> MovementClient:
    global _movement_client
    if _movement_client is None:
        _movement_client = MovementClient()
    return _movement_client


async def close_movement_client() -> None:
    global _movement_client
    if _movement_client is not None:
        await _movement_client.aclose()
    _movement_client = None
