"""
Shinami Gas Station Provider

Co-signs executor transactions as fee payer so the executor wallet does
not need to hold MOVE for gas.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .base import Provider
from ..config import settings


class GasStationError(Exception):
    """Gas Station provider error."""
    pass


@dataclass
class FeePayerSignature:
    """Fee payer authenticator returned by the gas station.

    `signing_message` is the fee-payer signing message for the transaction
    with the sponsor's address filled in; the sender signs the same bytes.
    """
    address: str
    public_key: str
    signature: str
    signing_message: str

    def to_authenticator(self) -> Dict[str, Any]:
        return {
            "type": "ed25519_signature",
            "public_key": self.public_key,
            "signature": self.signature,
        }


class GasStationClient(Provider):
    name = "shinami_gas_station"
    timeout_s = 20

    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(client)
        self._api_key = api_key if api_key is not None else settings.shinami_gas_station_api_key
        self._url = url or settings.shinami_gas_station_url

    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def ready(self) -> bool:
        return self.is_configured()

    async def health_check(self) -> Dict[str, Any]:
        if not self.is_configured():
            return {"status": "disabled", "reason": "Gas station not configured"}
        return {"status": "configured"}

    async def sponsor_transaction(self, raw_txn: Dict[str, Any]) -> FeePayerSignature:
        """Ask the gas station to sponsor an unsigned transaction."""
        if not self.is_configured():
            raise GasStationError("SHINAMI_GAS_STATION_API_KEY not configured")

        result = await self._rpc_call("gas_sponsorTransaction", [raw_txn])
        if not isinstance(result, dict):
            raise GasStationError("Invalid gas station response")

        fee_payer = result.get("feePayer") or {}
        try:
            return FeePayerSignature(
                address=fee_payer["address"],
                public_key=fee_payer["publicKey"],
                signature=fee_payer["signature"],
                signing_message=result["signingMessage"],
            )
        except KeyError as exc:
            raise GasStationError(f"Gas station response missing {exc.args[0]}") from None

    async def _rpc_call(self, method: str, params: list[Any]) -> Any:
        try:
            response = await self._http().post(
                self._url,
                json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
                headers={"X-Api-Key": self._api_key},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise GasStationError(f"Gas station request failed: {exc}") from exc

        payload = response.json()
        if "error" in payload:
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise GasStationError(message)
        return payload.get("result")


_gas_station_client: Optional[GasStationClient] = None


def get_gas_station_client() -> GasStationClient:
    global _gas_station_client
    if _gas_station_client is None:
        _gas_station_client = GasStationClient()
    return _gas_station_client


async def close_gas_station_client() -> None:
    global _gas_station_client
    if _gas_station_client is not None:
        await _gas_station_client.aclose()
    _gas_station_client = None
