"""
Mosaic Provider

Quote client for the Mosaic DEX aggregator on Movement. A quote carries
both the expected output and a ready-to-submit entry function payload.
https://docs.mosaic.ag/swap-integration/api
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from .base import Provider
from ..config import settings
from ..core.execution.units import from_raw_amount


class MosaicError(Exception):
    """Mosaic API error."""
    pass


@dataclass
class SwapQuote:
    """Parsed Mosaic quote."""

    src_amount_raw: int
    dst_amount_raw: int
    dst_amount: Decimal
    tx_payload: Dict[str, Any]
    paths: List[Dict[str, Any]] = field(default_factory=list)
    request_id: Optional[str] = None

    @property
    def function(self) -> str:
        return self.tx_payload["function"]

    @property
    def type_arguments(self) -> List[str]:
        return list(self.tx_payload.get("typeArguments") or [])

    @property
    def function_arguments(self) -> List[Any]:
        return list(self.tx_payload.get("functionArguments") or [])

    @property
    def sources(self) -> List[str]:
        return [p.get("source", "") for p in self.paths]


class MosaicClient(Provider):
    name = "mosaic"
    timeout_s = 15

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(client)
        self._api_key = api_key if api_key is not None else settings.mosaic_api_key
        self.base_url = (base_url or settings.mosaic_api_url).rstrip("/")

    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def ready(self) -> bool:
        return self.is_configured()

    async def health_check(self) -> Dict[str, Any]:
        if not self.is_configured():
            return {"status": "disabled", "reason": "MOSAIC_API_KEY not configured"}
        return {"status": "configured"}

    async def get_quote(
        self,
        src_asset: str,
        dst_asset: str,
        amount_raw: int,
        sender: str,
        slippage_bps: int,
        dst_decimals: int,
        receiver: Optional[str] = None,
    ) -> SwapQuote:
        """
        Quote a swap of `amount_raw` base units of `src_asset`.

        Args:
            src_asset: Input asset address
            dst_asset: Output asset address
            amount_raw: Input amount in base units
            sender: Address that will submit the swap
            slippage_bps: Slippage tolerance baked into the payload
            dst_decimals: Decimals of the output asset, for `dst_amount`
            receiver: Optional recipient of the output

        Raises:
            MosaicError: On missing key, HTTP failure or a non-zero result code
        """
        if not self.is_configured():
            raise MosaicError("MOSAIC_API_KEY not configured")

        params: Dict[str, Any] = {
            "srcAsset": src_asset,
            "dstAsset": dst_asset,
            "amount": str(amount_raw),
            "sender": sender,
            "slippage": str(slippage_bps),
        }
        if receiver:
            params["receiver"] = receiver

        try:
            response = await self._http().get(
                f"{self.base_url}/quote",
                params=params,
                headers={"X-API-Key": self._api_key, "accept": "application/json"},
            )
        except httpx.RequestError as exc:
            raise MosaicError(f"Mosaic API unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise MosaicError(f"Mosaic API error: {response.status_code}")

        body = response.json()
        if body.get("code") != 0:
            raise MosaicError(f"Mosaic error: {body.get('message', 'unknown')}")

        data = body.get("data") or {}
        tx = data.get("tx")
        if not tx or not tx.get("function"):
            raise MosaicError("Mosaic quote has no transaction payload")

        dst_amount_raw = int(data.get("dstAmount", 0))
        return SwapQuote(
            src_amount_raw=int(data.get("srcAmount", amount_raw)),
            dst_amount_raw=dst_amount_raw,
            dst_amount=from_raw_amount(dst_amount_raw, dst_decimals),
            tx_payload=tx,
            paths=data.get("paths") or [],
            request_id=body.get("requestId"),
        )


_mosaic_client: Optional[MosaicClient] = None


def get_mosaic_client() -> MosaicClient:
    global _mosaic_client
    if _mosaic_client is None:
        _mosaic_client = MosaicClient()
    return _mosaic_client


async def close_mosaic_client() -> None:
    global _mosaic_client
    if _mosaic_client is not None:
        await _mosaic_client.aclose()
    _mosaic_client = None
