"""
TWAP Trade Executor

Runs one slice of a TWAP session end to end:
quote -> swap -> transfer proceeds -> record.

The swap and the transfer are separate on-chain transactions. The trade
record tracks how far the pair got through `stage`, and is written exactly
once per attempt whatever the outcome.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import structlog

from app.config import Settings, settings as default_settings
from app.core.execution.executor_wallet import ExecutorWallet
from app.core.execution.units import apply_bps_haircut, from_raw_amount, to_raw_amount
from app.providers.mosaic import MosaicClient, SwapQuote
from app.providers.movement import TransactionFailedError, TransactionPendingError

from .models import TradeRecord, TradeStage, TradeStatus, TWAPSession
from .service import TWAPSessionService

logger = structlog.stdlib.get_logger(__name__)


@dataclass
class ExecutionResult:
    """Outcome of one trade attempt."""
    success: bool
    amount_in: Decimal
    amount_out: Decimal = Decimal("0")
    swap_tx_hash: Optional[str] = None
    transfer_tx_hash: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "amountIn": float(self.amount_in),
            "amountOut": float(self.amount_out),
            "swapTxHash": self.swap_tx_hash,
            "transferTxHash": self.transfer_tx_hash,
            "error": self.error,
        }


def _describe(exc: Exception) -> str:
    if isinstance(exc, TransactionFailedError):
        return exc.vm_status
    return str(exc) or type(exc).__name__


class TradeExecutor:
    """
    Executes TWAP slices for due sessions.

    Responsibilities:
    1. Quote the slice through Mosaic with the session's slippage
    2. Submit the quoted swap from the executor wallet
    3. Send the MOVE received to the user, less the safety margin
    4. Record the trade on the session
    """

    def __init__(
        self,
        service: TWAPSessionService,
        wallet: ExecutorWallet,
        mosaic: MosaicClient,
        settings: Optional[Settings] = None,
    ):
        self._service = service
        self._wallet = wallet
        self._mosaic = mosaic
        self._settings = settings or default_settings

    async def execute_trade(self, session: TWAPSession) -> ExecutionResult:
        """
        Execute the next slice of `session`.

        Never raises for quote, chain or relayer failures; those end up on
        the recorded trade and in the returned result.
        """
        trade = TradeRecord.new(session)
        started = time.perf_counter()
        log = logger.bind(session_id=session.id, trade_id=trade.id, sequence=trade.sequence)
        log.info(
            "twap_trade_started",
            amount_in=str(trade.amount_in),
            slippage_bps=session.slippage_bps,
        )

        # Step 1: quote
        try:
            quote = await self._quote(session)
        except Exception as e:
            return await self._finish(session, trade, started, f"Quote failed: {_describe(e)}")

        # Step 2: swap
        try:
            trade.swap_tx_hash = await self._wallet.submit_entry_function(
                quote.function,
                quote.type_arguments,
                quote.function_arguments,
            )
        except TransactionPendingError as e:
            # May still land; the slice counts as spent
            trade.swap_tx_hash = e.tx_hash
            trade.stage = TradeStage.SWAP_UNCONFIRMED
            return await self._finish(session, trade, started, f"Swap unconfirmed: {e.reason}")
        except Exception as e:
            if isinstance(e, TransactionFailedError):
                trade.swap_tx_hash = e.tx_hash
            return await self._finish(session, trade, started, f"Swap failed: {_describe(e)}")

        trade.stage = TradeStage.SWAP_DONE
        trade.amount_out = quote.dst_amount
        log.info("twap_swap_confirmed", swap_tx_hash=trade.swap_tx_hash, amount_out=str(quote.dst_amount))

        # Step 3: transfer proceeds
        transfer_raw = apply_bps_haircut(
            quote.dst_amount_raw, self._settings.transfer_safety_margin_bps
        )
        try:
            trade.transfer_tx_hash = await self._wallet.transfer_move_raw(
                session.user_address, transfer_raw
            )
        except TransactionPendingError as e:
            trade.transfer_tx_hash = e.tx_hash
            trade.stage = TradeStage.TRANSFER_PENDING
            return await self._finish(
                session, trade, started, f"Transfer leg unconfirmed: {e.reason}"
            )
        except Exception as e:
            if isinstance(e, TransactionFailedError):
                trade.transfer_tx_hash = e.tx_hash
            return await self._finish(
                session, trade, started, f"Transfer leg failed: {_describe(e)}"
            )

        trade.stage = TradeStage.TRANSFER_DONE
        trade.amount_transferred = from_raw_amount(transfer_raw, self._settings.move_decimals)
        return await self._finish(session, trade, started)

    async def _quote(self, session: TWAPSession) -> SwapQuote:
        amount_raw = to_raw_amount(session.amount_per_trade, self._settings.usdc_decimals)
        if amount_raw <= 0:
            raise ValueError("Trade amount is below one base unit")
        return await self._mosaic.get_quote(
            src_asset=self._settings.usdc_asset_address,
            dst_asset=self._settings.move_asset_address,
            amount_raw=amount_raw,
            sender=self._wallet.address,
            slippage_bps=session.slippage_bps,
            dst_decimals=self._settings.move_decimals,
        )

    async def _finish(
        self,
        session: TWAPSession,
        trade: TradeRecord,
        started: float,
        error: Optional[str] = None,
    ) -> ExecutionResult:
        if error is None:
            trade.status = TradeStatus.SUCCESS
        else:
            trade.status = TradeStatus.FAILED
            trade.error = error

        duration_ms = int((time.perf_counter() - started) * 1000)
        if error is None:
            logger.info(
                "twap_trade_completed",
                session_id=session.id,
                trade_id=trade.id,
                swap_tx_hash=trade.swap_tx_hash,
                transfer_tx_hash=trade.transfer_tx_hash,
                amount_out=str(trade.amount_out),
                duration_ms=duration_ms,
            )
        else:
            logger.warning(
                "twap_trade_failed",
                session_id=session.id,
                trade_id=trade.id,
                stage=trade.stage.value,
                error=error,
                duration_ms=duration_ms,
            )

        try:
            await self._service.record_trade(session.id, trade)
        except Exception:
            logger.exception("twap_trade_record_failed", session_id=session.id, trade_id=trade.id)
            error = f"{error}; trade record failed" if error else "Trade record failed"

        return ExecutionResult(
            success=error is None,
            amount_in=trade.amount_in,
            amount_out=trade.amount_out,
            swap_tx_hash=trade.swap_tx_hash or None,
            transfer_tx_hash=trade.transfer_tx_hash,
            error=error,
        )
