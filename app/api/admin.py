"""
Admin endpoints for the executor wallet.

Balance inspection and USDC withdrawal, used by operators to refund
deposits and settle amounts whose transfer leg failed.
"""

from decimal import Decimal
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from app.api.cron import bearer_matches
from app.api.dependencies import get_twap_service, get_wallet
from app.config import settings
from app.core.execution.executor_wallet import ExecutorWallet
from app.core.twap.errors import ExecutorNotConfiguredError, ValidationError
from app.core.twap.service import TWAPSessionService
from app.core.twap.validation import is_valid_address, parse_decimal

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


class WithdrawRequest(BaseModel):
    """Request to withdraw USDC from the executor wallet."""
    recipient_address: Optional[str] = Field(None, alias="recipientAddress")
    amount: Optional[Any] = Field(None, description="USDC amount; defaults to the full balance")

    class Config:
        populate_by_name = True


def verify_admin(authorization: Optional[str] = Header(None)) -> bool:
    """Require `Authorization: Bearer <ADMIN_SECRET>`."""
    if not bearer_matches(authorization, settings.admin_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return True


def _require_executor(wallet: ExecutorWallet) -> str:
    try:
        if not wallet.is_configured():
            raise ExecutorNotConfiguredError()
        return wallet.address
    except ExecutorNotConfiguredError:
        raise HTTPException(status_code=503, detail="Executor not configured")


@router.get("/withdraw")
async def executor_status(
    _: bool = Depends(verify_admin),
    wallet: ExecutorWallet = Depends(get_wallet),
    service: TWAPSessionService = Depends(get_twap_service),
):
    """Executor balances and session counts."""
    executor_address = _require_executor(wallet)
    try:
        balances = await wallet.get_balances()
        stats = await service.get_stats()
    except Exception:
        logger.exception("admin_status_failed")
        raise HTTPException(status_code=500, detail="Failed to get balances")

    return {
        "success": True,
        "balances": balances.to_dict(),
        "executorAddress": executor_address,
        "stats": stats.to_dict(),
    }


@router.post("/withdraw")
async def withdraw(
    request: WithdrawRequest,
    _: bool = Depends(verify_admin),
    wallet: ExecutorWallet = Depends(get_wallet),
):
    """Send USDC from the executor wallet to a recipient."""
    _require_executor(wallet)

    if not request.recipient_address:
        raise HTTPException(status_code=400, detail="recipientAddress required")
    if not is_valid_address(request.recipient_address):
        raise HTTPException(status_code=400, detail="Invalid address format")

    try:
        requested: Optional[Decimal] = None
        if request.amount not in (None, ""):
            requested = parse_decimal(request.amount)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    try:
        balance = await wallet.get_usdc_balance()
    except Exception:
        logger.exception("admin_balance_failed")
        raise HTTPException(status_code=500, detail="Failed to get balances")

    amount = requested if requested is not None else balance
    if amount <= 0:
        raise HTTPException(status_code=400, detail="No USDC to withdraw")
    if amount > balance:
        raise HTTPException(
            status_code=400,
            detail=f"Insufficient balance. Available: {balance} USDC",
        )

    logger.info("admin_withdraw_started", recipient=request.recipient_address, amount=str(amount))
    try:
        tx_hash = await wallet.transfer_usdc(request.recipient_address, amount)
    except Exception:
        logger.exception("admin_withdraw_failed", recipient=request.recipient_address)
        raise HTTPException(status_code=500, detail="Withdrawal failed")

    logger.info("admin_withdraw_completed", tx_hash=tx_hash, amount=str(amount))
    return {
        "success": True,
        "txHash": tx_hash,
        "amount": float(amount),
        "recipient": request.recipient_address,
        "explorerUrl": settings.explorer_link(tx_hash),
    }
