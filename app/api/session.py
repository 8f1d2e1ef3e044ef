"""
TWAP Session API Endpoints

Create, inspect, update and cancel TWAP buyback sessions.
"""

from decimal import Decimal
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from app.api.dependencies import get_twap_service, get_wallet
from app.config import settings
from app.core.execution.executor_wallet import ExecutorWallet
from app.core.twap.errors import (
    ExecutorNotConfiguredError,
    InvalidTransitionError,
    OwnershipError,
    SessionNotFoundError,
    TWAPError,
    ValidationError,
)
from app.core.twap.service import TWAPSessionService
from app.core.twap.validation import (
    require_address,
    require_tx_hash,
    validate_create_request,
    validate_deposit_amount,
)

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(prefix="/session", tags=["TWAP Sessions"])


# =============================================================================
# Request Models
# =============================================================================


class CreateSessionRequest(BaseModel):
    """Request to create a TWAP session.

    Numeric fields are accepted as numbers or strings and validated by the
    TWAP validation rules rather than by pydantic.
    """
    user_address: Optional[str] = Field(None, alias="userAddress", description="Wallet receiving MOVE")
    total_amount: Optional[Any] = Field(None, alias="totalAmount", description="Total USDC to spend")
    num_trades: Optional[Any] = Field(None, alias="numTrades", description="Number of slices")
    interval_minutes: Optional[Any] = Field(None, alias="intervalMinutes", description="Minutes between slices")
    slippage_bps: Optional[Any] = Field(None, alias="slippageBps", description="Slippage tolerance in bps")

    class Config:
        populate_by_name = True


class UpdateSessionRequest(BaseModel):
    """Request to confirm a deposit, pause or resume a session."""
    session_id: Optional[str] = Field(None, alias="sessionId")
    action: Optional[str] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")
    amount: Optional[Any] = None
    user_address: Optional[str] = Field(None, alias="userAddress")

    class Config:
        populate_by_name = True


# =============================================================================
# Helper Functions
# =============================================================================


def _http_error(exc: TWAPError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=exc.message)
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=400, detail=exc.message)
    if isinstance(exc, SessionNotFoundError):
        return HTTPException(status_code=404, detail="Session not found")
    if isinstance(exc, OwnershipError):
        return HTTPException(status_code=403, detail="Unauthorized")
    if isinstance(exc, ExecutorNotConfiguredError):
        return HTTPException(status_code=503, detail="Service temporarily unavailable")
    return HTTPException(status_code=500, detail="Internal error")


def _format_amount(amount: Decimal) -> str:
    return f"{amount.normalize():f}"


def _require_user(user_address: Optional[str]) -> str:
    if not user_address:
        raise ValidationError("userAddress required")
    return require_address(user_address)


def _executor_address(wallet: ExecutorWallet) -> str:
    if not wallet.is_configured():
        raise ExecutorNotConfiguredError()
    return wallet.address


# =============================================================================
# Endpoints
# =============================================================================


@router.post("")
async def create_session(
    request: CreateSessionRequest,
    service: TWAPSessionService = Depends(get_twap_service),
    wallet: ExecutorWallet = Depends(get_wallet),
):
    """Create a session, or return the caller's open session if one exists."""
    try:
        params = validate_create_request(
            settings,
            request.user_address,
            request.total_amount,
            request.num_trades,
            request.interval_minutes,
            request.slippage_bps,
        )
        executor_address = _executor_address(wallet)
        session, created = await service.create_session(
            user_address=params.user_address,
            total_amount=params.total_amount,
            num_trades=params.num_trades,
            interval_minutes=params.interval_minutes,
            slippage_bps=params.slippage_bps,
        )
    except TWAPError as e:
        raise _http_error(e)
    except Exception:
        logger.exception("twap_session_create_failed")
        raise HTTPException(status_code=500, detail="Failed to create session")

    instructions = (
        f"Send {_format_amount(session.total_amount)} USDC to {executor_address} to start your TWAP"
    )
    response = {
        "success": True,
        "session": session.to_dict(),
        "executorAddress": executor_address,
    }
    if created:
        response["instructions"] = instructions
    else:
        response["instructions"] = f"You have an existing session. {instructions}"
        response["existing"] = True
    return response


@router.get("")
async def get_session(
    id: Optional[str] = Query(None, description="Session ID"),
    user_address: Optional[str] = Query(None, alias="userAddress", description="Owner wallet"),
    executor: Optional[str] = Query(None, description="Set to 'true' for executor info"),
    service: TWAPSessionService = Depends(get_twap_service),
    wallet: ExecutorWallet = Depends(get_wallet),
):
    """Fetch one session, a user's sessions, or the public executor address."""
    if executor == "true":
        try:
            return {"configured": True, "address": _executor_address(wallet)}
        except ExecutorNotConfiguredError:
            return {"configured": False}

    try:
        if id:
            session = await service.get_session(id)
            if session is None:
                raise SessionNotFoundError(id)
            return {"success": True, "session": session.to_dict()}

        if user_address:
            require_address(user_address)
            sessions = await service.get_sessions_by_user(user_address)
            return {"success": True, "sessions": [s.to_dict() for s in sessions]}
    except TWAPError as e:
        raise _http_error(e)
    except Exception:
        logger.exception("twap_session_get_failed")
        raise HTTPException(status_code=500, detail="Failed to get session")

    raise HTTPException(status_code=400, detail="userAddress or id parameter required")


@router.patch("")
async def update_session(
    request: UpdateSessionRequest,
    service: TWAPSessionService = Depends(get_twap_service),
):
    """Apply confirm_deposit, pause or resume to a session the caller owns."""
    try:
        if not request.session_id:
            raise ValidationError("Session ID required")
        user_address = _require_user(request.user_address)

        session = await service.get_session(request.session_id)
        if session is None:
            raise SessionNotFoundError(request.session_id)
        if not session.owned_by(user_address):
            raise OwnershipError()

        if request.action == "confirm_deposit":
            tx_hash = require_tx_hash(request.tx_hash)
            amount = validate_deposit_amount(request.amount)
            session = await service.confirm_deposit(
                request.session_id, tx_hash, amount, user_address=user_address
            )
            return {
                "success": True,
                "session": session.to_dict(),
                "message": "Deposit confirmed. TWAP execution will begin shortly.",
            }

        if request.action == "pause":
            session = await service.pause(request.session_id, user_address=user_address)
            return {"success": True, "session": session.to_dict()}

        if request.action == "resume":
            session = await service.resume(request.session_id, user_address=user_address)
            return {"success": True, "session": session.to_dict()}

        raise ValidationError("Invalid action")
    except TWAPError as e:
        raise _http_error(e)
    except Exception:
        logger.exception("twap_session_update_failed", session_id=request.session_id)
        raise HTTPException(status_code=500, detail="Failed to update session")


@router.delete("")
async def cancel_session(
    id: Optional[str] = Query(None, description="Session ID"),
    user_address: Optional[str] = Query(None, alias="userAddress", description="Owner wallet"),
    service: TWAPSessionService = Depends(get_twap_service),
):
    """Cancel a session. The record is kept for audit."""
    try:
        if not id:
            raise ValidationError("Session ID required")
        owner = _require_user(user_address)
        await service.cancel(id, user_address=owner)
    except TWAPError as e:
        raise _http_error(e)
    except Exception:
        logger.exception("twap_session_cancel_failed", session_id=id)
        raise HTTPException(status_code=500, detail="Failed to cancel session")

    return {"success": True, "message": "Session cancelled"}
