"""
TWAP Session Service

Lifecycle manager for TWAP sessions. Owns the status state machine and the
trade accounting rules; every change is applied through `store.mutate` so
it is atomic per session.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional, Tuple

import structlog

from app.config import Settings, settings as default_settings

from .errors import (
    InvalidTransitionError,
    OwnershipError,
    SessionNotFoundError,
    ValidationError,
)
from .models import (
    MAX_EPOCH_MS,
    OPEN_STATUSES,
    SessionStats,
    SessionStatus,
    TradeRecord,
    TradeStatus,
    TWAPSession,
    now_ms,
)
from .store import SessionStore

logger = structlog.stdlib.get_logger(__name__)

SessionCallback = Callable[[TWAPSession], Awaitable[None]]

# Per-user critical sections share a fixed pool of locks
USER_LOCK_STRIPES = 64

# Manual and automatic transitions allowed out of each status
TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.AWAITING_DEPOSIT: frozenset(
        {SessionStatus.ACTIVE, SessionStatus.CANCELLED, SessionStatus.FAILED}
    ),
    SessionStatus.ACTIVE: frozenset(
        {
            SessionStatus.PAUSED,
            SessionStatus.COMPLETED,
            SessionStatus.CANCELLED,
            SessionStatus.FAILED,
        }
    ),
    SessionStatus.PAUSED: frozenset(
        {
            SessionStatus.ACTIVE,
            SessionStatus.COMPLETED,
            SessionStatus.CANCELLED,
            SessionStatus.FAILED,
        }
    ),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.FAILED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}

EXPIRED_ERROR = "Session expired"


def can_transition(from_status: SessionStatus, to_status: SessionStatus) -> bool:
    return to_status in TRANSITIONS.get(from_status, frozenset())


def _transition(
    session: TWAPSession,
    to_status: SessionStatus,
    message: Optional[str] = None,
) -> None:
    if not can_transition(session.status, to_status):
        raise InvalidTransitionError(session.status, to_status, message)
    session.status = to_status


def _check_owner(session: TWAPSession, user_address: Optional[str]) -> None:
    if user_address is not None and not session.owned_by(user_address):
        raise OwnershipError()


class TWAPSessionService:
    """
    Service for managing TWAP sessions.

    Provides:
    - Session creation with one open session per user
    - Deposit confirmation, pause, resume and cancel
    - Trade recording and scheduling of the next slice
    - Expiry sweep and the due-session scan used by the scheduler
    """

    def __init__(self, store: SessionStore, settings: Optional[Settings] = None):
        self._store = store
        self._settings = settings or default_settings
        self._user_locks = [asyncio.Lock() for _ in range(USER_LOCK_STRIPES)]
        self._subscribers: List[SessionCallback] = []

    @property
    def store(self) -> SessionStore:
        return self._store

    # =========================================================================
    # Change notification
    # =========================================================================

    def subscribe(self, callback: SessionCallback) -> Callable[[], None]:
        """Register a callback fired with the updated session after each change.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def _notify(self, session: TWAPSession) -> None:
        for callback in list(self._subscribers):
            try:
                await callback(session.clone())
            except Exception:
                logger.exception("twap_subscriber_failed", session_id=session.id)

    async def _mutate(self, session_id: str, fn: Callable[[TWAPSession], None]) -> TWAPSession:
        session = await self._store.mutate(session_id, fn)
        await self._notify(session)
        return session

    # =========================================================================
    # Creation and reads
    # =========================================================================

    def _user_lock(self, user_address: str) -> asyncio.Lock:
        return self._user_locks[hash(user_address.lower()) % USER_LOCK_STRIPES]

    async def create_session(
        self,
        user_address: str,
        total_amount: Decimal,
        num_trades: int,
        interval_minutes: int,
        slippage_bps: Optional[int] = None,
    ) -> Tuple[TWAPSession, bool]:
        """
        Create a session awaiting deposit, or return the user's open one.

        Args:
            user_address: Wallet that will receive the MOVE proceeds
            total_amount: USDC to spend in total
            num_trades: Number of equal slices
            interval_minutes: Minutes between slices
            slippage_bps: Per-trade slippage tolerance

        Returns:
            (session, created) where created is False when an existing
            awaiting_deposit/active session was returned instead.
        """
        if slippage_bps is None:
            slippage_bps = self._settings.default_slippage_bps

        async with self._user_lock(user_address):
            existing = await self.find_open_session(user_address)
            if existing is not None:
                logger.info(
                    "twap_session_reused",
                    session_id=existing.id,
                    user_address=existing.user_address,
                    status=existing.status.value,
                )
                return existing, False

            session = TWAPSession.create(
                user_address=user_address,
                total_amount=total_amount,
                num_trades=num_trades,
                interval_minutes=interval_minutes,
                slippage_bps=slippage_bps,
                expiry_buffer_minutes=self._settings.session_expiry_buffer_minutes,
            )
            if session.expires_at > MAX_EPOCH_MS:
                raise ValidationError("Schedule is too long")
            created = await self._store.create(session)

        logger.info(
            "twap_session_created",
            session_id=created.id,
            user_address=created.user_address,
            total_amount=str(created.total_amount),
            num_trades=created.num_trades,
            interval_minutes=created.interval_minutes,
        )
        await self._notify(created)
        return created, True

    async def get_session(self, session_id: str) -> Optional[TWAPSession]:
        return await self._store.get(session_id)

    async def get_sessions_by_user(self, user_address: str) -> List[TWAPSession]:
        return await self._store.list_by_user(user_address)

    async def find_open_session(self, user_address: str) -> Optional[TWAPSession]:
        """Most recent awaiting_deposit/active session for the user."""
        for session in await self._store.list_by_user(user_address):
            if session.status in OPEN_STATUSES:
                return session
        return None

    # =========================================================================
    # Manual transitions
    # =========================================================================

    async def confirm_deposit(
        self,
        session_id: str,
        tx_hash: str,
        amount: Optional[Decimal] = None,
        user_address: Optional[str] = None,
    ) -> TWAPSession:
        """Mark the deposit received and schedule the first trade immediately."""

        def apply(session: TWAPSession) -> None:
            _check_owner(session, user_address)
            if session.status != SessionStatus.AWAITING_DEPOSIT:
                raise InvalidTransitionError(
                    session.status, SessionStatus.ACTIVE, "Session is not awaiting deposit"
                )
            now = now_ms()
            _transition(session, SessionStatus.ACTIVE)
            session.deposit_tx_hash = tx_hash
            session.deposited_amount = amount if amount is not None else session.total_amount
            session.deposit_confirmed = True
            session.started_at = now
            session.next_trade_at = now

        session = await self._mutate(session_id, apply)
        logger.info(
            "twap_deposit_confirmed",
            session_id=session_id,
            tx_hash=tx_hash,
            amount=str(session.deposited_amount),
        )
        return session

    async def pause(self, session_id: str, user_address: Optional[str] = None) -> TWAPSession:
        def apply(session: TWAPSession) -> None:
            _check_owner(session, user_address)
            if session.status != SessionStatus.ACTIVE:
                raise InvalidTransitionError(
                    session.status, SessionStatus.PAUSED, "Can only pause active sessions"
                )
            _transition(session, SessionStatus.PAUSED)

        session = await self._mutate(session_id, apply)
        logger.info("twap_session_paused", session_id=session_id)
        return session

    async def resume(self, session_id: str, user_address: Optional[str] = None) -> TWAPSession:
        """Reactivate a paused session unless the owner opened another one meanwhile."""

        def apply(session: TWAPSession) -> None:
            _check_owner(session, user_address)
            if session.status != SessionStatus.PAUSED:
                raise InvalidTransitionError(
                    session.status, SessionStatus.ACTIVE, "Can only resume paused sessions"
                )
            _transition(session, SessionStatus.ACTIVE)
            session.next_trade_at = now_ms()

        current = await self._store.get(session_id)
        if current is None:
            raise SessionNotFoundError(session_id)
        _check_owner(current, user_address)

        async with self._user_lock(current.user_address):
            other = await self.find_open_session(current.user_address)
            if other is not None and other.id != session_id:
                raise InvalidTransitionError(
                    current.status,
                    SessionStatus.ACTIVE,
                    "Another session is already open for this wallet",
                )
            session = await self._mutate(session_id, apply)
        logger.info("twap_session_resumed", session_id=session_id)
        return session

    async def cancel(self, session_id: str, user_address: Optional[str] = None) -> TWAPSession:
        def apply(session: TWAPSession) -> None:
            _check_owner(session, user_address)
            _transition(
                session,
                SessionStatus.CANCELLED,
                f"Cannot cancel a {session.status.value} session",
            )
            session.next_trade_at = None

        session = await self._mutate(session_id, apply)
        logger.info("twap_session_cancelled", session_id=session_id)
        return session

    # =========================================================================
    # Trade accounting
    # =========================================================================

    async def record_trade(self, session_id: str, trade: TradeRecord) -> TWAPSession:
        """
        Append a trade and advance the schedule.

        Success counts the slice and its MOVE; a failure after the swap
        settled counts the slice but parks the MOVE as pending transfer; a
        swap broadcast but never confirmed counts the slice with no output;
        any other failure only sets the error. Non-terminal sessions with slices
        left are rescheduled one interval out either way.
        """

        def apply(session: TWAPSession) -> None:
            now = now_ms()
            session.trades.append(trade)

            if trade.status == TradeStatus.SUCCESS:
                session.trades_completed = min(session.num_trades, session.trades_completed + 1)
                session.total_move_received += trade.amount_out
                session.last_error = None
            elif trade.stage.swap_settled:
                session.trades_completed = min(session.num_trades, session.trades_completed + 1)
                session.pending_transfer_amount += trade.amount_out
                session.last_error = trade.error or "Transfer failed"
            elif trade.stage.slice_consumed:
                # Broadcast but unconfirmed: output unknown, reconciled from the tx hash
                session.trades_completed = min(session.num_trades, session.trades_completed + 1)
                session.last_error = trade.error or "Swap unconfirmed"
            else:
                session.last_error = trade.error or "Trade failed"

            if session.is_terminal:
                session.next_trade_at = None
                return

            if session.trades_completed >= session.num_trades:
                _transition(session, SessionStatus.COMPLETED)
                session.next_trade_at = None
            else:
                session.next_trade_at = now + session.interval_ms

        session = await self._mutate(session_id, apply)
        logger.info(
            "twap_trade_recorded",
            session_id=session_id,
            trade_id=trade.id,
            trade_status=trade.status.value,
            stage=trade.stage.value,
            trades_completed=session.trades_completed,
            num_trades=session.num_trades,
            session_status=session.status.value,
        )
        return session

    # =========================================================================
    # Scheduler support
    # =========================================================================

    async def get_active_sessions_for_execution(self, now: Optional[int] = None) -> List[TWAPSession]:
        return await self._store.list_due(now if now is not None else now_ms())

    async def cleanup_expired_sessions(self, now: Optional[int] = None) -> int:
        """Fail every non-terminal session past its expiry. Returns the count."""
        now = now if now is not None else now_ms()
        cleaned = 0

        for candidate in await self._store.list_expired(now):
            expired = False

            def apply(session: TWAPSession) -> None:
                nonlocal expired
                if not session.is_expired(now):
                    return
                _transition(session, SessionStatus.FAILED)
                session.last_error = EXPIRED_ERROR
                session.next_trade_at = None
                expired = True

            try:
                await self._mutate(candidate.id, apply)
            except SessionNotFoundError:
                continue
            if expired:
                cleaned += 1
                logger.info("twap_session_expired", session_id=candidate.id)

        return cleaned

    async def get_stats(self) -> SessionStats:
        return SessionStats.from_sessions(await self._store.list_all())
