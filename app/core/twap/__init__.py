"""
TWAP Buyback Engine

Delegated time-weighted buybacks: a user deposits USDC with the executor
wallet, which swaps it into MOVE in equal slices on a fixed interval and
sends each slice's proceeds back to the user.

Usage:
    from app.core.twap import TWAPSessionService, InMemorySessionStore

    service = TWAPSessionService(InMemorySessionStore())
    session, created = await service.create_session(
        user_address="0xabc...",
        total_amount=Decimal("100"),
        num_trades=10,
        interval_minutes=60,
    )

The trade executor and scheduler live in `app.core.twap.executor` and
`app.core.twap.scheduler`.
"""

from .models import (
    SessionStats,
    SessionStatus,
    TradeRecord,
    TradeStage,
    TradeStatus,
    TWAPSession,
    now_ms,
)

from .errors import (
    ConfigurationError,
    DuplicateSessionError,
    ExecutorNotConfiguredError,
    InvalidTransitionError,
    OwnershipError,
    SchedulerRateLimitedError,
    SessionNotFoundError,
    TWAPError,
    ValidationError,
)

from .store import (
    InMemorySessionStore,
    SessionStore,
    SqlSessionStore,
    build_session_store,
)

from .service import TRANSITIONS, TWAPSessionService, can_transition

__all__ = [
    # Models
    "SessionStats",
    "SessionStatus",
    "TradeRecord",
    "TradeStage",
    "TradeStatus",
    "TWAPSession",
    "now_ms",
    # Errors
    "ConfigurationError",
    "DuplicateSessionError",
    "ExecutorNotConfiguredError",
    "InvalidTransitionError",
    "OwnershipError",
    "SchedulerRateLimitedError",
    "SessionNotFoundError",
    "TWAPError",
    "ValidationError",
    # Store
    "InMemorySessionStore",
    "SessionStore",
    "SqlSessionStore",
    "build_session_store",
    # Service
    "TRANSITIONS",
    "TWAPSessionService",
    "can_transition",
]
