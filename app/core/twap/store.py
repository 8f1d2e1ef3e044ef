"""
TWAP Session Store

Pluggable persistence for TWAP sessions. The store is the single source of
truth: callers always get detached copies and every change goes through
`mutate`, which applies a function to the current record atomically.

Two implementations:
- InMemorySessionStore: dict + per-session asyncio locks (tests, local dev)
- SqlSessionStore: SQLAlchemy async engine (SQLite, Postgres)
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.db.models import Base, SchedulerRunModel, TWAPSessionModel

from .errors import ConfigurationError, DuplicateSessionError, SessionNotFoundError
from .models import (
    TERMINAL_STATUSES,
    SessionStatus,
    TradeRecord,
    TWAPSession,
    now_ms,
)

logger = structlog.stdlib.get_logger(__name__)

Mutation = Callable[[TWAPSession], None]


class SessionStore(ABC):
    """Interface for persisting TWAP sessions (in-memory, SQL, etc.)."""

    @abstractmethod
    async def create(self, session: TWAPSession) -> TWAPSession:
        """Insert a new session. Raises DuplicateSessionError on id clash."""
        ...

    @abstractmethod
    async def get(self, session_id: str) -> Optional[TWAPSession]:
        """Return the session by id, or None if missing."""
        ...

    @abstractmethod
    async def list_by_user(self, user_address: str) -> List[TWAPSession]:
        """Return all sessions for the address (case-insensitive), newest first."""
        ...

    @abstractmethod
    async def list_all(self, limit: Optional[int] = None) -> List[TWAPSession]:
        """Return up to `limit` sessions, newest first."""
        ...

    @abstractmethod
    async def list_due(self, now: int) -> List[TWAPSession]:
        """Return sessions eligible for their next trade at `now`."""
        ...

    @abstractmethod
    async def list_expired(self, now: int) -> List[TWAPSession]:
        """Return non-terminal sessions whose expiry is before `now`."""
        ...

    @abstractmethod
    async def mutate(self, session_id: str, fn: Mutation) -> TWAPSession:
        """Apply `fn` to the stored session atomically and persist the result.

        If `fn` raises, nothing is written. Raises SessionNotFoundError when
        the id is unknown.
        """
        ...

    @abstractmethod
    async def try_acquire_run(
        self, name: str, now: int, min_interval_ms: int
    ) -> Tuple[bool, int]:
        """Claim the named run slot if at least `min_interval_ms` passed.

        Returns (acquired, retry_after_ms).
        """
        ...

    async def update(self, session_id: str, **fields) -> TWAPSession:
        """Set the given attributes on a session atomically."""

        def apply(session: TWAPSession) -> None:
            for name, value in fields.items():
                if not hasattr(session, name):
                    raise AttributeError(f"TWAPSession has no field {name!r}")
                setattr(session, name, value)

        return await self.mutate(session_id, apply)

    async def delete(self, session_id: str) -> bool:
        """Logical delete: mark cancelled, keep the row for audit."""

        def cancel(session: TWAPSession) -> None:
            session.status = SessionStatus.CANCELLED
            session.next_trade_at = None

        try:
            await self.mutate(session_id, cancel)
        except SessionNotFoundError:
            return False
        return True

    async def init(self) -> None:
        """Prepare backing storage."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        """Release resources."""


class InMemorySessionStore(SessionStore):
    """In-memory implementation of SessionStore."""

    def __init__(self, list_limit: int = 1000) -> None:
        self._sessions: Dict[str, TWAPSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._runs: Dict[str, int] = {}
        self._runs_lock = asyncio.Lock()
        self._list_limit = list_limit

    def _get_lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    def _sorted(self, sessions: List[TWAPSession]) -> List[TWAPSession]:
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)

    async def create(self, session: TWAPSession) -> TWAPSession:
        if session.id in self._sessions:
            raise DuplicateSessionError(session.id)
        self._sessions[session.id] = session.clone()
        return session.clone()

    async def get(self, session_id: str) -> Optional[TWAPSession]:
        session = self._sessions.get(session_id)
        return session.clone() if session else None

    async def list_by_user(self, user_address: str) -> List[TWAPSession]:
        address = user_address.lower()
        return [
            s.clone()
            for s in self._sorted(list(self._sessions.values()))
            if s.user_address.lower() == address
        ]

    async def list_all(self, limit: Optional[int] = None) -> List[TWAPSession]:
        bound = limit or self._list_limit
        return [s.clone() for s in self._sorted(list(self._sessions.values()))[:bound]]

    async def list_due(self, now: int) -> List[TWAPSession]:
        due = [s for s in self._sessions.values() if s.is_due(now)]
        return [s.clone() for s in sorted(due, key=lambda s: s.next_trade_at or 0)]

    async def list_expired(self, now: int) -> List[TWAPSession]:
        return [s.clone() for s in self._sessions.values() if s.is_expired(now)]

    async def mutate(self, session_id: str, fn: Mutation) -> TWAPSession:
        async with self._get_lock(session_id):
            current = self._sessions.get(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)
            working = current.clone()
            fn(working)
            working.updated_at = now_ms()
            self._sessions[session_id] = working
            return working.clone()

    async def try_acquire_run(
        self, name: str, now: int, min_interval_ms: int
    ) -> Tuple[bool, int]:
        async with self._runs_lock:
            last = self._runs.get(name)
            if last is not None and now - last < min_interval_ms:
                return False, min_interval_ms - (now - last)
            self._runs[name] = now
            return True, 0


def _to_model(session: TWAPSession, model: Optional[TWAPSessionModel] = None) -> TWAPSessionModel:
    model = model or TWAPSessionModel(id=session.id)
    model.user_address = session.user_address
    model.deposit_tx_hash = session.deposit_tx_hash
    model.deposited_amount = session.deposited_amount
    model.deposit_confirmed = session.deposit_confirmed
    model.total_amount = session.total_amount
    model.amount_per_trade = session.amount_per_trade
    model.num_trades = session.num_trades
    model.trades_completed = session.trades_completed
    model.interval_minutes = session.interval_minutes
    model.slippage_bps = session.slippage_bps
    model.status = session.status.value
    model.created_at = session.created_at
    model.started_at = session.started_at
    model.next_trade_at = session.next_trade_at
    model.expires_at = session.expires_at
    model.updated_at = session.updated_at
    model.total_move_received = session.total_move_received
    model.pending_transfer_amount = session.pending_transfer_amount
    model.trades = [t.to_dict(exact=True) for t in session.trades]
    model.last_error = session.last_error
    return model


def _from_model(model: TWAPSessionModel) -> TWAPSession:
    return TWAPSession(
        id=model.id,
        user_address=model.user_address,
        deposit_tx_hash=model.deposit_tx_hash,
        deposited_amount=model.deposited_amount,
        deposit_confirmed=model.deposit_confirmed,
        total_amount=model.total_amount,
        amount_per_trade=model.amount_per_trade,
        num_trades=model.num_trades,
        trades_completed=model.trades_completed,
        interval_minutes=model.interval_minutes,
        slippage_bps=model.slippage_bps,
        status=SessionStatus(model.status),
        created_at=model.created_at,
        started_at=model.started_at,
        next_trade_at=model.next_trade_at,
        expires_at=model.expires_at,
        updated_at=model.updated_at,
        total_move_received=model.total_move_received,
        pending_transfer_amount=model.pending_transfer_amount,
        trades=[TradeRecord.from_dict(t) for t in (model.trades or [])],
        last_error=model.last_error,
    )


class SqlSessionStore(SessionStore):
    """SQLAlchemy-backed SessionStore.

    `mutate` runs in a single transaction with SELECT ... FOR UPDATE so
    concurrent writers to the same session serialize at the database.
    """

    def __init__(self, engine: AsyncEngine, list_limit: int = 1000) -> None:
        self._engine = engine
        self._sessionmaker = async_sessionmaker(engine, expire_on_commit=False)
        self._list_limit = list_limit

    @classmethod
    def from_url(cls, database_url: str, list_limit: int = 1000) -> SqlSessionStore:
        kwargs = {}
        # In-memory SQLite lives on a single connection
        if database_url.startswith("sqlite") and (
            ":memory:" in database_url or database_url.endswith("://")
        ):
            kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        engine = create_async_engine(database_url, **kwargs)
        return cls(engine, list_limit=list_limit)

    async def init(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        async with self._sessionmaker() as db:
            await db.execute(select(1))
        return True

    async def close(self) -> None:
        await self._engine.dispose()

    async def create(self, session: TWAPSession) -> TWAPSession:
        try:
            async with self._sessionmaker() as db:
                async with db.begin():
                    if await db.get(TWAPSessionModel, session.id) is not None:
                        raise DuplicateSessionError(session.id)
                    db.add(_to_model(session))
        except IntegrityError as e:
            if await self.get(session.id) is not None:
                raise DuplicateSessionError(session.id) from e
            raise
        return session.clone()

    async def get(self, session_id: str) -> Optional[TWAPSession]:
        async with self._sessionmaker() as db:
            model = await db.get(TWAPSessionModel, session_id)
            return _from_model(model) if model else None

    async def list_by_user(self, user_address: str) -> List[TWAPSession]:
        stmt = (
            select(TWAPSessionModel)
            .where(TWAPSessionModel.user_address == user_address.lower())
            .order_by(TWAPSessionModel.created_at.desc())
        )
        return await self._fetch(stmt)

    async def list_all(self, limit: Optional[int] = None) -> List[TWAPSession]:
        stmt = (
            select(TWAPSessionModel)
            .order_by(TWAPSessionModel.created_at.desc())
            .limit(limit or self._list_limit)
        )
        return await self._fetch(stmt)

    async def list_due(self, now: int) -> List[TWAPSession]:
        stmt = (
            select(TWAPSessionModel)
            .where(
                TWAPSessionModel.status == SessionStatus.ACTIVE.value,
                TWAPSessionModel.deposit_confirmed.is_(True),
                TWAPSessionModel.next_trade_at.is_not(None),
                TWAPSessionModel.next_trade_at <= now,
                TWAPSessionModel.trades_completed < TWAPSessionModel.num_trades,
                TWAPSessionModel.expires_at > now,
            )
            .order_by(TWAPSessionModel.next_trade_at)
        )
        return await self._fetch(stmt)

    async def list_expired(self, now: int) -> List[TWAPSession]:
        stmt = select(TWAPSessionModel).where(
            TWAPSessionModel.status.not_in([s.value for s in TERMINAL_STATUSES]),
            TWAPSessionModel.expires_at < now,
        )
        return await self._fetch(stmt)

    async def _fetch(self, stmt) -> List[TWAPSession]:
        async with self._sessionmaker() as db:
            result = await db.execute(stmt)
            return [_from_model(m) for m in result.scalars().all()]

    async def mutate(self, session_id: str, fn: Mutation) -> TWAPSession:
        async with self._sessionmaker() as db:
            async with db.begin():
                result = await db.execute(
                    select(TWAPSessionModel)
                    .where(TWAPSessionModel.id == session_id)
                    .with_for_update()
                )
                model = result.scalar_one_or_none()
                if model is None:
                    raise SessionNotFoundError(session_id)
                session = _from_model(model)
                fn(session)
                session.updated_at = now_ms()
                _to_model(session, model)
            return session

    async def try_acquire_run(
        self, name: str, now: int, min_interval_ms: int
    ) -> Tuple[bool, int]:
        try:
            async with self._sessionmaker() as db:
                async with db.begin():
                    result = await db.execute(
                        update(SchedulerRunModel)
                        .where(
                            SchedulerRunModel.name == name,
                            SchedulerRunModel.last_run_at <= now - min_interval_ms,
                        )
                        .values(last_run_at=now)
                    )
                    if result.rowcount == 1:
                        return True, 0

                    existing = await db.get(SchedulerRunModel, name)
                    if existing is None:
                        db.add(SchedulerRunModel(name=name, last_run_at=now))
                        await db.flush()
                        return True, 0
                    return False, max(existing.last_run_at + min_interval_ms - now, 0)
        except IntegrityError:
            # Another instance inserted the marker first
            return False, min_interval_ms


def build_session_store(settings: Settings) -> SessionStore:
    """Pick the store implementation for the configured environment.

    Production requires a database; the in-memory store is never used
    there as a silent fallback.
    """
    if settings.has_database:
        logger.info("twap_store_selected", backend="sql")
        return SqlSessionStore.from_url(settings.database_url, list_limit=settings.store_list_limit)

    if settings.is_production:
        raise ConfigurationError("DATABASE_URL is required in production")

    logger.warning("twap_store_selected", backend="memory", durable=False)
    return InMemorySessionStore(list_limit=settings.store_list_limit)
