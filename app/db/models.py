"""SQLAlchemy models for the TWAP session store.

One row per session. Trades are kept inline as a JSON array since they are
append-only and always read together with their session.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

SESSION_STATUSES = (
    "awaiting_deposit",
    "active",
    "paused",
    "completed",
    "failed",
    "cancelled",
)


class DecimalText(TypeDecorator):
    """Exact decimal stored as text.

    SQLite has no exact numeric type; text keeps round-trips lossless on
    every backend. Check constraints cast back to NUMERIC.
    """

    impl = String(80)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[str]:
        if value is None:
            return None
        return str(Decimal(str(value)))

    def process_result_value(self, value: Any, dialect: Any) -> Optional[Decimal]:
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TWAPSessionModel(Base):
    """Persisted TWAP session."""

    __tablename__ = "twap_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_address: Mapped[str] = mapped_column(String(66), nullable=False)

    deposit_tx_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)
    deposited_amount: Mapped[Decimal] = mapped_column(DecimalText, nullable=False, default=Decimal("0"))
    deposit_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    total_amount: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    amount_per_trade: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    num_trades: Mapped[int] = mapped_column(Integer, nullable=False)
    trades_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    interval_minutes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    slippage_bps: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    started_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    next_trade_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    total_move_received: Mapped[Decimal] = mapped_column(DecimalText, nullable=False, default=Decimal("0"))
    pending_transfer_amount: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal("0")
    )
    trades: Mapped[List[Any]] = mapped_column(JSON, nullable=False, default=list)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_twap_sessions_user_address", "user_address"),
        Index("ix_twap_sessions_status", "status"),
        Index(
            "ix_twap_sessions_due",
            "next_trade_at",
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in SESSION_STATUSES) + ")",
            name="valid_status",
        ),
        CheckConstraint(
            "CAST(total_amount AS NUMERIC) > 0 "
            "AND CAST(amount_per_trade AS NUMERIC) > 0 "
            "AND num_trades > 0",
            name="positive_amounts",
        ),
    )


class SchedulerRunModel(Base):
    """Last-run marker shared by every scheduler instance."""

    __tablename__ = "scheduler_runs"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_run_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
