"""
TWAP Session Models

Data models for delegated TWAP buyback sessions and the trades executed
against them. Amounts are Decimal in human units (USDC in, MOVE out);
timestamps are epoch milliseconds.
"""

from __future__ import annotations

import copy
import time
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

# Storage precision for amounts (see DecimalText in app.db.models)
AMOUNT_QUANTUM = Decimal("1e-18")
MS_PER_MINUTE = 60_000
# Largest timestamp a signed 64-bit column holds
MAX_EPOCH_MS = 2**63 - 1


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _opt_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else _decimal(value)


def _amount_out(value: Decimal, exact: bool) -> Any:
    return str(value) if exact else float(value)


class SessionStatus(str, Enum):
    """TWAP session status."""
    AWAITING_DEPOSIT = "awaiting_deposit"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED}
)
OPEN_STATUSES = frozenset({SessionStatus.AWAITING_DEPOSIT, SessionStatus.ACTIVE})


class TradeStatus(str, Enum):
    """Outcome of a single trade attempt."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class TradeStage(str, Enum):
    """Progress of the two-leg swap/transfer saga within one trade."""
    SWAP_PENDING = "swap_pending"
    SWAP_UNCONFIRMED = "swap_unconfirmed"
    SWAP_DONE = "swap_done"
    TRANSFER_PENDING = "transfer_pending"
    TRANSFER_DONE = "transfer_done"

    @property
    def swap_settled(self) -> bool:
        """True once the swap is confirmed and its output is known."""
        return self not in (TradeStage.SWAP_PENDING, TradeStage.SWAP_UNCONFIRMED)

    @property
    def slice_consumed(self) -> bool:
        """True once the swap was broadcast, so the input may be spent."""
        return self is not TradeStage.SWAP_PENDING


@dataclass
class TradeRecord:
    """One attempted trade within a session."""
    id: str
    timestamp: int
    amount_in: Decimal
    sequence: int = 0
    amount_out: Decimal = Decimal("0")
    amount_transferred: Optional[Decimal] = None
    swap_tx_hash: str = ""
    transfer_tx_hash: Optional[str] = None
    status: TradeStatus = TradeStatus.PENDING
    stage: TradeStage = TradeStage.SWAP_PENDING
    error: Optional[str] = None

    @classmethod
    def new(cls, session: "TWAPSession") -> "TradeRecord":
        """Start a pending record for the session's next slice."""
        return cls(
            id=f"trade-{uuid.uuid4()}",
            timestamp=now_ms(),
            amount_in=session.amount_per_trade,
            sequence=session.trades_completed + 1,
        )

    def to_dict(self, exact: bool = False) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "sequence": self.sequence,
            "amountIn": _amount_out(self.amount_in, exact),
            "amountOut": _amount_out(self.amount_out, exact),
            "amountTransferred": (
                _amount_out(self.amount_transferred, exact)
                if self.amount_transferred is not None
                else None
            ),
            "swapTxHash": self.swap_tx_hash,
            "transferTxHash": self.transfer_tx_hash,
            "status": self.status.value,
            "stage": self.stage.value,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TradeRecord:
        return cls(
            id=data["id"],
            timestamp=int(data["timestamp"]),
            sequence=int(data.get("sequence", 0)),
            amount_in=_decimal(data["amountIn"]),
            amount_out=_decimal(data.get("amountOut", 0)),
            amount_transferred=_opt_decimal(data.get("amountTransferred")),
            swap_tx_hash=data.get("swapTxHash") or "",
            transfer_tx_hash=data.get("transferTxHash"),
            status=TradeStatus(data.get("status", TradeStatus.PENDING.value)),
            stage=TradeStage(data.get("stage", TradeStage.SWAP_PENDING.value)),
            error=data.get("error"),
        )


@dataclass
class TWAPSession:
    """A user's buyback plan: one deposit split into timed swaps."""
    # Identity
    id: str
    user_address: str

    # Plan (immutable after creation)
    total_amount: Decimal
    num_trades: int
    amount_per_trade: Decimal
    interval_minutes: int
    slippage_bps: int
    expires_at: int

    # Deposit
    deposit_tx_hash: Optional[str] = None
    deposited_amount: Decimal = Decimal("0")
    deposit_confirmed: bool = False

    # State
    status: SessionStatus = SessionStatus.AWAITING_DEPOSIT
    next_trade_at: Optional[int] = None

    # Progress
    trades_completed: int = 0
    total_move_received: Decimal = Decimal("0")
    pending_transfer_amount: Decimal = Decimal("0")
    trades: List[TradeRecord] = field(default_factory=list)
    last_error: Optional[str] = None

    # Timestamps
    created_at: int = field(default_factory=now_ms)
    started_at: Optional[int] = None
    updated_at: int = field(default_factory=now_ms)

    @classmethod
    def create(
        cls,
        user_address: str,
        total_amount: Decimal,
        num_trades: int,
        interval_minutes: int,
        slippage_bps: int,
        expiry_buffer_minutes: int,
        now: Optional[int] = None,
    ) -> TWAPSession:
        """Build a fresh session awaiting deposit.

        The per-trade amount is derived here once and never recomputed.
        """
        created = now if now is not None else now_ms()
        total_amount = _decimal(total_amount)
        per_trade = (total_amount / num_trades).quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)
        duration_ms = (num_trades * interval_minutes + expiry_buffer_minutes) * MS_PER_MINUTE
        return cls(
            id=str(uuid.uuid4()),
            user_address=user_address.lower(),
            total_amount=total_amount,
            num_trades=num_trades,
            amount_per_trade=per_trade,
            interval_minutes=interval_minutes,
            slippage_bps=slippage_bps,
            expires_at=created + duration_ms,
            created_at=created,
            updated_at=created,
        )

    @property
    def interval_ms(self) -> int:
        return self.interval_minutes * MS_PER_MINUTE

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_due(self, now: int) -> bool:
        """Selection predicate for the scheduler's due-session scan."""
        return (
            self.status == SessionStatus.ACTIVE
            and self.deposit_confirmed
            and self.next_trade_at is not None
            and self.next_trade_at <= now
            and self.trades_completed < self.num_trades
            and self.expires_at > now
        )

    def is_expired(self, now: int) -> bool:
        return self.expires_at < now and not self.is_terminal

    def owned_by(self, address: Optional[str]) -> bool:
        return bool(address) and self.user_address.lower() == address.lower()

    def clone(self) -> TWAPSession:
        return copy.deepcopy(self)

    def to_dict(self, exact: bool = False) -> Dict[str, Any]:
        """Wire representation (camelCase). `exact` keeps amounts as strings."""
        return {
            "id": self.id,
            "userAddress": self.user_address,
            "depositTxHash": self.deposit_tx_hash,
            "depositedAmount": _amount_out(self.deposited_amount, exact),
            "depositConfirmed": self.deposit_confirmed,
            "totalAmount": _amount_out(self.total_amount, exact),
            "amountPerTrade": _amount_out(self.amount_per_trade, exact),
            "numTrades": self.num_trades,
            "tradesCompleted": self.trades_completed,
            "intervalMinutes": self.interval_minutes,
            "slippageBps": self.slippage_bps,
            "status": self.status.value,
            "createdAt": self.created_at,
            "startedAt": self.started_at,
            "nextTradeAt": self.next_trade_at,
            "expiresAt": self.expires_at,
            "updatedAt": self.updated_at,
            "totalMoveReceived": _amount_out(self.total_move_received, exact),
            "pendingTransferAmount": _amount_out(self.pending_transfer_amount, exact),
            "trades": [t.to_dict(exact) for t in self.trades],
            "lastError": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TWAPSession:
        return cls(
            id=data["id"],
            user_address=data["userAddress"],
            deposit_tx_hash=data.get("depositTxHash"),
            deposited_amount=_decimal(data.get("depositedAmount", 0)),
            deposit_confirmed=bool(data.get("depositConfirmed", False)),
            total_amount=_decimal(data["totalAmount"]),
            amount_per_trade=_decimal(data["amountPerTrade"]),
            num_trades=int(data["numTrades"]),
            trades_completed=int(data.get("tradesCompleted", 0)),
            interval_minutes=int(data["intervalMinutes"]),
            slippage_bps=int(data["slippageBps"]),
            status=SessionStatus(data["status"]),
            created_at=int(data["createdAt"]),
            started_at=data.get("startedAt"),
            next_trade_at=data.get("nextTradeAt"),
            expires_at=int(data["expiresAt"]),
            updated_at=int(data.get("updatedAt") or data["createdAt"]),
            total_move_received=_decimal(data.get("totalMoveReceived", 0)),
            pending_transfer_amount=_decimal(data.get("pendingTransferAmount", 0)),
            trades=[TradeRecord.from_dict(t) for t in data.get("trades", [])],
            last_error=data.get("lastError"),
        )


@dataclass
class SessionStats:
    """Counts of sessions per status."""
    total: int = 0
    awaiting_deposit: int = 0
    active: int = 0
    paused: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0

    @classmethod
    def from_sessions(cls, sessions: List[TWAPSession]) -> SessionStats:
        stats = cls(total=len(sessions))
        for session in sessions:
            name = session.status.value
            setattr(stats, name, getattr(stats, name) + 1)
        return stats

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "awaitingDeposit": self.awaiting_deposit,
            "active": self.active,
            "paused": self.paused,
            "completed": self.completed,
            "failed": self.failed,
            "cancelled": self.cancelled,
        }
