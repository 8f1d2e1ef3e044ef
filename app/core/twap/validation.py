"""
Input validation for the session API.

Everything here runs before any state is touched. Failures raise
ValidationError with a message that is safe to hand back to the caller.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from app.config import Settings

from .errors import ValidationError

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{1,64}$")
TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")


@dataclass(frozen=True)
class CreateSessionParams:
    """Validated parameters for a new session."""
    user_address: str
    total_amount: Decimal
    num_trades: int
    interval_minutes: int
    slippage_bps: int


def is_valid_address(address: Optional[str]) -> bool:
    return isinstance(address, str) and bool(ADDRESS_RE.match(address))


def is_valid_tx_hash(tx_hash: Optional[str]) -> bool:
    return isinstance(tx_hash, str) and bool(TX_HASH_RE.match(tx_hash))


def require_address(address: Optional[str], message: str = "Invalid wallet address format") -> str:
    if not is_valid_address(address):
        raise ValidationError(message)
    return address  # type: ignore[return-value]


def require_tx_hash(tx_hash: Optional[str]) -> str:
    if not tx_hash:
        raise ValidationError("Transaction hash required for deposit confirmation")
    if not is_valid_tx_hash(tx_hash):
        raise ValidationError("Invalid transaction hash format")
    return tx_hash


def _missing(value: Any) -> bool:
    return value is None or value == "" or value == 0


def parse_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError("Invalid numeric values")
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid numeric values") from None
    if not parsed.is_finite():
        raise ValidationError("Invalid numeric values")
    return parsed


def parse_int(value: Any) -> int:
    parsed = parse_decimal(value)
    if parsed != parsed.to_integral_value():
        raise ValidationError("Invalid numeric values")
    return int(parsed)


def validate_create_request(
    settings: Settings,
    user_address: Optional[str],
    total_amount: Any,
    num_trades: Any,
    interval_minutes: Any,
    slippage_bps: Any = None,
) -> CreateSessionParams:
    """Check a session creation request against the configured bounds."""
    if any(_missing(v) for v in (user_address, total_amount, num_trades, interval_minutes)):
        raise ValidationError(
            "Missing required fields: userAddress, totalAmount, numTrades, intervalMinutes"
        )

    require_address(user_address)

    amount = parse_decimal(total_amount)
    trades = parse_int(num_trades)
    interval = parse_int(interval_minutes)
    slippage = parse_int(slippage_bps) if not _missing(slippage_bps) else settings.default_slippage_bps

    if amount < settings.min_total_amount or amount > settings.max_total_amount:
        raise ValidationError(
            f"Total amount must be between {settings.min_total_amount} and "
            f"{settings.max_total_amount} USDC"
        )

    if trades < 1 or trades > settings.max_num_trades:
        raise ValidationError(f"Number of trades must be between 1 and {settings.max_num_trades}")

    if interval < settings.min_interval_minutes:
        raise ValidationError(
            f"Interval must be at least {settings.min_interval_minutes} minute(s)"
        )

    if interval > settings.max_interval_minutes:
        raise ValidationError(
            f"Interval must be at most {settings.max_interval_minutes} minutes"
        )

    if slippage < 1 or slippage > settings.max_slippage_bps:
        raise ValidationError(
            f"Slippage must be between 1 and {settings.max_slippage_bps} bps "
            f"({settings.max_slippage_bps / 100}%)"
        )

    return CreateSessionParams(
        user_address=user_address,  # type: ignore[arg-type]
        total_amount=amount,
        num_trades=trades,
        interval_minutes=interval,
        slippage_bps=slippage,
    )


def validate_deposit_amount(amount: Any) -> Optional[Decimal]:
    """Deposit amount is optional; when present it must be a positive number."""
    if amount is None or amount == "":
        return None
    parsed = parse_decimal(amount)
    if parsed <= 0:
        raise ValidationError("Deposit amount must be positive")
    return parsed
