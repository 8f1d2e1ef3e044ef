"""Conversion between human amounts and on-chain base units."""

from decimal import ROUND_DOWN, Decimal
from typing import Union

USDC_DECIMALS = 6
MOVE_DECIMALS = 8


def to_raw_amount(amount: Union[Decimal, int, str], decimals: int) -> int:
    """Human amount to base units, floored."""
    scaled = Decimal(str(amount)).scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_raw_amount(raw: Union[int, str], decimals: int) -> Decimal:
    return Decimal(int(raw)).scaleb(-decimals)


def apply_bps_haircut(raw: int, bps: int) -> int:
    """Keep `bps` basis points back from a base-unit amount, flooring the rest."""
    return raw * (10_000 - bps) // 10_000
