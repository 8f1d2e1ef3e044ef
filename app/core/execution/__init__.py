"""
Transaction Execution Layer

Executor account signing and submission on Movement:
- ExecutorWallet: loads the executor key, reads balances, submits entry functions
- Unit helpers between human amounts and base units

Usage:
    from app.core.execution import get_executor_wallet

    wallet = get_executor_wallet()
    tx_hash = await wallet.transfer_move(recipient, Decimal("1.5"))
"""

from .units import (
    MOVE_DECIMALS,
    USDC_DECIMALS,
    apply_bps_haircut,
    from_raw_amount,
    to_raw_amount,
)

from .executor_wallet import (
    ExecutorBalances,
    ExecutorWallet,
    derive_address,
    get_executor_wallet,
    parse_private_key,
)

__all__ = [
    # Units
    "MOVE_DECIMALS",
    "USDC_DECIMALS",
    "apply_bps_haircut",
    "from_raw_amount",
    "to_raw_amount",
    # Executor wallet
    "ExecutorBalances",
    "ExecutorWallet",
    "derive_address",
    "get_executor_wallet",
    "parse_private_key",
]
