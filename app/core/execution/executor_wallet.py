"""
Executor wallet.

The backend-controlled Ed25519 account that swaps deposited USDC and sends
MOVE back to users. Transactions are built against the fullnode REST API,
optionally sponsored by the gas station, signed locally and submitted.

Submissions from one account are serialized so sequence numbers never
collide between concurrent trades.
"""

import asyncio
import hashlib
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from nacl.exceptions import CryptoError
from nacl.signing import SigningKey

from app.config import Settings, settings as default_settings
from app.core.twap.errors import ExecutorNotConfiguredError
from app.providers.movement import (
    MovementClient,
    MovementError,
    TransactionFailedError,
    TransactionPendingError,
    get_movement_client,
)
from app.providers.shinami import GasStationClient, get_gas_station_client

from .units import from_raw_amount, to_raw_amount

logger = structlog.stdlib.get_logger(__name__)

KEY_PREFIX = "ed25519-priv-"
ED25519_SCHEME = b"\x00"
FA_METADATA_TYPE = "0x1::fungible_asset::Metadata"


def parse_private_key(raw: str) -> SigningKey:
    """Load an Ed25519 key from `ed25519-priv-0x...`, `0x...` or bare hex."""
    cleaned = raw.strip()
    if cleaned.startswith(KEY_PREFIX):
        cleaned = cleaned[len(KEY_PREFIX):]
    if cleaned.startswith("0x"):
        cleaned = cleaned[2:]
    try:
        seed = bytes.fromhex(cleaned)
        if len(seed) != 32:
            raise ValueError("wrong key length")
        return SigningKey(seed)
    except (ValueError, CryptoError):
        # Key material must never reach logs or responses
        raise ExecutorNotConfiguredError("Invalid executor wallet configuration") from None


def derive_address(public_key: bytes) -> str:
    """Single-key Ed25519 authentication key, which is also the account address."""
    return "0x" + hashlib.sha3_256(public_key + ED25519_SCHEME).hexdigest()


def _json_argument(value: Any) -> Any:
    # Integers travel as strings so u64/u128 values survive JSON
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, list):
        return [_json_argument(v) for v in value]
    return value


@dataclass
class ExecutorBalances:
    move: Decimal
    usdc: Decimal

    def to_dict(self) -> Dict[str, float]:
        return {"move": float(self.move), "usdc": float(self.usdc)}


class ExecutorWallet:
    """Signs and submits entry function transactions for the executor account."""

    def __init__(
        self,
        private_key: Optional[str] = None,
        movement: Optional[MovementClient] = None,
        gas_station: Optional[GasStationClient] = None,
        settings: Optional[Settings] = None,
    ):
        self._settings = settings or default_settings
        self._private_key = (
            private_key if private_key is not None else self._settings.executor_private_key
        )
        self._movement = movement or get_movement_client()
        self._gas_station = gas_station or get_gas_station_client()
        self._signing_key: Optional[SigningKey] = None
        self._address: Optional[str] = None
        self._submit_lock = asyncio.Lock()

    def is_configured(self) -> bool:
        return bool(self._private_key)

    def _key(self) -> SigningKey:
        if self._signing_key is None:
            if not self.is_configured():
                raise ExecutorNotConfiguredError()
            self._signing_key = parse_private_key(self._private_key)
            self._address = derive_address(bytes(self._signing_key.verify_key))
            logger.info("executor_wallet_initialized", address=self._address)
        return self._signing_key

    @property
    def address(self) -> str:
        self._key()
        return self._address  # type: ignore[return-value]

    @property
    def public_key_hex(self) -> str:
        return "0x" + bytes(self._key().verify_key).hex()

    def sign(self, message_hex: str) -> str:
        message = bytes.fromhex(message_hex[2:] if message_hex.startswith("0x") else message_hex)
        return "0x" + self._key().sign(message).signature.hex()

    def _authenticator(self, signature: str) -> Dict[str, str]:
        return {
            "type": "ed25519_signature",
            "public_key": self.public_key_hex,
            "signature": signature,
        }

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_move_balance(self) -> Decimal:
        result = await self._movement.view(
            "0x1::coin::balance",
            [self._settings.move_coin_type],
            [self.address],
        )
        return from_raw_amount(result[0], self._settings.move_decimals)

    async def get_usdc_balance(self) -> Decimal:
        result = await self._movement.view(
            "0x1::primary_fungible_store::balance",
            [FA_METADATA_TYPE],
            [self.address, self._settings.usdc_asset_address],
        )
        return from_raw_amount(result[0], self._settings.usdc_decimals)

    async def get_balances(self) -> ExecutorBalances:
        move, usdc = await asyncio.gather(self.get_move_balance(), self.get_usdc_balance())
        return ExecutorBalances(move=move, usdc=usdc)

    # =========================================================================
    # Submission
    # =========================================================================

    async def _build(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        sequence_number = await self._movement.get_account_sequence_number(self.address)
        gas_unit_price = await self._movement.estimate_gas_price()
        return {
            "sender": self.address,
            "sequence_number": str(sequence_number),
            "max_gas_amount": str(self._settings.max_gas_amount),
            "gas_unit_price": str(gas_unit_price),
            "expiration_timestamp_secs": str(
                int(time.time()) + self._settings.tx_expiration_seconds
            ),
            "payload": payload,
        }

    async def submit_entry_function(
        self,
        function: str,
        type_arguments: Optional[List[str]] = None,
        arguments: Optional[List[Any]] = None,
    ) -> str:
        """
        Build, sign, submit and wait for an entry function call.

        Uses the gas station as fee payer when configured, otherwise the
        executor pays its own gas.

        Returns:
            Hash of the committed transaction

        Raises:
            ExecutorNotConfiguredError: No usable key
            GasStationError: Sponsorship was refused
            MovementError / TransactionFailedError: Submission or execution failed
            TransactionPendingError: Submitted, but the outcome is unknown
        """
        payload = {
            "type": "entry_function_payload",
            "function": function,
            "type_arguments": list(type_arguments or []),
            "arguments": [_json_argument(a) for a in (arguments or [])],
        }

        async with self._submit_lock:
            raw_txn = await self._build(payload)
            sponsored = self._gas_station.is_configured()

            if sponsored:
                fee_payer = await self._gas_station.sponsor_transaction(raw_txn)
                signature = {
                    "type": "fee_payer_signature",
                    "sender": self._authenticator(self.sign(fee_payer.signing_message)),
                    "secondary_signer_addresses": [],
                    "secondary_signers": [],
                    "fee_payer_address": fee_payer.address,
                    "fee_payer_signer": fee_payer.to_authenticator(),
                }
            else:
                signing_message = await self._movement.encode_submission(raw_txn)
                signature = self._authenticator(self.sign(signing_message))

            tx_hash = await self._movement.submit_transaction({**raw_txn, "signature": signature})
            logger.info(
                "executor_tx_submitted",
                tx_hash=tx_hash,
                function=function,
                sequence_number=raw_txn["sequence_number"],
                sponsored=sponsored,
            )
            try:
                await self._movement.wait_for_transaction(tx_hash)
            except (TransactionFailedError, TransactionPendingError):
                raise
            except MovementError as e:
                # Already broadcast; the hash must reach the caller
                raise TransactionPendingError(tx_hash, str(e)) from e

        logger.info("executor_tx_confirmed", tx_hash=tx_hash, function=function)
        return tx_hash

    async def transfer_move(self, recipient: str, amount: Decimal) -> str:
        raw = to_raw_amount(amount, self._settings.move_decimals)
        return await self.transfer_move_raw(recipient, raw)

    async def transfer_move_raw(self, recipient: str, raw_amount: int) -> str:
        return await self.submit_entry_function(
            "0x1::aptos_account::transfer",
            [],
            [recipient, raw_amount],
        )

    async def transfer_usdc(self, recipient: str, amount: Decimal) -> str:
        raw = to_raw_amount(amount, self._settings.usdc_decimals)
        return await self.submit_entry_function(
            "0x1::primary_fungible_store::transfer",
            [FA_METADATA_TYPE],
            [self._settings.usdc_asset_address, recipient, raw],
        )


_executor_wallet: Optional[ExecutorWallet] = None


def get_executor_wallet() -> ExecutorWallet:
    global _executor_wallet
    if _executor_wallet is None:
        _executor_wallet = ExecutorWallet()
    return _executor_wallet
