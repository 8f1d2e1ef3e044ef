"""
Tests for session request validation.
"""

from decimal import Decimal

import pytest

from app.core.twap.errors import ValidationError
from app.core.twap.validation import (
    is_valid_address,
    is_valid_tx_hash,
    require_tx_hash,
    validate_create_request,
    validate_deposit_amount,
)

USER_ADDRESS = "0x" + "ab" * 32


def _create(settings, **overrides):
    params = {
        "user_address": USER_ADDRESS,
        "total_amount": 5,
        "num_trades": 5,
        "interval_minutes": 1,
        "slippage_bps": 100,
    }
    params.update(overrides)
    return validate_create_request(settings, **params)


class TestAddressAndHash:

    @pytest.mark.parametrize("address", ["0x1", "0xA", USER_ADDRESS])
    def test_valid_addresses(self, address):
        assert is_valid_address(address)

    @pytest.mark.parametrize("address", ["", "0x", "abc", "0x" + "a" * 65, "0xzz", None])
    def test_invalid_addresses(self, address):
        assert not is_valid_address(address)

    def test_tx_hash_must_be_64_hex(self):
        assert is_valid_tx_hash("0x" + "f" * 64)
        assert not is_valid_tx_hash("0x" + "f" * 63)

    def test_require_tx_hash_messages(self):
        with pytest.raises(ValidationError, match="Transaction hash required"):
            require_tx_hash(None)
        with pytest.raises(ValidationError, match="Invalid transaction hash format"):
            require_tx_hash("0x1234")


class TestCreateRequest:

    def test_valid_request(self, test_settings):
        params = _create(test_settings)
        assert params.total_amount == Decimal("5")
        assert params.num_trades == 5
        assert params.slippage_bps == 100

    def test_string_numbers_accepted(self, test_settings):
        params = _create(test_settings, total_amount="12.5", num_trades="4", interval_minutes="10")
        assert params.total_amount == Decimal("12.5")
        assert params.num_trades == 4

    def test_default_slippage(self, test_settings):
        assert _create(test_settings, slippage_bps=None).slippage_bps == 100

    def test_missing_fields(self, test_settings):
        with pytest.raises(ValidationError, match="Missing required fields"):
            _create(test_settings, num_trades=None)

    def test_bad_address(self, test_settings):
        with pytest.raises(ValidationError, match="Invalid wallet address format"):
            _create(test_settings, user_address="not-an-address")

    def test_non_numeric(self, test_settings):
        with pytest.raises(ValidationError, match="Invalid numeric values"):
            _create(test_settings, total_amount="lots")

    @pytest.mark.parametrize("amount", ["0.5", "100001"])
    def test_amount_bounds(self, test_settings, amount):
        with pytest.raises(ValidationError, match="Total amount must be between 1 and 100000"):
            _create(test_settings, total_amount=amount)

    def test_trade_bounds(self, test_settings):
        with pytest.raises(ValidationError, match="Number of trades must be between 1 and 1000"):
            _create(test_settings, num_trades=1001)

    def test_interval_minimum(self, test_settings):
        with pytest.raises(ValidationError, match="Interval must be at least 1 minute"):
            _create(test_settings, interval_minutes=-5)

    def test_interval_maximum(self, test_settings):
        with pytest.raises(ValidationError, match="Interval must be at most 525600 minutes"):
            _create(test_settings, interval_minutes=525_601)

    def test_interval_maximum_is_inclusive(self, test_settings):
        params = _create(test_settings, interval_minutes=525_600)
        assert params.interval_minutes == 525_600

    @pytest.mark.parametrize("slippage", [-1, 501])
    def test_slippage_bounds(self, test_settings, slippage):
        with pytest.raises(ValidationError, match="Slippage must be between 1 and 500 bps"):
            _create(test_settings, slippage_bps=slippage)


class TestDepositAmount:

    def test_optional(self):
        assert validate_deposit_amount(None) is None

    def test_positive(self):
        assert validate_deposit_amount("5") == Decimal("5")

    def test_rejects_non_positive(self):
        with pytest.raises(ValidationError):
            validate_deposit_amount(-1)
