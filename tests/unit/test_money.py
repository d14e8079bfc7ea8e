"""Unit tests for SOL amount parsing and formatting."""

from decimal import Decimal

import pytest

from nightfall.exceptions import InvalidAmountError
from nightfall.money import (
    canonical_sol,
    format_sol,
    from_lamports,
    parse_sol,
    to_lamports,
)


def test_pool_minus_fee_is_exact() -> None:
    net = parse_sol("0.2002") - parse_sol("0.0001")
    assert format_sol(net) == "0.2001"


def test_format_drops_trailing_zeros() -> None:
    assert format_sol(Decimal("1.500000000")) == "1.5"
    assert format_sol(Decimal("2")) == "2"
    assert format_sol(Decimal("0")) == "0"
    assert format_sol(Decimal("0.000000001")) == "0.000000001"


def test_parse_accepts_integers_and_decimals() -> None:
    assert parse_sol(3) == Decimal("3")
    assert parse_sol(Decimal("0.25")) == Decimal("0.25")
    assert parse_sol(" 0.1 ") == Decimal("0.1")


def test_parse_uses_default_for_missing_values() -> None:
    assert parse_sol(None, default="0.0001") == Decimal("0.0001")
    assert parse_sol("", default="0") == Decimal("0")

    with pytest.raises(InvalidAmountError):
        parse_sol(None)


@pytest.mark.parametrize("value", [0.1, True, "abc", "NaN", "Infinity", "-1", "0.0000000001"])
def test_parse_rejects_invalid_amounts(value) -> None:
    with pytest.raises(InvalidAmountError):
        parse_sol(value)


def test_lamport_conversion() -> None:
    assert to_lamports(Decimal("1")) == 1_000_000_000
    assert to_lamports(Decimal("0.0001")) == 100_000
    assert from_lamports(5_000) == Decimal("0.000005")


def test_canonical_sol() -> None:
    assert canonical_sol("0.10") == "0.1"
    assert canonical_sol(None, default="0") == "0"
