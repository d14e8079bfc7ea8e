"""SOL amount parsing and formatting.

Amounts travel as decimal strings and are handled as ``Decimal`` values
quantized to lamports (9 decimal places). Floats are never used for money.
"""

from decimal import Decimal, InvalidOperation

from nightfall.exceptions import InvalidAmountError

LAMPORTS_PER_SOL = 1_000_000_000
SOL_DECIMALS = 9

_LAMPORT = Decimal(1).scaleb(-SOL_DECIMALS)


def parse_sol(value: str | int | Decimal | None, default: str | None = None) -> Decimal:
    """Parse a SOL amount into a Decimal.

    ``None`` and the empty string fall back to ``default`` when one is given.
    Floats are rejected outright; negative, non-finite and sub-lamport
    amounts raise InvalidAmountError.
    """
    if value is None or value == "":
        if default is None:
            raise InvalidAmountError("Amount is required")
        value = default

    if isinstance(value, (float, bool)):
        raise InvalidAmountError(f"Amount must be a decimal string, got {type(value).__name__}")

    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidAmountError(f"Invalid amount: {value!r}")

    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    if amount < 0:
        raise InvalidAmountError(f"Amount cannot be negative: {value}")
    if amount != amount.quantize(_LAMPORT):
        raise InvalidAmountError(
            f"Amount {value} has more than {SOL_DECIMALS} decimal places"
        )

    return amount


def format_sol(amount: Decimal) -> str:
    """Render an amount in canonical form: fixed point, no trailing zeros."""
    text = format(amount.quantize(_LAMPORT), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"


def canonical_sol(value: str | int | Decimal | None, default: str | None = None) -> str:
    return format_sol(parse_sol(value, default))


def to_lamports(amount: Decimal) -> int:
    return int(amount.quantize(_LAMPORT) * LAMPORTS_PER_SOL)


def from_lamports(lamports: int) -> Decimal:
    return (Decimal(lamports) / LAMPORTS_PER_SOL).quantize(_LAMPORT)
