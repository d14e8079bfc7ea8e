"""Solana wallet address validation."""

import re

from solders.pubkey import Pubkey

from nightfall.exceptions import InvalidWalletError

_BASE58_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def is_valid_wallet(address: str | None) -> bool:
    """Return True when ``address`` parses as a Solana public key."""
    if not address or not isinstance(address, str):
        return False
    if not _BASE58_RE.match(address):
        return False
    try:
        Pubkey.from_string(address)
    except ValueError:
        return False
    return True


def validate_wallet(address: str | None, label: str = "wallet") -> str:
    if not is_valid_wallet(address):
        raise InvalidWalletError(f"Invalid {label} address: {address!r}")
    return address
