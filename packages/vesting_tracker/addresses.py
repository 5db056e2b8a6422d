"""Bitcoin address and transaction id format checks.

Format-only validation (no checksum verification). Runs before any network
call so malformed input never reaches the indexer.
"""

from __future__ import annotations

import re

from .errors import ValidationError

_MIN_ADDRESS_LEN = 26
_MAX_ADDRESS_LEN = 62

_ADDRESS_PATTERNS: tuple[re.Pattern[str], ...] = (
    # P2PKH (legacy)
    re.compile(r"^1[a-km-zA-HJ-NP-Z1-9]{25,34}$"),
    # P2SH
    re.compile(r"^3[a-km-zA-HJ-NP-Z1-9]{25,34}$"),
    # Bech32 native segwit
    re.compile(r"^bc1[a-z0-9]{39,59}$"),
    # Testnet equivalents
    re.compile(r"^[mn][a-km-zA-HJ-NP-Z1-9]{25,34}$"),
    re.compile(r"^2[a-km-zA-HJ-NP-Z1-9]{25,34}$"),
    re.compile(r"^tb1[a-z0-9]{39,59}$"),
)

_TXID_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def is_valid_bitcoin_address(address: object) -> bool:
    if not isinstance(address, str) or not address:
        return False
    if not _MIN_ADDRESS_LEN <= len(address) <= _MAX_ADDRESS_LEN:
        return False
    return any(p.fullmatch(address) for p in _ADDRESS_PATTERNS)


def validate_bitcoin_address(address: object) -> str:
    """Return ``address`` unchanged or raise :class:`ValidationError`."""

    if not is_valid_bitcoin_address(address):
        raise ValidationError("Invalid Bitcoin address format", field="Bitcoin address")
    return address  # type: ignore[return-value]


def validate_txid(txid: object) -> str:
    if not isinstance(txid, str) or not _TXID_RE.fullmatch(txid):
        raise ValidationError("Invalid transaction ID format", field="transaction ID")
    return txid


__all__ = ["is_valid_bitcoin_address", "validate_bitcoin_address", "validate_txid"]
