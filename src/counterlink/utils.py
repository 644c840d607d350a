from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Optional

from eth_hash.auto import keccak


_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")


def is_valid_address(address: Optional[str]) -> bool:
    return bool(address) and bool(_ADDRESS_RE.match(address))


def is_valid_tx_hash(tx_hash: Optional[str]) -> bool:
    return bool(tx_hash) and bool(_TX_HASH_RE.match(tx_hash))


def to_checksum_address(address: str) -> str:
    """Convert an address to EIP-55 checksummed format."""
    addr = address.lower().replace("0x", "")
    addr_hash = keccak(addr.encode("utf-8")).hex()
    result = "0x"
    for i, c in enumerate(addr):
        if c in "abcdef":
            result += c.upper() if int(addr_hash[i], 16) >= 8 else c
        else:
            result += c
    return result


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return a is b
    return a.lower() == b.lower()


def hex_to_int(value: Any) -> int:
    """Decode a JSON-RPC quantity (``0x``-hex string or int)."""
    if isinstance(value, int):
        return value
    if value in (None, "", "0x"):
        return 0
    return int(value, 16)


def wei_to_ether(wei: int, decimals: int = 18) -> Decimal:
    return Decimal(wei).scaleb(-decimals)


def format_address(address: Optional[str]) -> str:
    """Shorten an address for display: ``0x1234...abcd``."""
    if not address:
        return ""
    if len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def format_tx_hash(tx_hash: Optional[str]) -> str:
    if not tx_hash:
        return ""
    return f"{tx_hash[:10]}...{tx_hash[-8:]}"


def format_balance(balance: Decimal | str | None, decimals: int = 4) -> str:
    if not balance:
        return "0"
    return f"{Decimal(str(balance)):.{decimals}f}"
