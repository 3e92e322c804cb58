from __future__ import annotations

from typing import Iterable, List

import base58

from flowtracer.core.errors import InvalidAddress

PUBKEY_LEN = 32


def is_valid_address(address: str) -> bool:
    if not address or not isinstance(address, str):
        return False
    if not 32 <= len(address) <= 44:
        return False
    try:
        raw = base58.b58decode(address)
    except ValueError:
        return False
    return len(raw) == PUBKEY_LEN


def require_address(address: str) -> str:
    addr = (address or "").strip()
    if not is_valid_address(addr):
        raise InvalidAddress(f"Invalid address: {address!r}")
    return addr


def require_addresses(addresses: Iterable[str]) -> List[str]:
    """
    Validate a batch, collapsing duplicates and keeping first-seen order.
    All invalid entries are reported together.
    """
    out: List[str] = []
    bad: List[str] = []
    for a in addresses:
        addr = (a or "").strip()
        if not addr:
            continue
        if not is_valid_address(addr):
            bad.append(addr)
        elif addr not in out:
            out.append(addr)
    if bad:
        raise InvalidAddress(f"Invalid address(es): {', '.join(bad)}")
    return out


def encode_pubkey(raw: bytes) -> str:
    if len(raw) != PUBKEY_LEN:
        raise ValueError(f"expected {PUBKEY_LEN} bytes, got {len(raw)}")
    return base58.b58encode(raw).decode("ascii")
