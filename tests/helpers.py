from typing import Iterable, List, Optional, Tuple

import base58

from flowtracer.adapters.ledger.static_ledger_adapter import system_transfer
from flowtracer.core.dto import ParsedInstruction, ParsedTransaction
from flowtracer.core.models import LAMPORTS_PER_SOL

_sig_counter = [0]


def addr(n: int) -> str:
    """Deterministic valid 32-byte address."""
    return base58.b58encode(bytes([n % 256]) * 31 + bytes([n // 256])).decode("ascii")


def sol(x: float) -> int:
    return int(round(x * LAMPORTS_PER_SOL))


def next_sig(prefix: str = "sig") -> str:
    _sig_counter[0] += 1
    return f"{prefix}{_sig_counter[0]}"


def transfer_tx(
    source: str,
    destination: str,
    lamports: int,
    block_time: int = 1_700_000_000,
    signature: Optional[str] = None,
    inner: bool = False,
) -> ParsedTransaction:
    ix = system_transfer(source, destination, lamports)
    return ParsedTransaction(
        signature=signature or next_sig(),
        block_time=block_time,
        instructions=() if inner else (ix,),
        inner_instructions=((ix,),) if inner else (),
    )


def multi_tx(
    legs: Iterable[Tuple[str, str, int]],
    block_time: int = 1_700_000_000,
    signature: Optional[str] = None,
    extra: Tuple[ParsedInstruction, ...] = (),
) -> ParsedTransaction:
    instructions: List[ParsedInstruction] = [system_transfer(s, d, l) for s, d, l in legs]
    instructions.extend(extra)
    return ParsedTransaction(
        signature=signature or next_sig(),
        block_time=block_time,
        instructions=tuple(instructions),
    )
