from __future__ import annotations

from typing import Iterable, List

from flowtracer.config.settings import SYSTEM_PROGRAM_ID
from flowtracer.core.dto import ParsedInstruction, ParsedTransaction
from flowtracer.core.models import DIRECTION_IN, DIRECTION_OUT, TransferEvent

TRANSFER_TYPES = ("transfer", "transferWithSeed")


def _is_native_transfer(ix: ParsedInstruction) -> bool:
    if ix.program != "system" and ix.program_id != SYSTEM_PROGRAM_ID:
        return False
    return ix.type in TRANSFER_TYPES


def _lamports(raw) -> int:
    try:
        val = int(raw)
    except (TypeError, ValueError):
        return 0
    return max(0, val)


def _all_instructions(tx: ParsedTransaction) -> Iterable[ParsedInstruction]:
    yield from tx.instructions
    for group in tx.inner_instructions:
        yield from group


def extract_transfers(tx: ParsedTransaction, subject: str) -> List[TransferEvent]:
    """
    Native-coin transfers in `tx` that touch `subject`, top-level and inner.

    Instructions where the subject is neither source nor destination are
    ignored. A transfer to self comes out as an `in` event; the aggregator
    drops it.
    """
    events: List[TransferEvent] = []
    ts = int(tx.block_time or 0)

    for ix in _all_instructions(tx):
        if not _is_native_transfer(ix):
            continue
        source = ix.info.get("source") or ""
        destination = ix.info.get("destination") or ""
        amount = _lamports(ix.info.get("lamports"))

        if destination == subject:
            direction = DIRECTION_IN
        elif source == subject:
            direction = DIRECTION_OUT
        else:
            continue

        events.append(
            TransferEvent(
                signature=tx.signature,
                timestamp=ts,
                amount=amount,
                source=source,
                destination=destination,
                direction=direction,
            )
        )

    return events


def extract_all(txs: Iterable[ParsedTransaction], subject: str) -> List[TransferEvent]:
    events: List[TransferEvent] = []
    for tx in txs:
        events.extend(extract_transfers(tx, subject))
    return events
