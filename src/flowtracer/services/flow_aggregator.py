from __future__ import annotations

from typing import Dict, Iterable, List

from flowtracer.core.models import (
    DIRECTION_IN,
    DIRECTION_OUT,
    DUST_FLOOR_LAMPORTS,
    CounterpartyAggregate,
    FlowAggregation,
    TransferEvent,
)


def _sort_key(a: CounterpartyAggregate):
    return (-a.total_amount, a.counterparty)


def sort_aggregates(aggregates: Iterable[CounterpartyAggregate]) -> List[CounterpartyAggregate]:
    """Largest total first, ties by address."""
    return sorted(aggregates, key=_sort_key)


def apply_dust_floor(
    aggregates: Iterable[CounterpartyAggregate],
    floor: int = DUST_FLOOR_LAMPORTS,
) -> List[CounterpartyAggregate]:
    return [a for a in aggregates if a.total_amount >= floor]


def fold_events(events: Iterable[TransferEvent], subject: str, direction: str) -> Dict[str, CounterpartyAggregate]:
    folded: Dict[str, CounterpartyAggregate] = {}
    for e in events:
        if e.direction != direction:
            continue
        cp = e.counterparty
        if not cp or cp == subject:
            continue
        agg = folded.get(cp)
        if agg is None:
            agg = folded[cp] = CounterpartyAggregate(counterparty=cp)
        agg.total_amount += e.amount
        agg.event_count += 1
    return folded


def aggregate_flows(
    events: Iterable[TransferEvent],
    subject: str,
    dust_floor: int = DUST_FLOOR_LAMPORTS,
) -> FlowAggregation:
    events = list(events)
    inbound = fold_events(events, subject, DIRECTION_IN)
    outbound = fold_events(events, subject, DIRECTION_OUT)
    return FlowAggregation(
        subject=subject,
        inbound=sort_aggregates(apply_dust_floor(inbound.values(), dust_floor)),
        outbound=sort_aggregates(apply_dust_floor(outbound.values(), dust_floor)),
    )


def next_frontier(agg: FlowAggregation, cap: int) -> List[str]:
    """
    Inbound counterparties then outbound ones, each in aggregate order,
    without repeats, truncated to `cap`.
    """
    out: List[str] = []
    for a in list(agg.inbound) + list(agg.outbound):
        if a.counterparty in out:
            continue
        out.append(a.counterparty)
    return out[:max(0, cap)]
