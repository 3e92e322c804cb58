from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from flowtracer.config import settings
from flowtracer.core.addresses import require_address
from flowtracer.core.errors import PartialDegradation, TracerError
from flowtracer.core.models import (
    FLOW_INFLOW,
    FLOW_OUTFLOW,
    FlowAggregation,
    FlowNode,
    TraceConfig,
    TraceResult,
)
from flowtracer.services.flow_aggregator import aggregate_flows, next_frontier
from flowtracer.services.ledger_client import LedgerClient
from flowtracer.services.transfer_extractor import extract_all

logger = logging.getLogger(__name__)

ProgressFn = Callable[[str, Dict[str, Any]], None]


@dataclass(frozen=True)
class _hopItem:
    address: str
    depth: int


@dataclass
class _TraceRun:
    """
    Mutable state of one trace. Never shared between runs.
    """

    cfg: TraceConfig
    result: TraceResult
    visited: Set[str] = field(default_factory=set)
    nodes: Dict[Tuple[str, str, int], FlowNode] = field(default_factory=dict)
    progress: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock)
    emit_lock: threading.Lock = field(default_factory=threading.Lock)

    def claim(self, address: str) -> bool:
        # check-and-mark in one step; the caller may fetch history only on True
        with self.lock:
            if address in self.visited:
                return False
            self.visited.add(address)
            self.result.expanded.append(address)
            return True

    def merge(self, node: FlowNode) -> None:
        # one node per (direction, address, hop); `via` keeps the largest contributor
        key = (node.direction, node.address, node.hop)
        with self.lock:
            prev = self.nodes.get(key)
            if prev is None:
                self.nodes[key] = node
                return
            via = prev.via
            if (-node.amount, node.via or "") < (-prev.amount, prev.via or ""):
                via = node.via
            self.nodes[key] = replace(
                prev,
                total_in=prev.total_in + node.total_in,
                total_out=prev.total_out + node.total_out,
                event_count=prev.event_count + node.event_count,
                via=via,
            )

    def flows(self, direction: str) -> List[FlowNode]:
        return [n for n in self.nodes.values() if n.direction == direction]

    def advance(self, value: float) -> float:
        with self.lock:
            self.progress = max(self.progress, min(value, 100.0))
            return self.progress

    def notify(self, emit: ProgressFn, event: str, data: Dict[str, Any], value: float) -> None:
        # serialised so listeners see non-decreasing progress across worker threads
        with self.emit_lock:
            data["progress"] = self.advance(value)
            emit(event, data)


class TracerService:
    """
    Expands a target address into inbound/outbound counterparties over
    several hops.

    - Traversal: breadth-first, one hop level at a time
    - Each address has its history fetched at most once per run
    - Next hop: top `branching_cap` counterparties of each expanded address
    - One FlowNode per (direction, address, hop); parents at the same hop are summed
    """

    def __init__(self, client: LedgerClient, max_workers: int = 1) -> None:
        self.client = client
        self.max_workers = max(1, int(max_workers))

    def trace(
        self,
        cfg: TraceConfig,
        on_progress: Optional[ProgressFn] = None,
        cancel: Optional[threading.Event] = None,
    ) -> TraceResult:
        target = require_address(cfg.address)
        max_hops = int(cfg.max_hops)
        if not 1 <= max_hops <= settings.TRACE_MAX_HOPS:
            raise ValueError(f"max_hops must be between 1 and {settings.TRACE_MAX_HOPS}, got {max_hops}")

        emit = on_progress or (lambda event, data: None)
        run = _TraceRun(cfg=cfg, result=TraceResult(target=target, max_hops=max_hops))
        run.notify(emit, "start", {"address": target, "max_hops": max_hops}, 0.0)

        level: List[_hopItem] = [_hopItem(target, 0)]
        depth = 0
        while level:
            if depth > 0 and cancel is not None and cancel.is_set():
                run.result.cancelled = True
                logger.info("trace of %s cancelled before hop %d", target, depth)
                break

            next_level = self._expand_level(run, level, depth, emit)
            run.notify(emit, "hop_done", {
                "depth": depth,
                "expanded": run.result.fetch_count,
                "next": len(next_level),
            }, (depth + 1) / max_hops * 100.0)
            level = next_level
            depth += 1

        run.result.inflows = sorted(run.flows(FLOW_INFLOW), key=lambda n: (-n.total_in, n.hop, n.address))
        run.result.outflows = sorted(run.flows(FLOW_OUTFLOW), key=lambda n: (-n.total_out, n.hop, n.address))

        run.notify(emit, "done", {
            "inflows": len(run.result.inflows),
            "outflows": len(run.result.outflows),
            "expanded": run.result.fetch_count,
            "errors": len(run.result.errors),
            "cancelled": run.result.cancelled,
        }, 100.0)
        return run.result

    # -------------------------
    # Expansion
    # -------------------------

    def _expand_level(
        self,
        run: _TraceRun,
        level: List[_hopItem],
        depth: int,
        emit: ProgressFn,
    ) -> List[_hopItem]:
        max_hops = run.result.max_hops
        total = len(level)
        done = [0]

        def work(item: _hopItem) -> List[_hopItem]:
            frontier = self._expand(run, item, emit)
            with run.lock:
                done[0] += 1
                finished = done[0]
            run.notify(emit, "expand", {
                "address": item.address,
                "depth": depth,
            }, (depth + finished / total) / max_hops * 100.0)
            return frontier

        if self.max_workers > 1 and total > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                frontiers = list(pool.map(work, level))
        else:
            frontiers = [work(item) for item in level]

        return [item for f in frontiers for item in f]

    def _expand(self, run: _TraceRun, item: _hopItem, emit: ProgressFn) -> List[_hopItem]:
        cfg = run.cfg
        max_hops = run.result.max_hops

        if item.depth >= max_hops:
            return []
        if not run.claim(item.address):
            return []

        try:
            txs = self.client.get_transfer_history(item.address, cfg.history_limit)
        except TracerError as e:
            deg = PartialDegradation(address=item.address, stage=f"hop {item.depth}", message=str(e))
            with run.lock:
                run.result.errors.append(deg)
            logger.warning("hop %d: skipping %s: %s", item.depth, item.address, e)
            run.notify(emit, "error", {"address": item.address, "depth": item.depth, "message": str(e)}, run.progress)
            return []

        agg = aggregate_flows(extract_all(txs, item.address), item.address, cfg.dust_floor)
        self._record(run, agg, item.depth)

        if item.depth + 1 >= max_hops:
            return []
        return [
            _hopItem(addr, item.depth + 1)
            for addr in next_frontier(agg, cfg.branching_cap)
        ]

    @staticmethod
    def _record(run: _TraceRun, agg: FlowAggregation, depth: int) -> None:
        for a in agg.inbound:
            run.merge(FlowNode(
                address=a.counterparty,
                total_in=a.total_amount,
                total_out=0,
                event_count=a.event_count,
                direction=FLOW_INFLOW,
                hop=depth,
                via=agg.subject,
            ))
        for a in agg.outbound:
            run.merge(FlowNode(
                address=a.counterparty,
                total_in=0,
                total_out=a.total_amount,
                event_count=a.event_count,
                direction=FLOW_OUTFLOW,
                hop=depth,
                via=agg.subject,
            ))
