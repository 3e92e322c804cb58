from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from flowtracer.core.errors import PartialDegradation


LAMPORTS_PER_SOL = 1_000_000_000

# Aggregate hygiene floor (0.001 SOL). Not the same thing as FilterConfig.dust_threshold.
DUST_FLOOR_LAMPORTS = 1_000_000

DIRECTION_IN = "in"
DIRECTION_OUT = "out"

FLOW_INFLOW = "inflow"
FLOW_OUTFLOW = "outflow"


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(int(lamports)) / Decimal(LAMPORTS_PER_SOL)


def sol_to_lamports(sol: Decimal | int | float | str) -> int:
    return int(Decimal(str(sol)) * LAMPORTS_PER_SOL)



# Configuration models

@dataclass(frozen=True)
class TraceConfig:
    """
    User input / run configuration for a multi-hop trace.
    """

    address: str
    max_hops: int = 2
    history_limit: int = 100          # transfer records sampled per expanded address
    branching_cap: int = 5            # counterparties carried to the next hop
    dust_floor: int = DUST_FLOOR_LAMPORTS


@dataclass(frozen=True)
class FilterConfig:
    """
    Trader classifier switches. Immutable for one holder-finder run.
    """

    exclude_known_entities: bool = True
    exclude_dust: bool = True
    exclude_bots: bool = True
    use_human_heuristic: bool = False
    dust_threshold: int = 100_000_000         # lamports (0.1 SOL)
    bot_frequency_threshold: float = 50.0     # events per hour
    history_limit: int = 100

    @property
    def any_enabled(self) -> bool:
        return (
            self.exclude_known_entities
            or self.exclude_dust
            or self.exclude_bots
            or self.use_human_heuristic
        )

    @property
    def needs_history(self) -> bool:
        return self.exclude_dust or self.exclude_bots or self.use_human_heuristic



# Flow models

@dataclass(frozen=True)
class TransferEvent:
    signature: str
    timestamp: int
    amount: int                # lamports, non-negative
    source: str
    destination: str
    direction: str             # DIRECTION_IN / DIRECTION_OUT relative to the subject

    @property
    def counterparty(self) -> str:
        return self.source if self.direction == DIRECTION_IN else self.destination


@dataclass
class CounterpartyAggregate:
    counterparty: str
    total_amount: int = 0
    event_count: int = 0


@dataclass
class FlowAggregation:
    subject: str
    inbound: List[CounterpartyAggregate] = field(default_factory=list)
    outbound: List[CounterpartyAggregate] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.inbound and not self.outbound


@dataclass(frozen=True)
class FlowNode:
    address: str
    total_in: int
    total_out: int
    event_count: int
    direction: str             # FLOW_INFLOW / FLOW_OUTFLOW
    hop: int
    via: Optional[str] = None  # the expanded address this counterparty was found on

    @property
    def amount(self) -> int:
        return self.total_in if self.direction == FLOW_INFLOW else self.total_out



# Results

@dataclass
class TraceResult:
    target: str
    max_hops: int
    inflows: List[FlowNode] = field(default_factory=list)
    outflows: List[FlowNode] = field(default_factory=list)
    expanded: List[str] = field(default_factory=list)
    errors: List[PartialDegradation] = field(default_factory=list)
    cancelled: bool = False

    @property
    def fetch_count(self) -> int:
        return len(self.expanded)

    @property
    def is_empty(self) -> bool:
        return not self.inflows and not self.outflows


@dataclass(frozen=True)
class ClassificationVerdict:
    address: str
    keep: bool
    failed_stage: Optional[str] = None
    error: Optional[str] = None


@dataclass
class MintStatus:
    mint: str
    status: str = "pending"     # pending / completed / error
    holders_found: int = 0
    error: Optional[str] = None


@dataclass
class HolderResult:
    mints: List[str]
    addresses: List[str] = field(default_factory=list)
    common_count: int = 0
    per_mint: Dict[str, MintStatus] = field(default_factory=dict)
    verdicts: Dict[str, ClassificationVerdict] = field(default_factory=dict)
    errors: List[PartialDegradation] = field(default_factory=list)
    no_data: bool = False

    @property
    def skipped_mints(self) -> List[str]:
        return [m for m, s in self.per_mint.items() if s.status == "error"]
