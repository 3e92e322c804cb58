from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from flowtracer.config import settings
from flowtracer.core.dto import AddressLabel
from flowtracer.core.models import ClassificationVerdict, FilterConfig, TransferEvent
from flowtracer.services.ledger_client import LedgerClient
from flowtracer.services.transfer_extractor import extract_all

logger = logging.getLogger(__name__)

STAGE_KNOWN_ENTITY = "known_entity"
STAGE_DUST = "dust"
STAGE_BOT = "bot"
STAGE_HUMAN = "human_heuristic"

# frequency is only judged on samples larger than this
BOT_MIN_EVENTS_FOR_FREQUENCY = 10
# more than 70% identical amounts
BOT_MIN_DISTINCT_RATIO = 0.3
HUMAN_MIN_EVENTS = 5
HUMAN_MAX_GAPS = 10


@dataclass(frozen=True)
class Evidence:
    """
    Everything the stages look at, fetched once per candidate.
    Events are newest first.
    """

    address: str
    label: Optional[AddressLabel] = None
    events: Tuple[TransferEvent, ...] = ()


StageFn = Callable[[Evidence, FilterConfig], bool]


# -------------------------
# Stages (True = candidate fails the stage)
# -------------------------

def is_known_entity(ev: Evidence, cfg: FilterConfig) -> bool:
    if ev.address in settings.KNOWN_ENTITY_ADDRESSES:
        return True
    if ev.label is None or ev.label.is_empty:
        return False
    text = ev.label.text()
    return any(k in text for k in settings.EXCHANGE_KEYWORDS) or any(
        k in text for k in settings.PROTOCOL_KEYWORDS
    )


def is_dust(ev: Evidence, cfg: FilterConfig) -> bool:
    total = sum(e.amount for e in ev.events)
    return total < cfg.dust_threshold


def is_bot_like(ev: Evidence, cfg: FilterConfig) -> bool:
    events = ev.events
    if not events:
        return False

    if len(events) > BOT_MIN_EVENTS_FOR_FREQUENCY:
        times = [e.timestamp for e in events]
        span_hours = max(1.0, (max(times) - min(times)) / 3600.0)
        if len(events) / span_hours > cfg.bot_frequency_threshold:
            return True

    amounts = [e.amount for e in events]
    return len(set(amounts)) < len(amounts) * BOT_MIN_DISTINCT_RATIO


def lacks_human_traits(ev: Evidence, cfg: FilterConfig) -> bool:
    events = ev.events
    if len(events) <= HUMAN_MIN_EVENTS:
        return False

    times = [e.timestamp for e in events[: HUMAN_MAX_GAPS + 1]]
    gaps = [abs(times[i - 1] - times[i]) for i in range(1, len(times))]
    mean = sum(gaps) / len(gaps)
    variance = sum((g - mean) ** 2 for g in gaps) / len(gaps)
    return not variance > mean * 0.5


def enabled_stages(cfg: FilterConfig) -> List[Tuple[str, StageFn]]:
    stages: List[Tuple[str, StageFn]] = []
    if cfg.exclude_known_entities:
        stages.append((STAGE_KNOWN_ENTITY, is_known_entity))
    if cfg.exclude_dust:
        stages.append((STAGE_DUST, is_dust))
    if cfg.exclude_bots:
        stages.append((STAGE_BOT, is_bot_like))
    if cfg.use_human_heuristic:
        stages.append((STAGE_HUMAN, lacks_human_traits))
    return stages


def evaluate(ev: Evidence, cfg: FilterConfig, stages: Optional[Sequence[Tuple[str, StageFn]]] = None) -> ClassificationVerdict:
    for name, stage in (stages if stages is not None else enabled_stages(cfg)):
        if stage(ev, cfg):
            return ClassificationVerdict(address=ev.address, keep=False, failed_stage=name)
    return ClassificationVerdict(address=ev.address, keep=True)


class TraderClassifier:
    """
    Decides whether a holder looks like a human trader.

    Stages run in a fixed order and stop at the first failure. Anything that
    goes wrong while gathering evidence keeps the candidate.
    """

    def __init__(self, client: LedgerClient) -> None:
        self.client = client

    def _history(self, address: str, cfg: FilterConfig) -> Tuple[TransferEvent, ...]:
        txs = self.client.get_transfer_history(address, cfg.history_limit)
        flat = extract_all(txs, address)
        flat.sort(key=lambda e: e.timestamp, reverse=True)
        return tuple(flat)

    def classify(self, address: str, cfg: FilterConfig) -> ClassificationVerdict:
        stages = enabled_stages(cfg)
        if not stages:
            return ClassificationVerdict(address=address, keep=True)

        try:
            ev = Evidence(address=address)
            if cfg.exclude_known_entities:
                # blocklist and label first; no history fetch for known entities
                if address not in settings.KNOWN_ENTITY_ADDRESSES:
                    ev = Evidence(address=address, label=self.client.get_label(address))
                if is_known_entity(ev, cfg):
                    return ClassificationVerdict(address=address, keep=False, failed_stage=STAGE_KNOWN_ENTITY)
            if cfg.needs_history:
                ev = Evidence(address=address, label=ev.label, events=self._history(address, cfg))
            return evaluate(ev, cfg, stages)
        except Exception as e:
            logger.warning("classifier: keeping %s, evidence unavailable: %s", address, e)
            return ClassificationVerdict(address=address, keep=True, error=str(e))

    def is_human_trader(self, address: str, cfg: FilterConfig) -> bool:
        return self.classify(address, cfg).keep
