from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from flowtracer.config import settings
from flowtracer.core.addresses import require_addresses
from flowtracer.core.errors import PartialDegradation, TracerError
from flowtracer.core.models import ClassificationVerdict, FilterConfig, HolderResult, MintStatus
from flowtracer.services.ledger_client import LedgerClient
from flowtracer.services.trader_classifier import TraderClassifier

logger = logging.getLogger(__name__)

ProgressFn = Callable[[str, Dict[str, Any]], None]


def intersect_holder_sets(sets: Iterable[Set[str]]) -> Set[str]:
    """
    Addresses present in every non-empty set. Empty sets (failed or unheld
    mints) cannot narrow the result; all empty -> empty.
    """
    non_empty = [s for s in sets if s]
    if not non_empty:
        return set()
    common = set(non_empty[0])
    for s in non_empty[1:]:
        common &= s
    return common


class HolderService:
    """
    Finds addresses holding every given mint, then optionally narrows them
    down to human-looking traders.
    """

    def __init__(
        self,
        client: LedgerClient,
        classifier: Optional[TraderClassifier] = None,
        max_workers: int = settings.HOLDER_MAX_WORKERS,
        classifier_workers: int = settings.CLASSIFIER_MAX_WORKERS,
    ) -> None:
        self.client = client
        self.classifier = classifier or TraderClassifier(client)
        self.max_workers = max(1, int(max_workers))
        self.classifier_workers = max(1, int(classifier_workers))

    def find_common_holders(
        self,
        mints: List[str],
        filter_config: Optional[FilterConfig] = None,
        on_progress: Optional[ProgressFn] = None,
    ) -> HolderResult:
        mints = require_addresses(mints)
        if not mints:
            raise ValueError("At least one mint address is required")

        emit = on_progress or (lambda event, data: None)
        result = HolderResult(mints=mints, per_mint={m: MintStatus(mint=m) for m in mints})
        emit("start", {"mints": len(mints), "progress": 0.0})

        # 1) holder sets, one worker per mint
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(mints))) as pool:
            holder_sets = list(pool.map(lambda m: self._fetch_holders(m, result), mints))

        # 2) intersection
        common = intersect_holder_sets(holder_sets)
        result.common_count = len(common)
        if not common:
            result.no_data = not any(holder_sets)
            emit("done", {"common": 0, "kept": 0, "no_data": result.no_data, "progress": 100.0})
            return result
        emit("intersected", {"common": len(common), "progress": 60.0})

        # 3) filters on the common holders only
        candidates = sorted(common)
        cfg = filter_config or FilterConfig()
        if cfg.any_enabled:
            verdicts = self._classify_all(candidates, cfg, emit)
            result.verdicts = {v.address: v for v in verdicts}
            result.addresses = [v.address for v in verdicts if v.keep]
        else:
            result.addresses = candidates

        emit("done", {
            "common": result.common_count,
            "kept": len(result.addresses),
            "no_data": False,
            "progress": 100.0,
        })
        return result

    def _fetch_holders(self, mint: str, result: HolderResult) -> Set[str]:
        status = result.per_mint[mint]
        try:
            holders = self.client.get_holders(mint)
        except TracerError as e:
            status.status = "error"
            status.error = str(e)
            result.errors.append(PartialDegradation(address=mint, stage="holders", message=str(e)))
            logger.warning("holders for %s unavailable, contributing empty set: %s", mint, e)
            return set()
        status.status = "completed"
        status.holders_found = len(holders)
        logger.info("mint %s: %d holder(s)", mint, len(holders))
        return holders

    def _classify_all(
        self,
        candidates: List[str],
        cfg: FilterConfig,
        emit: ProgressFn,
    ) -> List[ClassificationVerdict]:
        total = len(candidates)
        with ThreadPoolExecutor(max_workers=min(self.classifier_workers, total)) as pool:
            futures = [pool.submit(self.classifier.classify, a, cfg) for a in candidates]
            verdicts: List[ClassificationVerdict] = []
            # consumed in submission order so progress only moves forward
            for done, fut in enumerate(futures, start=1):
                verdicts.append(fut.result())
                emit("classified", {
                    "done": done,
                    "total": total,
                    "progress": 60.0 + round(done / total * 40.0, 2),
                })
        return verdicts
