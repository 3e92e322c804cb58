from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set

from flowtracer.adapters.ledger.failover import FailoverLedger
from flowtracer.config import settings
from flowtracer.core.dto import AddressLabel, ParsedTransaction
from flowtracer.core.errors import DataUnavailable
from flowtracer.ports.label_port import LabelPort
from flowtracer.ports.ledger_port import LedgerPort

logger = logging.getLogger(__name__)


class LedgerClient:
    """
    Read-only queries used by both engines.

    History and holder queries go through endpoint failover and raise
    DataUnavailable when no endpoint can answer. Label lookups never raise:
    a missing label and a failed label service both mean "no label".
    """

    def __init__(
        self,
        ledger: LedgerPort | Sequence[LedgerPort],
        labels: Optional[LabelPort] = None,
        max_history: int = settings.TRACE_HISTORY_LIMIT,
    ) -> None:
        if isinstance(ledger, FailoverLedger):
            self.ledger = ledger
        elif isinstance(ledger, LedgerPort):
            self.ledger = FailoverLedger([ledger])
        else:
            self.ledger = FailoverLedger(ledger)
        self.labels = labels
        self.max_history = max_history

    # -------------------------
    # History
    # -------------------------

    def get_transfer_history(self, address: str, limit: int = 100) -> List[ParsedTransaction]:
        limit = max(1, min(int(limit), self.max_history))
        sigs = self.ledger.get_signatures_for_address(address, limit)

        out: List[ParsedTransaction] = []
        skipped = 0
        for s in sigs[:limit]:
            if s.failed:
                # a reverted transaction moved no value
                continue
            try:
                tx = self.ledger.get_transaction(s.signature)
            except DataUnavailable as e:
                skipped += 1
                logger.debug("skipping %s for %s: %s", s.signature, address, e)
                continue
            if tx.block_time is None and s.block_time is not None:
                tx = ParsedTransaction(
                    signature=tx.signature,
                    block_time=s.block_time,
                    instructions=tx.instructions,
                    inner_instructions=tx.inner_instructions,
                )
            out.append(tx)

        if skipped:
            logger.warning(
                "%s: %d of %d transaction(s) could not be fetched from any endpoint",
                address, skipped, len(sigs),
            )
        return out

    # -------------------------
    # Holders
    # -------------------------

    def get_holders(self, mint: str) -> Set[str]:
        accounts = self.ledger.get_token_accounts_by_mint(mint)
        holders: Set[str] = set()
        for a in accounts:
            # undecoded amount counts as holding
            if a.amount is not None and a.amount <= 0:
                continue
            holders.add(a.owner)
        return holders

    # -------------------------
    # Labels
    # -------------------------

    def get_labels(self, addresses: Iterable[str]) -> Dict[str, AddressLabel]:
        if self.labels is None:
            return {}
        addrs = list(dict.fromkeys(addresses))
        found: Dict[str, AddressLabel] = {}
        batch_size = settings.SOLANAFM_BATCH_SIZE
        for i in range(0, len(addrs), batch_size):
            batch = addrs[i:i + batch_size]
            try:
                rows = self.labels.get_labels(batch)
            except Exception as e:
                logger.warning("label lookup failed for %d address(es): %s", len(batch), e)
                continue
            for lbl in rows or []:
                if lbl.address in batch and not lbl.is_empty:
                    found[lbl.address] = lbl
        return found

    def get_label(self, address: str) -> Optional[AddressLabel]:
        return self.get_labels([address]).get(address)
