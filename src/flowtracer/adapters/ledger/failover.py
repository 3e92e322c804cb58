from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence, TypeVar

from flowtracer.core.dto import ParsedTransaction, SignatureInfo, TokenAccount
from flowtracer.core.errors import DataUnavailable
from flowtracer.ports.ledger_port import LedgerPort

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailoverLedger(LedgerPort):
    """
    Runs every query against an ordered list of endpoints.

    Each logical request is attempted on the primary first and re-issued,
    unchanged, on the next endpoint after a failure. The answer always comes
    from exactly one endpoint. When every endpoint has failed the call raises
    DataUnavailable. Endpoint order never changes between calls.
    """

    def __init__(self, ports: Sequence[LedgerPort]) -> None:
        if not ports:
            raise ValueError("FailoverLedger needs at least one endpoint")
        self._ports: List[LedgerPort] = list(ports)

    @property
    def ports(self) -> List[LedgerPort]:
        return list(self._ports)

    def _query(
        self,
        what: str,
        fn: Callable[[LedgerPort], T],
        accept: Optional[Callable[[T], bool]] = None,
    ) -> T:
        last_err: Optional[Exception] = None
        for i, port in enumerate(self._ports):
            try:
                result = fn(port)
            except Exception as e:
                last_err = e
                logger.warning("%s failed on endpoint #%d (%r): %s", what, i, port, e)
                continue
            if accept is not None and not accept(result):
                last_err = None
                logger.info("%s: endpoint #%d (%r) returned nothing", what, i, port)
                continue
            return result

        reason = f": {last_err}" if last_err is not None else ": not found on any endpoint"
        raise DataUnavailable(f"{what} failed on all {len(self._ports)} endpoint(s){reason}")

    # ---------- port methods ----------

    def get_signatures_for_address(self, address: str, limit: int = 100) -> List[SignatureInfo]:
        return self._query(
            f"getSignaturesForAddress({address})",
            lambda p: p.get_signatures_for_address(address, limit),
        )

    def get_transaction(self, signature: str) -> Optional[ParsedTransaction]:
        # a provider-side "not found" moves on to the next endpoint as well
        return self._query(
            f"getTransaction({signature})",
            lambda p: p.get_transaction(signature),
            accept=lambda tx: tx is not None,
        )

    def get_token_accounts_by_mint(self, mint: str) -> List[TokenAccount]:
        return self._query(
            f"getProgramAccounts({mint})",
            lambda p: p.get_token_accounts_by_mint(mint),
        )
