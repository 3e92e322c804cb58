from flowtracer.config.settings import SYSTEM_PROGRAM_ID
from flowtracer.ports.ledger_port import LedgerPort
from flowtracer.core.dto import ParsedInstruction, ParsedTransaction, SignatureInfo, TokenAccount
from typing import Dict, Iterable, List, Optional, Set


def system_transfer(source: str, destination: str, lamports: int) -> ParsedInstruction:
    return ParsedInstruction(
        program="system",
        program_id=SYSTEM_PROGRAM_ID,
        type="transfer",
        info={"source": source, "destination": destination, "lamports": lamports},
    )


class StaticLedgerAdapter(LedgerPort):
    def __init__(self,
                 transactions: Optional[List[ParsedTransaction]] = None,
                 token_accounts: Optional[List[TokenAccount]] = None,
                 unavailable: Optional[Iterable[str]] = None,
                 ):
        self._txs = {t.signature: t for t in (transactions or [])}
        self._token_accounts = token_accounts or []
        # addresses / mints / signatures this source pretends it cannot serve
        self._unavailable: Set[str] = set(unavailable or [])
        self.history_requests: List[str] = []

    def add_transaction(self, tx: ParsedTransaction) -> None:
        self._txs[tx.signature] = tx

    @staticmethod
    def _touches(tx: ParsedTransaction, address: str) -> bool:
        groups = [tx.instructions, *tx.inner_instructions]
        for group in groups:
            for ix in group:
                if address in (ix.info.get("source"), ix.info.get("destination")):
                    return True
        return False

    def _check(self, key: str) -> None:
        if key in self._unavailable:
            raise ConnectionError(f"static ledger: {key} unavailable")

    def get_signatures_for_address(self, address, limit=100):
        self._check(address)
        self.history_requests.append(address)
        items = [t for t in self._txs.values() if self._touches(t, address)]
        items.sort(key=lambda t: (t.block_time or 0, t.signature), reverse=True)
        return [SignatureInfo(t.signature, t.block_time) for t in items[:limit]]

    def get_transaction(self, signature):
        self._check(signature)
        return self._txs.get(signature)

    def get_token_accounts_by_mint(self, mint):
        self._check(mint)
        return [a for a in self._token_accounts if a.mint == mint]

    @property
    def history_request_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for a in self.history_requests:
            counts[a] = counts.get(a, 0) + 1
        return counts
