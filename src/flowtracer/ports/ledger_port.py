from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional
from flowtracer.core.dto import ParsedTransaction, SignatureInfo, TokenAccount

class LedgerPort(ABC):
    """
    Abstract Class for read-only ledger queries against one data source.
    """

    # --- account history ---

    @abstractmethod
    def get_signatures_for_address(self, address: str, limit: int = 100) -> List[SignatureInfo]:
        """Newest first."""
        raise NotImplementedError

    @abstractmethod
    def get_transaction(self, signature: str) -> Optional[ParsedTransaction]:
        raise NotImplementedError

    # --- token accounts ---

    @abstractmethod
    def get_token_accounts_by_mint(self, mint: str) -> List[TokenAccount]:
        raise NotImplementedError
