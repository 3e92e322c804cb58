from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class SignatureInfo:
    signature: str
    block_time: Optional[int]       # unix seconds, None if the node does not know it
    failed: bool = False


@dataclass(frozen=True)
class ParsedInstruction:
    program: str                    # e.g. "system", "spl-token"
    program_id: str
    type: Optional[str]             # parsed instruction type, e.g. "transfer"
    info: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParsedTransaction:
    signature: str
    block_time: Optional[int]
    instructions: Tuple[ParsedInstruction, ...] = ()
    # one tuple per inner-instruction group (instructions triggered by program calls)
    inner_instructions: Tuple[Tuple[ParsedInstruction, ...], ...] = ()


@dataclass(frozen=True)
class TokenAccount:
    pubkey: str
    mint: str
    owner: str
    amount: Optional[int] = None    # raw token units, None when not decoded


@dataclass(frozen=True)
class AddressLabel:
    address: str
    label: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.label or self.type or self.category)

    def text(self) -> str:
        return f"{self.label or ''} {self.type or ''} {self.category or ''}".lower()
