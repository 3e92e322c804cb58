import base64
import itertools
import logging
import struct
from typing import Any, Dict, List, Optional, Tuple

import requests

from flowtracer.config.settings import (
    SOLANA_COMMITMENT,
    SOLANA_REQUESTS_PER_SEC,
    SOLANA_TIMEOUT_SEC,
    TOKEN_ACCOUNT_AMOUNT_OFFSET,
    TOKEN_ACCOUNT_MINT_OFFSET,
    TOKEN_ACCOUNT_OWNER_OFFSET,
    TOKEN_ACCOUNT_SIZE,
    TOKEN_PROGRAM_ID,
)

from flowtracer.adapters.ledger.rate_limiter import SimpleRateLimiter
from flowtracer.core.addresses import PUBKEY_LEN, encode_pubkey
from flowtracer.core.errors import DataSourceError, RateLimitError
from flowtracer.ports.ledger_port import LedgerPort
from flowtracer.core.dto import ParsedInstruction, ParsedTransaction, SignatureInfo, TokenAccount

logger = logging.getLogger(__name__)


class SolanaRpcAdapter(LedgerPort):
    """
    JSON-RPC client for a single Solana endpoint.

    No retries here: a failed call raises DataSourceError and the failover
    layer moves on to the next endpoint.
    """

    def __init__(
        self,
        endpoint: str,
        requests_per_sec: float = SOLANA_REQUESTS_PER_SEC,
        timeout_sec: int = SOLANA_TIMEOUT_SEC,
        commitment: str = SOLANA_COMMITMENT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.endpoint = endpoint
        self._timeout = timeout_sec
        self._commitment = commitment
        self._rl = SimpleRateLimiter(requests_per_sec)
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

    def __repr__(self) -> str:
        return f"SolanaRpcAdapter({self.endpoint!r})"

    # ---------- internal ----------

    def _call(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        self._rl.wait()
        try:
            resp = self._session.post(self.endpoint, json=payload, timeout=self._timeout)
        except requests.RequestException as e:
            raise DataSourceError(f"{self.endpoint} {method}: {e}") from e

        if resp.status_code == 429:
            raise RateLimitError(f"{self.endpoint} {method}: rate limited")
        try:
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise DataSourceError(f"{self.endpoint} {method}: {e}") from e

        if not isinstance(data, dict):
            raise DataSourceError(f"{self.endpoint} {method}: invalid response {data!r}")

        err = data.get("error")
        if err:
            message = err.get("message") if isinstance(err, dict) else str(err)
            code = err.get("code") if isinstance(err, dict) else None
            # -32429 is used by several providers for throttling
            if code == -32429 or "rate" in str(message).lower():
                raise RateLimitError(f"{self.endpoint} {method}: {message}")
            raise DataSourceError(f"{self.endpoint} {method}: {message}")

        if "result" not in data:
            raise DataSourceError(f"{self.endpoint} {method}: missing result")
        return data["result"]

    @staticmethod
    def _parse_instruction(raw: Any) -> Optional[ParsedInstruction]:
        if not isinstance(raw, dict):
            return None
        parsed = raw.get("parsed")
        ix_type = None
        info: Dict[str, Any] = {}
        if isinstance(parsed, dict):
            ix_type = parsed.get("type")
            info = parsed.get("info") if isinstance(parsed.get("info"), dict) else {}
        return ParsedInstruction(
            program=str(raw.get("program") or ""),
            program_id=str(raw.get("programId") or ""),
            type=ix_type,
            info=info,
        )

    @classmethod
    def _parse_instructions(cls, rows: Any) -> Tuple[ParsedInstruction, ...]:
        if not isinstance(rows, list):
            return ()
        out = []
        for r in rows:
            ix = cls._parse_instruction(r)
            if ix is not None:
                out.append(ix)
        return tuple(out)

    @staticmethod
    def _decode_token_account(pubkey: str, raw_data: Any) -> TokenAccount:
        # base64 account data arrives as [payload, "base64"]
        if isinstance(raw_data, list) and raw_data:
            raw_data = raw_data[0]
        blob = base64.b64decode(raw_data)
        if len(blob) < TOKEN_ACCOUNT_AMOUNT_OFFSET + 8:
            raise ValueError(f"token account {pubkey} too short ({len(blob)} bytes)")
        mint = encode_pubkey(blob[TOKEN_ACCOUNT_MINT_OFFSET:TOKEN_ACCOUNT_MINT_OFFSET + PUBKEY_LEN])
        owner = encode_pubkey(blob[TOKEN_ACCOUNT_OWNER_OFFSET:TOKEN_ACCOUNT_OWNER_OFFSET + PUBKEY_LEN])
        (amount,) = struct.unpack_from("<Q", blob, TOKEN_ACCOUNT_AMOUNT_OFFSET)
        return TokenAccount(pubkey=pubkey, mint=mint, owner=owner, amount=amount)

    # ---------- port methods ----------

    def get_signatures_for_address(self, address: str, limit: int = 100) -> List[SignatureInfo]:
        result = self._call(
            "getSignaturesForAddress",
            [address, {"limit": int(limit), "commitment": self._commitment}],
        )
        if not isinstance(result, list):
            raise DataSourceError(f"{self.endpoint} getSignaturesForAddress: malformed result")

        out: List[SignatureInfo] = []
        for r in result:
            if not isinstance(r, dict) or not r.get("signature"):
                continue
            bt = r.get("blockTime")
            out.append(
                SignatureInfo(
                    signature=str(r["signature"]),
                    block_time=int(bt) if bt is not None else None,
                    failed=r.get("err") is not None,
                )
            )
        return out

    def get_transaction(self, signature: str) -> Optional[ParsedTransaction]:
        result = self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self._commitment,
                },
            ],
        )
        if result is None:
            return None
        if not isinstance(result, dict):
            raise DataSourceError(f"{self.endpoint} getTransaction: malformed result")

        message = (result.get("transaction") or {}).get("message") or {}
        meta = result.get("meta") or {}
        inner_groups = []
        for group in meta.get("innerInstructions") or []:
            if isinstance(group, dict):
                inner_groups.append(self._parse_instructions(group.get("instructions")))

        bt = result.get("blockTime")
        return ParsedTransaction(
            signature=signature,
            block_time=int(bt) if bt is not None else None,
            instructions=self._parse_instructions(message.get("instructions")),
            inner_instructions=tuple(inner_groups),
        )

    def get_token_accounts_by_mint(self, mint: str) -> List[TokenAccount]:
        result = self._call(
            "getProgramAccounts",
            [
                TOKEN_PROGRAM_ID,
                {
                    "encoding": "base64",
                    "commitment": self._commitment,
                    "filters": [
                        {"dataSize": TOKEN_ACCOUNT_SIZE},
                        {"memcmp": {"offset": TOKEN_ACCOUNT_MINT_OFFSET, "bytes": mint}},
                    ],
                },
            ],
        )
        if not isinstance(result, list):
            raise DataSourceError(f"{self.endpoint} getProgramAccounts: malformed result")

        accounts: List[TokenAccount] = []
        for r in result:
            try:
                accounts.append(
                    self._decode_token_account(str(r["pubkey"]), r["account"]["data"])
                )
            except (KeyError, TypeError, ValueError) as e:
                raise DataSourceError(
                    f"{self.endpoint} getProgramAccounts: undecodable account: {e}"
                ) from e
        logger.debug("%s: %d token accounts for mint %s", self.endpoint, len(accounts), mint)
        return accounts
