from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from flowtracer.adapters.ledger.rate_limiter import SimpleRateLimiter, backoff_sleep
from flowtracer.config import settings
from flowtracer.core.dto import AddressLabel
from flowtracer.core.errors import DataSourceError
from flowtracer.ports.label_port import LabelPort


class SolanaFMLabelAdapter(LabelPort):
    def __init__(
        self,
        api_key: Optional[str] = settings.SOLANAFM_API_KEY,
        url: str = settings.SOLANAFM_LABELS_URL,
        requests_per_sec: float = settings.SOLANAFM_REQUESTS_PER_SEC,
        timeout_sec: int = settings.SOLANAFM_TIMEOUT_SEC,
        max_retries: int = 2,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_key = api_key
        self._url = url
        self._timeout = timeout_sec
        self._max_retries = max_retries
        self._rl = SimpleRateLimiter(requests_per_sec)
        self._session = session or requests.Session()

    def _call(self, addresses: List[str]) -> Any:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["x-api-key"] = self._api_key

        last_err: Optional[Exception] = None
        for attempt in range(self._max_retries):
            try:
                self._rl.wait()
                resp = self._session.post(
                    self._url,
                    json={"addresses": addresses},
                    headers=headers,
                    timeout=self._timeout,
                )
                resp.raise_for_status()
                return resp.json()
            except Exception as e:
                last_err = e
                if attempt + 1 < self._max_retries:
                    backoff_sleep(attempt)
        raise DataSourceError(f"SolanaFM failed after retries: {last_err}")

    @staticmethod
    def _rows(data: Any) -> List[Dict[str, Any]]:
        if isinstance(data, dict):
            data = data.get("data") or []
        if not isinstance(data, list):
            return []
        return [r for r in data if isinstance(r, dict)]

    def get_labels(self, addresses: List[str]) -> List[AddressLabel]:
        batch = list(addresses)[: settings.SOLANAFM_BATCH_SIZE]
        if not batch:
            return []
        out: List[AddressLabel] = []
        for r in self._rows(self._call(batch)):
            addr = str(r.get("address") or r.get("accountHash") or "")
            if not addr:
                continue
            out.append(
                AddressLabel(
                    address=addr,
                    label=r.get("label") or r.get("friendlyName"),
                    type=r.get("type"),
                    category=r.get("category"),
                )
            )
        return out
