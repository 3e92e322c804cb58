import unittest
from unittest import mock

import requests

from flowtracer.adapters.labels.solanafm_label_adapter import SolanaFMLabelAdapter
from flowtracer.core.errors import DataSourceError

from helpers import addr


class _FakeResponse:
    def __init__(self, payload=None, status_code=200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self._payload


class _FakeSession:
    def __init__(self, *responses) -> None:
        self._responses = list(responses)
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append((url, json, headers))
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _adapter(*responses, **kwargs):
    session = _FakeSession(*responses)
    adapter = SolanaFMLabelAdapter(
        url="http://labels.test",
        requests_per_sec=1000,
        session=session,
        **kwargs,
    )
    return adapter, session


class SolanaFMLabelAdapterTests(unittest.TestCase):
    def test_bare_list_response(self) -> None:
        a = addr(1)
        adapter, session = _adapter(
            _FakeResponse([{"address": a, "label": "Binance 8", "type": "exchange", "category": "CEX"}]),
            api_key=None,
        )

        labels = adapter.get_labels([a])

        self.assertEqual(len(labels), 1)
        self.assertEqual(labels[0].address, a)
        self.assertEqual(labels[0].label, "Binance 8")
        self.assertEqual(labels[0].type, "exchange")
        self.assertEqual(labels[0].category, "CEX")
        url, body, headers = session.requests[0]
        self.assertEqual(url, "http://labels.test")
        self.assertEqual(body, {"addresses": [a]})
        self.assertNotIn("x-api-key", headers)

    def test_data_envelope_and_alternate_field_names(self) -> None:
        a, b = addr(1), addr(2)
        adapter, _ = _adapter(_FakeResponse({"data": [
            {"accountHash": a, "friendlyName": "Raydium Authority"},
            {"address": b},
            {"label": "no address"},
            "garbage",
        ]}))

        labels = {lbl.address: lbl for lbl in adapter.get_labels([a, b])}

        self.assertEqual(set(labels), {a, b})
        self.assertEqual(labels[a].label, "Raydium Authority")
        self.assertTrue(labels[b].is_empty)

    def test_unexpected_payload_gives_no_labels(self) -> None:
        adapter, _ = _adapter(_FakeResponse({"data": None}), _FakeResponse("oops"))
        self.assertEqual(adapter.get_labels([addr(1)]), [])
        self.assertEqual(adapter.get_labels([addr(1)]), [])

    def test_api_key_sent_as_header(self) -> None:
        adapter, session = _adapter(_FakeResponse([]), api_key="k-123")
        adapter.get_labels([addr(1)])
        self.assertEqual(session.requests[0][2]["x-api-key"], "k-123")

    def test_batch_truncated_to_one_hundred(self) -> None:
        adapter, session = _adapter(_FakeResponse([]))
        adapter.get_labels([addr(i) for i in range(1, 151)])
        self.assertEqual(len(session.requests[0][1]["addresses"]), 100)

    def test_empty_input_makes_no_request(self) -> None:
        adapter, session = _adapter()
        self.assertEqual(adapter.get_labels([]), [])
        self.assertEqual(session.requests, [])

    @mock.patch("flowtracer.adapters.labels.solanafm_label_adapter.backoff_sleep")
    def test_retries_then_succeeds(self, sleep) -> None:
        a = addr(1)
        adapter, session = _adapter(
            requests.ConnectionError("reset"),
            _FakeResponse([{"address": a, "label": "Kraken"}]),
        )
        labels = adapter.get_labels([a])
        self.assertEqual(labels[0].label, "Kraken")
        self.assertEqual(len(session.requests), 2)
        sleep.assert_called_once_with(0)

    @mock.patch("flowtracer.adapters.labels.solanafm_label_adapter.backoff_sleep")
    def test_retry_exhaustion_raises(self, sleep) -> None:
        adapter, session = _adapter(
            _FakeResponse(status_code=503),
            _FakeResponse(status_code=503),
            _FakeResponse(status_code=503),
            max_retries=3,
        )
        with self.assertRaises(DataSourceError):
            adapter.get_labels([addr(1)])
        self.assertEqual(len(session.requests), 3)
        self.assertEqual(sleep.call_count, 2)


if __name__ == "__main__":
    unittest.main()
