import itertools
import unittest

from flowtracer.adapters.labels.static_label_adapter import StaticLabelAdapter
from flowtracer.adapters.ledger.static_ledger_adapter import StaticLedgerAdapter
from flowtracer.core.dto import AddressLabel, TokenAccount
from flowtracer.core.errors import InvalidAddress
from flowtracer.core.models import FilterConfig
from flowtracer.services.holder_service import HolderService, intersect_holder_sets
from flowtracer.services.ledger_client import LedgerClient
from flowtracer.services.trader_classifier import STAGE_DUST, STAGE_KNOWN_ENTITY

from helpers import addr, sol, transfer_tx

M1, M2, M3 = addr(101), addr(102), addr(103)
A, B, C, D = addr(1), addr(2), addr(3), addr(4)
NO_FILTERS = FilterConfig(
    exclude_known_entities=False,
    exclude_dust=False,
    exclude_bots=False,
    use_human_heuristic=False,
)

_pubkeys = itertools.count(1000)


def _accounts(mint, owners):
    return [TokenAccount(pubkey=addr(next(_pubkeys)), mint=mint, owner=o, amount=1) for o in owners]


class IntersectTests(unittest.TestCase):
    def test_order_does_not_matter(self) -> None:
        sets = [{A, B, C}, {B, C, D}, {C, B, A, D}]
        expected = {B, C}
        for perm in itertools.permutations(sets):
            self.assertEqual(intersect_holder_sets(perm), expected)

    def test_grouping_does_not_matter(self) -> None:
        x, y, z = {A, B, C}, {B, C, D}, {B, D}
        left = intersect_holder_sets([intersect_holder_sets([x, y]), z])
        right = intersect_holder_sets([x, intersect_holder_sets([y, z])])
        self.assertEqual(left, right)

    def test_empty_sets_cannot_narrow(self) -> None:
        self.assertEqual(intersect_holder_sets([set(), {A, B}, {B}]), {B})
        self.assertEqual(intersect_holder_sets([set(), set()]), set())
        self.assertEqual(intersect_holder_sets([]), set())


class HolderServiceTests(unittest.TestCase):
    def _svc(self, accounts, txs=(), labels=None, unavailable=None) -> HolderService:
        ledger = StaticLedgerAdapter(transactions=list(txs), token_accounts=accounts, unavailable=unavailable)
        client = LedgerClient(ledger, labels=StaticLabelAdapter(labels or {}))
        return HolderService(client, max_workers=3, classifier_workers=2)

    def test_common_holders_without_filters(self) -> None:
        accounts = _accounts(M1, [A, B, C]) + _accounts(M2, [B, C, D])
        result = self._svc(accounts).find_common_holders([M1, M2], NO_FILTERS)

        self.assertEqual(result.addresses, sorted([B, C]))
        self.assertEqual(result.common_count, 2)
        self.assertEqual(result.per_mint[M1].holders_found, 3)
        self.assertEqual(result.per_mint[M2].status, "completed")
        self.assertFalse(result.no_data)

    def test_scenario_with_dust_filter(self) -> None:
        peer = addr(50)
        accounts = _accounts(M1, [A, B, C]) + _accounts(M2, [B, C, D])
        txs = [transfer_tx(peer, B, sol(0.05), block_time=1_700_000_000)]
        gaps = [100, 5000, 30, 12000, 700, 9000, 50]
        t = 1_700_000_000
        for i, amount in enumerate([0.4, 1.1, 0.25, 0.9, 0.6, 0.35, 0.8, 0.6]):
            txs.append(transfer_tx(peer, C, sol(amount), block_time=t))
            if i < len(gaps):
                t -= gaps[i]
        cfg = FilterConfig(dust_threshold=sol(0.1), use_human_heuristic=True)

        result = self._svc(accounts, txs).find_common_holders([M1, M2], cfg)

        self.assertEqual(result.addresses, [C])
        self.assertEqual(result.verdicts[B].failed_stage, STAGE_DUST)
        self.assertEqual(result.common_count, 2)

    def test_known_entities_removed(self) -> None:
        accounts = _accounts(M1, [A, B]) + _accounts(M2, [A, B])
        labels = {A: AddressLabel(address=A, label="OKX Deposit")}
        cfg = FilterConfig(exclude_dust=False, exclude_bots=False)

        result = self._svc(accounts, labels=labels).find_common_holders([M1, M2], cfg)

        self.assertEqual(result.addresses, [B])
        self.assertEqual(result.verdicts[A].failed_stage, STAGE_KNOWN_ENTITY)

    def test_failed_mint_degrades_instead_of_aborting(self) -> None:
        accounts = _accounts(M1, [A, B, C]) + _accounts(M3, [B, C])
        result = self._svc(accounts, unavailable=[M2]).find_common_holders([M1, M2, M3], NO_FILTERS)

        self.assertEqual(result.skipped_mints, [M2])
        self.assertEqual(result.per_mint[M2].status, "error")
        self.assertEqual([e.address for e in result.errors], [M2])
        self.assertEqual(result.addresses, sorted([B, C]))

    def test_all_mints_failing_is_no_data(self) -> None:
        result = self._svc([], unavailable=[M1, M2]).find_common_holders([M1, M2], NO_FILTERS)
        self.assertTrue(result.no_data)
        self.assertEqual(result.addresses, [])
        self.assertEqual(len(result.skipped_mints), 2)

    def test_disjoint_holders_is_empty_but_has_data(self) -> None:
        accounts = _accounts(M1, [A]) + _accounts(M2, [B])
        result = self._svc(accounts).find_common_holders([M1, M2], NO_FILTERS)
        self.assertEqual(result.addresses, [])
        self.assertFalse(result.no_data)

    def test_single_mint(self) -> None:
        result = self._svc(_accounts(M1, [A, B])).find_common_holders([M1], NO_FILTERS)
        self.assertEqual(result.addresses, sorted([A, B]))

    def test_duplicate_mints_collapsed(self) -> None:
        result = self._svc(_accounts(M1, [A])).find_common_holders([M1, M1], NO_FILTERS)
        self.assertEqual(result.mints, [M1])

    def test_input_validation(self) -> None:
        svc = self._svc([])
        with self.assertRaises(ValueError):
            svc.find_common_holders([])
        with self.assertRaises(InvalidAddress):
            svc.find_common_holders([M1, "0xnot-base58"])

    def test_progress_reaches_done(self) -> None:
        accounts = _accounts(M1, [A, B, C]) + _accounts(M2, [A, B, C])
        events = []
        self._svc(accounts).find_common_holders(
            [M1, M2],
            FilterConfig(exclude_dust=False, exclude_bots=False),
            on_progress=lambda event, data: events.append((event, data["progress"])),
        )
        values = [p for _, p in events]
        self.assertEqual(values, sorted(values))
        self.assertEqual(events[-1], ("done", 100.0))
        self.assertIn("intersected", [e for e, _ in events])


if __name__ == "__main__":
    unittest.main()
