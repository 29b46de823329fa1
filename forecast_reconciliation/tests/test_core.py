"""
Tests for deadlines, horizon snapshot selection, vendor resolution and order keys.
"""
import unittest
from datetime import date

import pytest

from forecast_reconciliation.config import config
from forecast_reconciliation.models import OrderType
from forecast_reconciliation.core.deadlines import live_deadline, backtest_deadline, is_past
from forecast_reconciliation.core.horizon import horizon_months, select_horizon_snapshot
from forecast_reconciliation.core.vendor_resolution import (
    VendorEntry, VendorIndex, normalize_name, resolve_vendor
)
from forecast_reconciliation.core.order_keys import (
    extract_mto_collection, is_excluded_line, format_order_refs
)


class TestDeadlines(unittest.TestCase):
    def setUp(self):
        self.rules = config.reconciliation_rules

    def test_standard_live_deadline(self):
        deadline = live_deadline(OrderType.STANDARD, 2026, 3, self.rules)
        self.assertEqual(deadline, date(2025, 11, 30))
        self.assertTrue(is_past(deadline, date(2026, 1, 2)))
        self.assertFalse(is_past(deadline, date(2025, 11, 30)))

    def test_make_to_order_live_deadline(self):
        deadline = live_deadline(OrderType.MAKE_TO_ORDER, 2026, 3, self.rules)
        self.assertEqual(deadline, date(2026, 3, 30))

    def test_backtest_deadlines(self):
        self.assertEqual(backtest_deadline(OrderType.STANDARD, 2026, 3, self.rules), date(2025, 12, 1))
        self.assertEqual(
            backtest_deadline(OrderType.MAKE_TO_ORDER, 2026, 3, self.rules, latest_capture=date(2026, 1, 10)),
            date(2026, 2, 19)
        )
        self.assertEqual(backtest_deadline(OrderType.MAKE_TO_ORDER, 2026, 3, self.rules), date(2026, 1, 30))


class TestHorizonSelection(unittest.TestCase):
    captures = [
        (date(2025, 11, 15), 1000),
        (date(2025, 12, 3), 1400),
        (date(2025, 12, 10), 1500),
        (date(2026, 1, 5), 500),
    ]

    def test_horizon_months(self):
        self.assertEqual(horizon_months('90_day'), 3)
        self.assertEqual(horizon_months('6_month'), 6)
        self.assertEqual(horizon_months('90_day', OrderType.MAKE_TO_ORDER), 1)
        with pytest.raises(ValueError):
            horizon_months('1_year')

    def test_latest_capture_in_horizon_month(self):
        self.assertEqual(select_horizon_snapshot(self.captures, 2026, 3, 3), (date(2025, 12, 10), 1500))

    def test_falls_back_to_earlier_capture(self):
        self.assertEqual(select_horizon_snapshot(self.captures, 2026, 5, 3), (date(2026, 1, 5), 500))

    def test_falls_back_to_grace_window(self):
        captures = [(date(2025, 10, 10), 700), (date(2025, 10, 30), 900)]
        self.assertEqual(select_horizon_snapshot(captures, 2026, 3, 6), (date(2025, 10, 10), 700))

    def test_falls_back_to_earliest(self):
        self.assertEqual(select_horizon_snapshot(self.captures, 2026, 3, 6), (date(2025, 11, 15), 1000))
        self.assertIsNone(select_horizon_snapshot([], 2026, 3, 3))


class TestVendorResolution(unittest.TestCase):
    def setUp(self):
        self.index = VendorIndex([
            VendorEntry(1, 'ACM', 'Acme Home', aliases=['Acme Furniture Co']),
            VendorEntry(2, 'BLT', "Baker's Loft"),
            VendorEntry(3, None, 'Acme'),
        ])

    def test_normalize_name(self):
        self.assertEqual(normalize_name("  Baker's   LOFT, Inc. "), 'baker s loft inc')

    def test_code_wins(self):
        entry, strategy = resolve_vendor(self.index, 'blt', 'Acme Home')
        self.assertEqual((entry.vendor_id, strategy), (2, 'code'))

    def test_exact_name_and_alias(self):
        self.assertEqual(resolve_vendor(self.index, None, 'ACME HOME')[1], 'exact_name')
        entry, _ = resolve_vendor(self.index, 'UNKNOWN', 'acme furniture co')
        self.assertEqual(entry.vendor_id, 1)

    def test_normalized_name(self):
        entry, strategy = resolve_vendor(self.index, None, 'Bakers-Loft')
        self.assertIsNone(entry)

        entry, strategy = resolve_vendor(self.index, None, "Baker's-Loft")
        self.assertEqual((entry.vendor_id, strategy), (2, 'normalized_name'))

    def test_containment_prefers_longest_name(self):
        entry, strategy = resolve_vendor(self.index, None, 'Acme Home Ltd')
        self.assertEqual((entry.vendor_id, strategy), (1, 'containment'))

    def test_no_match(self):
        self.assertEqual(resolve_vendor(self.index, 'ZZZ', 'Zephyr Textiles'), (None, None))


class TestOrderKeys(unittest.TestCase):
    known = config.reconciliation_rules['known_mto_collections']

    def test_known_collection(self):
        self.assertEqual(extract_mto_collection('MTO HOXTON FEB 2026', self.known), 'hoxton')

    def test_unknown_collection_stops_at_month(self):
        self.assertEqual(extract_mto_collection('MTO: Grand Arbor MARCH 2026', self.known), 'grand arbor')

    def test_not_make_to_order(self):
        self.assertIsNone(extract_mto_collection('Spring replenishment', self.known))
        self.assertIsNone(extract_mto_collection(None, self.known))

    def test_excluded_lines(self):
        self.assertTrue(is_excluded_line('SWATCH-RED', 100))
        self.assertTrue(is_excluded_line('12345', 0))
        self.assertTrue(is_excluded_line('12345', 100, is_sample=True))
        self.assertFalse(is_excluded_line('12345', 100))

    def test_format_order_refs(self):
        self.assertEqual(format_order_refs(['PO-2', 'PO-1', 'PO-2']), 'PO-1, PO-2')
        self.assertIsNone(format_order_refs([]))

        refs = [f"PO-{n:04d}" for n in range(100)]
        joined = format_order_refs(refs, max_length=40)
        self.assertLessEqual(len(joined), 40)
        self.assertTrue(joined.startswith('PO-0000, PO-0001'))
        self.assertTrue(joined.endswith('more)'))
