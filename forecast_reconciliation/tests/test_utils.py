"""
Tests for date, math and row validation helpers.
"""
import unittest
from datetime import date
from decimal import Decimal

import pytest

from forecast_reconciliation.config import config
from forecast_reconciliation.models import OrderType
from forecast_reconciliation.utils.date_utils import (
    shift_month, month_end, capture_date_from_filename, resolve_capture_date
)
from forecast_reconciliation.utils.math_utils import (
    round_half_up, parse_number, calculate_variance_pct, calculate_churn_score
)
from forecast_reconciliation.utils.validation import (
    normalize_forecast_row, normalize_brand, classify_order_type
)
from forecast_reconciliation.tests.helpers import forecast_row


class TestDateUtils(unittest.TestCase):
    def test_shift_month_across_years(self):
        self.assertEqual(shift_month(2026, 3, -3), (2025, 12))
        self.assertEqual(shift_month(2026, 1, -1), (2025, 12))
        self.assertEqual(shift_month(2025, 11, 3), (2026, 2))

    def test_month_end(self):
        self.assertEqual(month_end(2026, 2), date(2026, 2, 28))
        self.assertEqual(month_end(2024, 2), date(2024, 2, 29))

    def test_capture_date_from_filename(self):
        self.assertEqual(capture_date_from_filename('FURNITURE-20251105.xlsx'), date(2025, 11, 5))
        self.assertEqual(capture_date_from_filename('proj_2025-12-01.csv'), date(2025, 12, 1))
        self.assertIsNone(capture_date_from_filename('projections.xlsx'))
        self.assertIsNone(capture_date_from_filename(None))

    def test_resolve_capture_date_precedence(self):
        self.assertEqual(
            resolve_capture_date('2025-10-01', 'FURNITURE-20251105.xlsx'), date(2025, 10, 1)
        )
        self.assertEqual(resolve_capture_date(None, 'FURNITURE-20251105.xlsx'), date(2025, 11, 5))
        self.assertEqual(
            resolve_capture_date(None, 'projections.xlsx', today=date(2026, 1, 2)), date(2026, 1, 2)
        )


class TestMathUtils(unittest.TestCase):
    def test_round_half_up(self):
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(-2.5), -2)
        self.assertEqual(round_half_up(29.4), 29)

    def test_parse_number(self):
        self.assertEqual(parse_number('$1,250.50'), Decimal('1250.50'))
        self.assertEqual(parse_number('(300)'), Decimal('-300'))
        self.assertEqual(parse_number(42), Decimal(42))
        self.assertIsNone(parse_number(''))
        self.assertIsNone(parse_number('-'))
        self.assertIsNone(parse_number(float('nan')))
        with pytest.raises(ValueError):
            parse_number('twelve')

    def test_variance_pct(self):
        self.assertEqual(calculate_variance_pct(100000, 130000), 30)
        self.assertEqual(calculate_variance_pct(100000, 40000), -60)

    def test_variance_pct_zero_forecast(self):
        self.assertIsNone(calculate_variance_pct(0, 0))
        self.assertIsNone(calculate_variance_pct(None, None))
        self.assertEqual(calculate_variance_pct(0, 5000), 100)

    def test_churn_score(self):
        self.assertEqual(calculate_churn_score([1000, 1000, 1000]), 0.0)
        self.assertAlmostEqual(calculate_churn_score([1000, 1500, 500]), 150.0)
        self.assertEqual(calculate_churn_score([1000]), 0.0)
        self.assertEqual(calculate_churn_score([0, 0]), 0.0)


class TestRowValidation(unittest.TestCase):
    def setUp(self):
        self.rules = config.reconciliation_rules

    def test_standard_row(self):
        row, problems = normalize_forecast_row(forecast_row(), self.rules)

        self.assertEqual(problems, [])
        self.assertEqual(row.order_type, OrderType.STANDARD)
        self.assertEqual(row.item_key, '12345')
        self.assertEqual(row.forecast_value, 100000)
        self.assertEqual(row.quantity, 50)

    def test_make_to_order_row_keyed_by_collection(self):
        row, problems = normalize_forecast_row(
            forecast_row(sku=None, collection='Hoxton', lead_time_marker='mto'), self.rules
        )

        self.assertEqual(problems, [])
        self.assertEqual(row.order_type, OrderType.MAKE_TO_ORDER)
        self.assertEqual(row.item_key, 'Hoxton')

    def test_make_to_order_without_collection_is_skipped(self):
        row, problems = normalize_forecast_row(
            forecast_row(collection=None, lead_time_marker='MTO'), self.rules
        )
        self.assertIsNone(row)
        self.assertIn("make-to-order row without collection", problems)

    def test_malformed_marker(self):
        row, problems = normalize_forecast_row(forecast_row(lead_time_marker='ASAP'), self.rules)
        self.assertIsNone(row)
        self.assertTrue(any('malformed order type marker' in p for p in problems))

    def test_unrecognized_and_excluded_brands(self):
        self.assertIsNone(normalize_forecast_row(forecast_row(brand='XYZ'), self.rules)[0])
        self.assertIsNone(normalize_forecast_row(forecast_row(brand='CBH'), self.rules)[0])

    def test_brand_alias(self):
        self.assertEqual(normalize_brand('ck', self.rules), 'C&K')
        self.assertEqual(normalize_brand(' cb2 ', self.rules), 'CB2')

    def test_unparseable_numbers_collected(self):
        row, problems = normalize_forecast_row(
            forecast_row(forecast_value='lots', target_month='13'), self.rules
        )
        self.assertIsNone(row)
        self.assertEqual(len(problems), 2)

    def test_zero_unit_cost_gives_zero_quantity(self):
        row, _ = normalize_forecast_row(forecast_row(unit_cost=None), self.rules)
        self.assertEqual(row.quantity, 0)

    def test_classify_order_type(self):
        self.assertEqual(classify_order_type(None, self.rules), OrderType.STANDARD)
        self.assertEqual(classify_order_type('90', self.rules), OrderType.STANDARD)
        self.assertEqual(classify_order_type(' Mto ', self.rules), OrderType.MAKE_TO_ORDER)
        self.assertIsNone(classify_order_type('soon', self.rules))
