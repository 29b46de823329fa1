"""
Tests for the active belief views and administrative mutations.
"""
import unittest
from datetime import date

import pytest

from forecast_reconciliation.services.belief_service import BeliefService
from forecast_reconciliation.exceptions import NotFoundError, BeliefStateError, ValidationError
from forecast_reconciliation.tests.helpers import make_session, add_vendor, add_belief


class BeliefTestCase(unittest.TestCase):
    def setUp(self):
        self.engine, self.session = make_session()
        add_vendor(self.session, 'Acme Home', 'V7', vendor_id=7)
        self.service = BeliefService(self.session)

    def tearDown(self):
        self.session.close()
        self.engine.dispose()


class TestAdminMutations(BeliefTestCase):
    def test_unmatch_clears_match_fields(self):
        belief = add_belief(
            self.session, match_status='matched', matched_order_ref='PO-1', actual_quantity=60,
            actual_value=130000, quantity_variance=10, value_variance=30000, variance_pct=30
        )

        self.service.unmatch(belief.id, changed_by='admin')

        self.assertEqual(belief.match_status, 'unmatched')
        self.assertIsNone(belief.matched_order_ref)
        self.assertIsNone(belief.actual_value)
        self.assertIsNone(belief.variance_pct)
        self.assertEqual(belief.status_changed_by, 'admin')

    def test_manual_match(self):
        belief = add_belief(self.session)

        self.service.manual_match(belief.id, ' PO-42 ', 40, 80000, changed_by='admin')

        self.assertEqual(belief.match_status, 'matched')
        self.assertEqual(belief.matched_order_ref, 'PO-42')
        self.assertEqual(belief.quantity_variance, -10)
        self.assertEqual(belief.value_variance, -20000)
        self.assertEqual(belief.variance_pct, -20)
        self.assertIsNotNone(belief.matched_at)

    def test_manual_match_from_expired(self):
        belief = add_belief(self.session, match_status='expired')

        self.service.manual_match(belief.id, 'PO-42', 50, 100000)

        self.assertEqual(belief.match_status, 'matched')
        self.assertIsNone(belief.expired_at)

    def test_manual_match_validation(self):
        belief = add_belief(self.session)

        with pytest.raises(ValidationError) as error:
            self.service.manual_match(belief.id, '  ', 40, 80000)
        self.assertEqual(error.value.code, 'ORDER_REF_REQUIRED')

        with pytest.raises(ValidationError):
            self.service.manual_match(belief.id, 'PO-1', -1, 80000)

    def test_removed_rows_cannot_be_matched(self):
        belief = add_belief(self.session, match_status='removed')

        with pytest.raises(BeliefStateError) as error:
            self.service.manual_match(belief.id, 'PO-1', 50, 100000)
        self.assertEqual(error.value.code, 'ILLEGAL_TRANSITION')
        self.assertEqual(belief.match_status, 'removed')

    def test_mark_removed_requires_reason(self):
        belief = add_belief(self.session)

        with pytest.raises(ValidationError) as error:
            self.service.mark_removed(belief.id, '')
        self.assertEqual(error.value.code, 'REASON_REQUIRED')

        self.service.mark_removed(belief.id, 'Discontinued SKU', changed_by='admin')
        self.assertEqual(belief.match_status, 'removed')
        self.assertEqual(belief.comment, 'Discontinued SKU')
        self.assertEqual(belief.commented_by, 'admin')

    def test_mark_verified(self):
        belief = add_belief(self.session, match_status='expired')

        self.service.mark_verified(belief.id, 'verified', note='Vendor confirmed', changed_by='admin')

        self.assertEqual(belief.match_status, 'verified_unmatched')
        self.assertEqual(belief.actual_quantity, 0)
        self.assertEqual(belief.actual_value, 0)
        self.assertEqual(belief.quantity_variance, -50)
        self.assertEqual(belief.value_variance, -100000)
        self.assertEqual(belief.variance_pct, -100)
        self.assertEqual(belief.comment, 'Vendor confirmed')

    def test_mark_verified_zero_forecast(self):
        belief = add_belief(self.session, forecast_value=0, quantity=0)

        self.service.mark_verified(belief.id, 'verified')

        self.assertIsNone(belief.variance_pct)

    def test_mark_cancelled(self):
        belief = add_belief(self.session, match_status='expired')

        self.service.mark_verified(belief.id, 'cancelled')

        self.assertEqual(belief.match_status, 'removed')

    def test_mark_verified_rejects_other_states(self):
        belief = add_belief(self.session, match_status='matched')

        with pytest.raises(BeliefStateError):
            self.service.mark_verified(belief.id, 'verified')
        with pytest.raises(ValidationError):
            self.service.mark_verified(belief.id, 'maybe')

    def test_restore(self):
        belief = add_belief(self.session, match_status='expired')

        self.service.restore(belief.id)
        self.assertEqual(belief.match_status, 'unmatched')

        with pytest.raises(BeliefStateError):
            self.service.restore(belief.id)

    def test_update_order_type(self):
        belief = add_belief(self.session)

        self.service.update_order_type(belief.id, 'MTO')
        self.assertEqual(belief.order_type, 'make-to-order')

        with pytest.raises(ValidationError):
            self.service.update_order_type(belief.id, 'weekly')

    def test_update_comment(self):
        belief = add_belief(self.session)

        self.service.update_comment(belief.id, 'Check with buyer', commented_by='planner')
        self.assertEqual(belief.comment, 'Check with buyer')
        self.assertIsNotNone(belief.commented_at)

        self.service.update_comment(belief.id, '   ')
        self.assertIsNone(belief.comment)
        self.assertIsNone(belief.commented_at)

    def test_unknown_belief(self):
        with pytest.raises(NotFoundError) as error:
            self.service.unmatch(999)
        self.assertEqual(error.value.code, 'BELIEF_NOT_FOUND')


class TestViews(BeliefTestCase):
    def setUp(self):
        super().setUp()
        self.today = date(2026, 1, 2)
        add_belief(self.session, sku='DUE-SOON')
        add_belief(self.session, sku='LATE', target_year=2025, target_month=12)
        add_belief(self.session, sku='LATER', target_month=9)
        add_belief(self.session, sku='BIG-VAR', match_status='matched', variance_pct=30)
        add_belief(self.session, sku='SMALL-VAR', match_status='matched', variance_pct=5)
        add_belief(self.session, sku='hoxton', order_type='make-to-order', brand='CK')
        add_belief(self.session, sku='vera', order_type='make-to-order', match_status='matched', brand='CBH')

    def test_validation_summary(self):
        summary = self.service.get_validation_summary(today=self.today)

        self.assertEqual(summary['totalProjections'], 7)
        self.assertEqual(summary['overdueCount'], 1)
        self.assertEqual(summary['atRiskCount'], 1)
        self.assertEqual(summary['withVariance'], 1)
        self.assertEqual(summary['mtoTotal'], 2)
        self.assertEqual(summary['mtoMatched'], 1)
        self.assertEqual(summary['mtoUnmatched'], 1)
        self.assertEqual(summary['unmatched'], 4)
        self.assertEqual(summary['matched'], 3)
        self.assertEqual(summary['expired'], 0)

    def test_summary_filters(self):
        summary = self.service.get_validation_summary(today=self.today, target_year=2025)
        self.assertEqual(summary['totalProjections'], 1)

    def test_overdue(self):
        rows = self.service.get_overdue(today=self.today)

        self.assertEqual([r['sku'] for r in rows], ['LATE', 'DUE-SOON'])
        self.assertEqual(rows[0]['daysUntilDue'], -32)
        self.assertTrue(rows[0]['isOverdue'])
        self.assertEqual(rows[1]['daysUntilDue'], 58)
        self.assertFalse(rows[1]['isOverdue'])

    def test_with_variance(self):
        rows = self.service.get_with_variance()
        self.assertEqual([b.sku for b in rows], ['BIG-VAR'])

    def test_make_to_order(self):
        rows = self.service.get_make_to_order(today=self.today)

        self.assertEqual(sorted(r['sku'] for r in rows), ['hoxton', 'vera'])
        unmatched = [r for r in rows if r['matchStatus'] == 'unmatched'][0]
        self.assertEqual(unmatched['daysUntilDue'], 58)

    def test_filter_options(self):
        options = self.service.get_filter_options()

        self.assertEqual(options['brands'], ['C&K', 'CB'])
        self.assertEqual(options['vendors'], [{'id': 7, 'name': 'Acme Home', 'vendorCode': 'V7'}])

    def test_list_beliefs(self):
        self.assertEqual(len(self.service.list_beliefs(status='matched')), 3)
        self.assertEqual(len(self.service.list_beliefs(order_type='mto')), 2)
        self.assertEqual(len(self.service.list_beliefs(target_year=2026, target_month=3, brand='CB')), 3)

        with pytest.raises(ValidationError):
            self.service.list_beliefs(status='pending')


if __name__ == '__main__':
    pytest.main([__file__])
