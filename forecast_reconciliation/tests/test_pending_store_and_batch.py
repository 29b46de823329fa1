"""
Tests for the pending import store and the batch job wrappers.
"""
import unittest
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from unittest.mock import patch

import pytest

from forecast_reconciliation.batch import reconciliation_job
from forecast_reconciliation.batch.reconciliation_job import (
    RunRegistry, run_matching_job, run_expiration_job, run_pending_cleanup, run_reconciliation_job
)
from forecast_reconciliation.exceptions import BatchProcessError
from forecast_reconciliation.models import OrderType
from forecast_reconciliation.records import NormalizedForecastRow, OrderLine
from forecast_reconciliation.services.pending_store import PendingImport, PendingImportStore
from forecast_reconciliation.tests.helpers import make_session, add_vendor, add_belief


def pending_import(**groups):
    def row(name, value):
        return NormalizedForecastRow(
            vendor_code=None, vendor_name=name, item_key='1', order_type=OrderType.STANDARD,
            target_year=2026, target_month=3, forecast_value=value, quantity=1, unit_cost=value
        )

    return PendingImport(
        captured_at=date(2025, 11, 5),
        category_group='FURNITURE',
        resolved_rows=[],
        unresolved_groups={f"|{name.lower()}": [row(name, v) for v in values] for name, values in groups.items()}
    )


class TestPendingImportStore(unittest.TestCase):
    def setUp(self):
        self.now = datetime(2026, 1, 2, 9, 0)
        self.store = PendingImportStore(ttl_minutes=30, clock=lambda: self.now)

    def tearDown(self):
        self.store.stop_cleanup()

    def test_add_and_get(self):
        pending = pending_import(Zeta=[100])
        handle = self.store.add(pending)

        self.assertEqual(len(handle), 32)
        self.assertIs(self.store.get(handle), pending)
        self.assertEqual(pending.expires_at, datetime(2026, 1, 2, 9, 30))
        self.assertIsNone(self.store.get('unknown'))

    def test_entries_expire(self):
        handle = self.store.add(pending_import(Zeta=[100]))
        self.now += timedelta(minutes=30)

        self.assertIsNone(self.store.get(handle))
        self.assertEqual(len(self.store), 0)

    def test_sweep_expired(self):
        self.store.add(pending_import(Zeta=[100]))
        self.now += timedelta(minutes=20)
        fresh = self.store.add(pending_import(Yarrow=[100]))
        self.now += timedelta(minutes=15)

        self.assertEqual(self.store.sweep_expired(), 1)
        self.assertIsNotNone(self.store.get(fresh))

    def test_discard(self):
        handle = self.store.add(pending_import(Zeta=[100]))

        self.assertTrue(self.store.discard(handle))
        self.assertFalse(self.store.discard(handle))

    def test_unknown_vendor_summary(self):
        summary = pending_import(Zeta=[100, 200], Yarrow=[500]).unknown_vendors()

        self.assertEqual([v['vendor_name'] for v in summary], ['Yarrow', 'Zeta'])
        self.assertEqual(summary[1]['row_count'], 2)
        self.assertEqual(summary[1]['total_value'], 300)

    def test_cleanup_timer(self):
        self.store.start_cleanup(interval_minutes=60)
        self.assertTrue(self.store._timer.daemon)

        self.store.stop_cleanup()
        self.assertIsNone(self.store._timer)

    def test_create_starts_cleanup(self):
        store = PendingImportStore.create(ttl_minutes=5)
        try:
            self.assertEqual(store.ttl, timedelta(minutes=5))
            self.assertTrue(store._timer.daemon)
            self.assertTrue(store._cleanup_active)
        finally:
            store.stop_cleanup()
        self.assertIsNone(store._timer)

    def test_run_pending_cleanup(self):
        self.store.add(pending_import(Zeta=[100]))
        self.now += timedelta(hours=1)

        result = run_pending_cleanup(self.store)

        self.assertEqual(result, {'success': True, 'discarded': 1, 'remaining': 0})


class TestRunRegistry(unittest.TestCase):
    def test_claim_is_exclusive_per_scope(self):
        registry = RunRegistry()

        with registry.claim(('matching', None, 2026)):
            self.assertTrue(registry.is_active(('matching', None, 2026)))
            with pytest.raises(BatchProcessError) as error:
                with registry.claim(('matching', None, 2026)):
                    pass
            self.assertEqual(error.value.code, 'RUN_IN_PROGRESS')

            with pytest.raises(BatchProcessError):
                with registry.claim(('matching', 7, 2026)):
                    pass

            with registry.claim(('matching', None, 2027)):
                pass
            with registry.claim(('expiration', 7, 2026)):
                pass

        self.assertFalse(registry.is_active(('matching', None, 2026)))

    def test_vendor_run_blocks_all_vendor_run(self):
        registry = RunRegistry()

        with registry.claim(('expiration', 7, 2026)):
            with pytest.raises(BatchProcessError):
                with registry.claim(('expiration', None, None)):
                    pass
            with registry.claim(('expiration', 8, 2026)):
                pass


class TestBatchJobs(unittest.TestCase):
    def setUp(self):
        self.engine, self.session = make_session()
        add_vendor(self.session, 'Acme Home', 'V7', vendor_id=7)

        @contextmanager
        def test_scope():
            yield self.session
            self.session.flush()

        patcher = patch.object(reconciliation_job, 'session_scope', test_scope)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self.session.close()
        self.engine.dispose()

    def test_matching_job_from_order_lines(self):
        belief = add_belief(self.session)
        lines = [OrderLine('PO-1001', 'Acme Home', '12345', 60, 130000, date(2026, 3, 12))]

        result = run_matching_job(2026, order_lines=lines)

        self.assertTrue(result['success'])
        self.assertEqual(result['matched'], 1)
        self.assertEqual(result['order_lines']['used'], 1)
        self.assertEqual(belief.match_status, 'matched')

    def test_concurrent_run_is_skipped(self):
        with reconciliation_job.registry.claim(('expiration', None, 2026)):
            result = run_expiration_job(today=date(2026, 1, 2), target_year=2026)

        self.assertFalse(result['success'])
        self.assertTrue(result['skipped'])
        self.assertEqual(result['error']['code'], 'RUN_IN_PROGRESS')

    def test_reconciliation_job_matches_before_expiring(self):
        matched = add_belief(self.session)
        stale = add_belief(self.session, sku='99999')
        lines = [OrderLine('PO-1001', 'Acme Home', '12345', 60, 130000, date(2026, 3, 12))]

        result = run_reconciliation_job(2026, order_lines=lines, today=date(2026, 1, 2))

        self.assertTrue(result['success'])
        self.assertEqual(result['processes']['matching']['matched'], 1)
        self.assertEqual(result['processes']['expiration']['expired'], 1)
        self.assertEqual(matched.match_status, 'matched')
        self.assertEqual(stale.match_status, 'expired')

    def test_job_failure_is_reported(self):
        with patch.object(reconciliation_job.ExpirationService, 'sweep', side_effect=RuntimeError('boom')):
            result = run_expiration_job(today=date(2026, 1, 2))

        self.assertEqual(result, {'success': False, 'error': 'boom'})


if __name__ == '__main__':
    pytest.main([__file__])
