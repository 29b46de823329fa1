# forecast_reconciliation/batch/reconciliation_job.py
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime
from typing import Dict, Iterable, Mapping, Optional

from forecast_reconciliation.db import session_scope
from forecast_reconciliation.records import AggregateKey, OrderAggregate, OrderLine
from forecast_reconciliation.services.matching_service import MatchingService
from forecast_reconciliation.services.expiration_service import ExpirationService
from forecast_reconciliation.services.order_aggregate_service import OrderAggregateService
from forecast_reconciliation.services.pending_store import PendingImportStore
from forecast_reconciliation.exceptions import BatchProcessError
from forecast_reconciliation.logging_setup import logger as log_manager, get_logger

# Initialize logger
logger = get_logger('reconciliation_job')
logger.setLevel(logging.INFO)

def scopes_overlap(first: tuple, second: tuple) -> bool:
    """Whether two (kind, vendor_id, target_year) scopes touch the same rows.

    None stands for every vendor or every year.
    """
    if first[0] != second[0]:
        return False
    return all(a is None or b is None or a == b for a, b in zip(first[1:], second[1:]))

class RunRegistry:
    """Process-local record of batch runs in progress, keyed by scope."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active = set()

    @contextmanager
    def claim(self, scope: tuple):
        """Hold a scope for the duration of a run.

        Raises:
            BatchProcessError if a run over an overlapping scope is already active
        """
        with self._lock:
            if any(scopes_overlap(scope, active) for active in self._active):
                raise BatchProcessError(
                    f"A run overlapping {scope} is already in progress",
                    code='RUN_IN_PROGRESS',
                    details={'scope': list(scope)}
                )
            self._active.add(scope)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(scope)

    def is_active(self, scope: tuple) -> bool:
        with self._lock:
            return scope in self._active

registry = RunRegistry()

def _skipped(error: BatchProcessError) -> Dict:
    logger.warning(str(error))
    return {'success': False, 'skipped': True, 'message': error.message, 'error': error.to_dict()}

def run_matching_job(
    target_year: int,
    aggregates: Optional[Mapping[AggregateKey, OrderAggregate]] = None,
    order_lines: Optional[Iterable[OrderLine]] = None,
    vendor_id: Optional[int] = None
) -> Dict:
    """Run the matcher for a year, optionally for one vendor.

    Args:
        target_year: Target year
        aggregates: Prepared order aggregates
        order_lines: Purchase-order lines to aggregate when aggregates are not given
        vendor_id: Optional vendor ID

    Returns:
        Dictionary with matching results
    """
    log_info = log_manager.batch_start_log('matching', {'target_year': target_year, 'vendor_id': vendor_id})

    try:
        with registry.claim(('matching', vendor_id, target_year)):
            with session_scope() as session:
                order_stats = None
                if aggregates is None:
                    aggregates, order_stats = OrderAggregateService(session).build_aggregates(
                        order_lines or [], target_year=target_year
                    )
                results = MatchingService(session).run_matching(target_year, aggregates, vendor_id=vendor_id)
                if order_stats is not None:
                    results['order_lines'] = order_stats
    except BatchProcessError as e:
        log_manager.batch_end_log(log_info, False)
        return _skipped(e)
    except Exception as e:
        logger.error(f"Matching job failed: {str(e)}", exc_info=True)
        log_manager.batch_end_log(log_info, False, {'error': str(e)})
        return {'success': False, 'error': str(e)}

    log_manager.batch_end_log(log_info, True, {
        'matched': results['matched'], 'partial': results['partial']
    })
    return results

def run_expiration_job(
    today: Optional[date] = None,
    target_year: Optional[int] = None,
    vendor_id: Optional[int] = None
) -> Dict:
    """Run the expiration sweep.

    Args:
        today: Evaluation date (defaults to today)
        target_year: Optional target year
        vendor_id: Optional vendor ID

    Returns:
        Dictionary with sweep results
    """
    log_info = log_manager.batch_start_log('expiration_sweep', {'today': str(today or date.today())})

    try:
        with registry.claim(('expiration', vendor_id, target_year)):
            with session_scope() as session:
                results = ExpirationService(session).sweep(today=today, target_year=target_year, vendor_id=vendor_id)
    except BatchProcessError as e:
        log_manager.batch_end_log(log_info, False)
        return _skipped(e)
    except Exception as e:
        logger.error(f"Expiration job failed: {str(e)}", exc_info=True)
        log_manager.batch_end_log(log_info, False, {'error': str(e)})
        return {'success': False, 'error': str(e)}

    log_manager.batch_end_log(log_info, True, {'expired': results['expired']})
    return results

def run_pending_cleanup(store: PendingImportStore) -> Dict:
    """Discard expired pending imports."""
    log_info = log_manager.batch_start_log('pending_cleanup')
    discarded = store.sweep_expired()
    log_manager.batch_end_log(log_info, True, {'discarded': discarded})
    return {'success': True, 'discarded': discarded, 'remaining': len(store)}

def run_reconciliation_job(
    target_year: int,
    aggregates: Optional[Mapping[AggregateKey, OrderAggregate]] = None,
    order_lines: Optional[Iterable[OrderLine]] = None,
    vendor_id: Optional[int] = None,
    today: Optional[date] = None
) -> Dict:
    """Run matching then the expiration sweep.

    Matching goes first so rows that just received orders are not expired.

    Returns:
        Dictionary with job results
    """
    job_logger = logging.getLogger('batch')

    start_time = datetime.now()
    job_logger.info(f"Starting reconciliation job at {start_time}")

    results = {
        'start_time': start_time,
        'end_time': None,
        'duration': None,
        'processes': {}
    }

    logger.info("# Step 1: Match beliefs to orders")
    results['processes']['matching'] = run_matching_job(
        target_year, aggregates=aggregates, order_lines=order_lines, vendor_id=vendor_id
    )

    logger.info("# Step 2: Expire beliefs past their deadline")
    results['processes']['expiration'] = run_expiration_job(
        today=today, target_year=target_year, vendor_id=vendor_id
    )

    end_time = datetime.now()
    results['end_time'] = end_time
    results['duration'] = end_time - start_time
    results['success'] = all(p.get('success', False) for p in results['processes'].values())

    job_logger.info(f"Reconciliation job finished in {results['duration']} (success={results['success']})")
    return results
