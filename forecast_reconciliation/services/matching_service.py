# forecast_reconciliation/services/matching_service.py
from datetime import datetime
from typing import Dict, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from forecast_reconciliation.config import config
from forecast_reconciliation.models import ActiveBelief, MatchStatus, OPEN_STATUSES
from forecast_reconciliation.records import AggregateKey, OrderAggregate
from forecast_reconciliation.core.order_keys import format_order_refs
from forecast_reconciliation.utils.math_utils import calculate_variance_pct
from forecast_reconciliation.logging_setup import get_logger

logger = get_logger(__name__)

class MatchingService:
    """Matcher: reconciles open active beliefs against real order aggregates."""

    def __init__(self, session: Session, rules: Optional[Dict] = None):
        """Initialize the matching service.

        Args:
            session: Database session
            rules: Optional reconciliation rules (defaults to config)
        """
        self.session = session
        self.rules = rules or config.reconciliation_rules
        self.max_messages = config.batch_config['max_messages']

    def run_matching(
        self,
        target_year: int,
        aggregates: Mapping[AggregateKey, OrderAggregate],
        vendor_id: Optional[int] = None
    ) -> Dict:
        """Match unmatched and partial beliefs of a year against order aggregates.

        A belief whose aggregate quantity covers the forecast quantity becomes
        matched; a smaller positive quantity makes it partial. Beliefs with no
        order data are left alone, so the matcher never moves a row back to
        unmatched. Re-running with the same aggregates changes nothing.

        Args:
            target_year: Target year to process
            aggregates: Order aggregates keyed by AggregateKey
            vendor_id: Optional vendor ID to restrict the run to

        Returns:
            Dictionary with matching results
        """
        query = self.session.query(ActiveBelief).filter(
            ActiveBelief.target_year == target_year,
            ActiveBelief.match_status.in_([s.value for s in OPEN_STATUSES])
        )
        if vendor_id is not None:
            query = query.filter(ActiveBelief.vendor_id == vendor_id)

        results = {
            'success': True,
            'processed': 0,
            'matched': 0,
            'partial': 0,
            'no_orders': 0,
            'updated': 0,
            'stale_partial': 0,
            'variances': 0,
            'errors': []
        }

        for belief in query.all():
            results['processed'] += 1
            try:
                outcome, changed = self._match_belief(belief, aggregates)
            except Exception as e:
                logger.error(f"Error matching belief {belief.id}: {str(e)}")
                if len(results['errors']) < self.max_messages:
                    results['errors'].append(f"Belief {belief.id} ({belief.vendor_code}/{belief.sku}): {str(e)}")
                continue

            results[outcome] += 1
            if changed:
                results['updated'] += 1
            if outcome in ('matched', 'partial') and belief.variance_pct is not None \
                    and abs(belief.variance_pct) > self.rules['variance_alert_pct']:
                results['variances'] += 1

        self.session.flush()

        logger.info(
            f"Matching for {target_year} (vendor={vendor_id}): {results['processed']} processed, "
            f"{results['matched']} matched, {results['partial']} partial, "
            f"{results['no_orders']} without orders, {results['updated']} updated"
        )
        return results

    def _match_belief(self, belief: ActiveBelief, aggregates: Mapping[AggregateKey, OrderAggregate]) -> Tuple[str, bool]:
        key = AggregateKey.build(belief.vendor_id, belief.target_year, belief.target_month, belief.sku)
        aggregate = aggregates.get(key)

        if aggregate is None or aggregate.total_quantity <= 0:
            if belief.status == MatchStatus.PARTIAL:
                # Order data behind a partial match has disappeared upstream
                logger.warning(
                    f"Belief {belief.id} ({belief.vendor_code}/{belief.sku} {belief.target_year}-"
                    f"{belief.target_month:02d}) is partial but no longer has order data"
                )
                return 'stale_partial', False
            return 'no_orders', False

        forecast_quantity = belief.quantity or 0
        forecast_value = belief.forecast_value or 0
        status = MatchStatus.MATCHED if aggregate.total_quantity >= forecast_quantity else MatchStatus.PARTIAL

        fields = {
            'match_status': status.value,
            'matched_order_ref': format_order_refs(
                aggregate.order_references, self.rules['max_order_ref_length']
            ) or '(unreferenced)',
            'actual_quantity': aggregate.total_quantity,
            'actual_value': aggregate.total_value,
            'quantity_variance': aggregate.total_quantity - forecast_quantity,
            'value_variance': aggregate.total_value - forecast_value,
            'variance_pct': calculate_variance_pct(forecast_value, aggregate.total_value),
        }

        changed = False
        for name, value in fields.items():
            if getattr(belief, name) != value:
                setattr(belief, name, value)
                changed = True

        if changed:
            belief.matched_at = datetime.now()

        return ('matched' if status == MatchStatus.MATCHED else 'partial'), changed
