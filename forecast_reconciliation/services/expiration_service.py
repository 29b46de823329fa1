# forecast_reconciliation/services/expiration_service.py
from datetime import date, datetime
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from forecast_reconciliation.config import config
from forecast_reconciliation.models import ActiveBelief, MatchStatus, OPEN_STATUSES
from forecast_reconciliation.core.deadlines import live_deadline, is_past
from forecast_reconciliation.logging_setup import get_logger

logger = get_logger(__name__)

class ExpirationService:
    """Expiration sweeper: closes open beliefs whose order-placement window has passed."""

    def __init__(self, session: Session, rules: Optional[Dict] = None):
        """Initialize the expiration service.

        Args:
            session: Database session
            rules: Optional reconciliation rules (defaults to config)
        """
        self.session = session
        self.rules = rules or config.reconciliation_rules
        self.max_messages = config.batch_config['max_messages']

    def deadline_for(self, belief: ActiveBelief) -> date:
        return live_deadline(belief.order_type_enum, belief.target_year, belief.target_month, self.rules)

    def sweep(
        self,
        today: Optional[date] = None,
        target_year: Optional[int] = None,
        vendor_id: Optional[int] = None
    ) -> Dict:
        """Expire unmatched and partial beliefs whose deadline is behind today.

        Rows move forward only; an expired row is never brought back here.

        Args:
            today: Evaluation date (defaults to today)
            target_year: Optional target year filter
            vendor_id: Optional vendor ID filter

        Returns:
            Dictionary with sweep results
        """
        today = today or date.today()

        query = self.session.query(ActiveBelief).filter(
            ActiveBelief.match_status.in_([s.value for s in OPEN_STATUSES])
        )
        if target_year is not None:
            query = query.filter(ActiveBelief.target_year == target_year)
        if vendor_id is not None:
            query = query.filter(ActiveBelief.vendor_id == vendor_id)

        results = {
            'success': True,
            'processed': 0,
            'expired': 0,
            'still_open': 0,
            'errors': []
        }
        expired_at = datetime.now()

        for belief in query.all():
            results['processed'] += 1
            try:
                deadline = self.deadline_for(belief)
            except ValueError as e:
                if len(results['errors']) < self.max_messages:
                    results['errors'].append(f"Belief {belief.id}: {str(e)}")
                continue

            if is_past(deadline, today):
                belief.status = MatchStatus.EXPIRED
                belief.expired_at = expired_at
                belief.status_changed_by = 'system'
                results['expired'] += 1
            else:
                results['still_open'] += 1

        self.session.flush()

        logger.info(
            f"Expiration sweep as of {today}: {results['processed']} open rows, "
            f"{results['expired']} expired"
        )
        return results

    def get_expired_summary(self, target_year: Optional[int] = None, vendor_id: Optional[int] = None) -> Dict:
        """Counts of expired, verified and removed beliefs plus the value they represent."""
        query = self.session.query(
            ActiveBelief.match_status,
            func.count(ActiveBelief.id),
            func.sum(ActiveBelief.forecast_value)
        ).filter(
            ActiveBelief.match_status.in_([
                MatchStatus.EXPIRED.value,
                MatchStatus.VERIFIED_UNMATCHED.value,
                MatchStatus.REMOVED.value
            ])
        )
        if target_year is not None:
            query = query.filter(ActiveBelief.target_year == target_year)
        if vendor_id is not None:
            query = query.filter(ActiveBelief.vendor_id == vendor_id)

        counts = {row[0]: (row[1], int(row[2] or 0)) for row in query.group_by(ActiveBelief.match_status).all()}

        return {
            'totalExpired': counts.get(MatchStatus.EXPIRED.value, (0, 0))[0],
            'expiredValue': counts.get(MatchStatus.EXPIRED.value, (0, 0))[1],
            'verifiedCount': counts.get(MatchStatus.VERIFIED_UNMATCHED.value, (0, 0))[0],
            'verifiedValue': counts.get(MatchStatus.VERIFIED_UNMATCHED.value, (0, 0))[1],
            'removedCount': counts.get(MatchStatus.REMOVED.value, (0, 0))[0],
            'removedValue': counts.get(MatchStatus.REMOVED.value, (0, 0))[1]
        }
