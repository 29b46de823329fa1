# forecast_reconciliation/services/belief_service.py
from datetime import date, datetime
from typing import Dict, List, Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from forecast_reconciliation.config import config
from forecast_reconciliation.models import (
    ActiveBelief, ForecastSnapshot, Vendor, MatchStatus, OrderType, MATCH_STATUS_TRANSITIONS
)
from forecast_reconciliation.utils.math_utils import calculate_variance_pct
from forecast_reconciliation.utils.date_utils import month_start, days_until
from forecast_reconciliation.exceptions import NotFoundError, BeliefStateError, ValidationError
from forecast_reconciliation.logging_setup import get_logger

logger = get_logger(__name__)

class BeliefService:
    """Service for the active belief store.

    Holds the cohort replace used by imports, the list and validation views
    read by dashboards, and the administrative single-row mutations.
    """

    def __init__(self, session: Session, rules: Optional[Dict] = None):
        """Initialize the belief service.

        Args:
            session: Database session
            rules: Optional reconciliation rules (defaults to config)
        """
        self.session = session
        self.rules = rules or config.reconciliation_rules

    def count(self) -> int:
        return self.session.query(func.count(ActiveBelief.id)).scalar() or 0

    def delete_cohort(self, vendor_id: int, target_year: int, category_group: str) -> int:
        """Delete every belief of a (vendor, year) cohort within one category group.

        Returns:
            Number of deleted beliefs
        """
        return self.session.query(ActiveBelief).filter(
            ActiveBelief.vendor_id == vendor_id,
            ActiveBelief.target_year == target_year,
            ActiveBelief.category_group == category_group
        ).delete(synchronize_session='fetch')

    def add_from_snapshot(self, snapshot: ForecastSnapshot) -> ActiveBelief:
        """Insert a fresh unmatched belief for a newly archived snapshot."""
        belief = ActiveBelief(
            snapshot_id=snapshot.id,
            vendor_id=snapshot.vendor_id,
            vendor_code=snapshot.vendor_code,
            sku=snapshot.sku,
            sku_description=snapshot.sku_description,
            brand=snapshot.brand,
            product_class=snapshot.product_class,
            collection=snapshot.collection,
            target_year=snapshot.target_year,
            target_month=snapshot.target_month,
            order_type=snapshot.order_type,
            category_group=snapshot.category_group,
            forecast_value=snapshot.forecast_value,
            quantity=snapshot.quantity,
            match_status=MatchStatus.UNMATCHED.value,
            last_snapshot_date=snapshot.captured_at
        )
        self.session.add(belief)
        return belief

    def get_belief(self, belief_id: int) -> Optional[ActiveBelief]:
        return self.session.get(ActiveBelief, belief_id)

    def _require(self, belief_id: int) -> ActiveBelief:
        belief = self.get_belief(belief_id)
        if not belief:
            raise NotFoundError(f"Active belief {belief_id} not found", code='BELIEF_NOT_FOUND')
        return belief

    def _filtered_query(
        self,
        target_year: Optional[int] = None,
        vendor_id: Optional[int] = None,
        target_month: Optional[int] = None,
        status: Optional[Union[MatchStatus, str]] = None,
        order_type: Optional[Union[OrderType, str]] = None,
        brand: Optional[str] = None,
        category_group: Optional[str] = None
    ):
        query = self.session.query(ActiveBelief)

        if target_year is not None:
            query = query.filter(ActiveBelief.target_year == target_year)

        if vendor_id is not None:
            query = query.filter(ActiveBelief.vendor_id == vendor_id)

        if target_month is not None:
            query = query.filter(ActiveBelief.target_month == target_month)

        if status is not None:
            if isinstance(status, str):
                try:
                    status = MatchStatus.from_string(status)
                except ValueError as e:
                    raise ValidationError(str(e))
            query = query.filter(ActiveBelief.match_status == status.value)

        if order_type is not None:
            if isinstance(order_type, str):
                try:
                    order_type = OrderType.from_string(order_type)
                except ValueError as e:
                    raise ValidationError(str(e))
            query = query.filter(ActiveBelief.order_type == order_type.value)

        if brand is not None:
            query = query.filter(ActiveBelief.brand == brand)

        if category_group is not None:
            query = query.filter(ActiveBelief.category_group == category_group)

        return query

    def list_beliefs(self, **filters) -> List[ActiveBelief]:
        """List active beliefs.

        Args:
            **filters: Any of target_year, vendor_id, target_month, status,
                       order_type, brand, category_group

        Returns:
            List of ActiveBelief objects ordered by vendor, period and SKU
        """
        return self._filtered_query(**filters).order_by(
            ActiveBelief.vendor_code,
            ActiveBelief.target_year,
            ActiveBelief.target_month,
            ActiveBelief.sku
        ).all()

    def get_validation_summary(self, today: Optional[date] = None, **filters) -> Dict:
        """Count beliefs per status plus the overdue, at-risk and make-to-order figures.

        Overdue and at-risk apply to unmatched standard rows only: overdue once
        the target month has started, at risk within the overdue threshold.
        """
        today = today or date.today()
        threshold = self.rules['overdue_threshold_days']
        alert_pct = self.rules['variance_alert_pct']

        summary = {
            'totalProjections': 0,
            'overdueCount': 0,
            'atRiskCount': 0,
            'withVariance': 0,
            'mtoTotal': 0,
            'mtoMatched': 0,
            'mtoUnmatched': 0,
        }
        for status in MatchStatus:
            summary[status.value] = 0

        for belief in self._filtered_query(**filters).all():
            summary['totalProjections'] += 1
            summary[belief.match_status] = summary.get(belief.match_status, 0) + 1
            is_mto = belief.order_type == OrderType.MAKE_TO_ORDER.value

            if is_mto:
                summary['mtoTotal'] += 1
                if belief.match_status == MatchStatus.MATCHED.value:
                    summary['mtoMatched'] += 1
                elif belief.match_status == MatchStatus.UNMATCHED.value:
                    summary['mtoUnmatched'] += 1
                continue

            if belief.match_status == MatchStatus.UNMATCHED.value:
                remaining = days_until(month_start(belief.target_year, belief.target_month), today)
                if remaining < 0:
                    summary['overdueCount'] += 1
                elif remaining <= threshold:
                    summary['atRiskCount'] += 1

            if (belief.match_status == MatchStatus.MATCHED.value
                    and belief.variance_pct is not None
                    and abs(belief.variance_pct) > alert_pct):
                summary['withVariance'] += 1

        return summary

    def get_overdue(
        self,
        threshold_days: Optional[int] = None,
        today: Optional[date] = None,
        **filters
    ) -> List[Dict]:
        """Unmatched standard beliefs whose target month is within the threshold or already past.

        Returns:
            Belief dictionaries with daysUntilDue and isOverdue, most urgent first
        """
        today = today or date.today()
        if threshold_days is None:
            threshold_days = self.rules['overdue_threshold_days']

        filters['status'] = MatchStatus.UNMATCHED
        filters['order_type'] = OrderType.STANDARD

        results = []
        for belief in self._filtered_query(**filters).all():
            remaining = days_until(month_start(belief.target_year, belief.target_month), today)
            if remaining <= threshold_days:
                row = belief.to_dict()
                row['daysUntilDue'] = remaining
                row['isOverdue'] = remaining < 0
                results.append(row)

        results.sort(key=lambda r: r['daysUntilDue'])
        return results

    def get_with_variance(self, min_variance_pct: Optional[int] = None, **filters) -> List[ActiveBelief]:
        """Matched standard beliefs whose variance exceeds the alert threshold, largest first."""
        if min_variance_pct is None:
            min_variance_pct = self.rules['variance_alert_pct']

        filters['status'] = MatchStatus.MATCHED
        filters['order_type'] = OrderType.STANDARD

        rows = self._filtered_query(**filters).filter(
            ActiveBelief.variance_pct.isnot(None),
            or_(ActiveBelief.variance_pct > min_variance_pct,
                ActiveBelief.variance_pct < -min_variance_pct)
        ).all()

        return sorted(rows, key=lambda b: abs(b.variance_pct), reverse=True)

    def get_make_to_order(self, today: Optional[date] = None, **filters) -> List[Dict]:
        """Make-to-order beliefs, newest target first; unmatched rows carry daysUntilDue."""
        today = today or date.today()
        filters['order_type'] = OrderType.MAKE_TO_ORDER

        rows = self._filtered_query(**filters).order_by(
            ActiveBelief.target_year.desc(), ActiveBelief.target_month.desc()
        ).all()

        results = []
        for belief in rows:
            row = belief.to_dict()
            if belief.match_status == MatchStatus.UNMATCHED.value:
                remaining = days_until(month_start(belief.target_year, belief.target_month), today)
                row['daysUntilDue'] = remaining
                row['isOverdue'] = remaining < 0
            results.append(row)
        return results

    def get_filter_options(self) -> Dict:
        """Vendors and brands present among active beliefs.

        Excluded brands (the parent company code) are dropped and brand
        aliases are folded into their canonical code.
        """
        vendor_rows = self.session.query(
            ActiveBelief.vendor_id, ActiveBelief.vendor_code, Vendor.name
        ).outerjoin(
            Vendor, Vendor.id == ActiveBelief.vendor_id
        ).distinct().all()

        vendors = sorted(
            (
                {
                    'id': vendor_id,
                    'name': name or vendor_code or f"Vendor ID {vendor_id}",
                    'vendorCode': vendor_code or ''
                }
                for vendor_id, vendor_code, name in vendor_rows if vendor_id
            ),
            key=lambda v: v['name'].lower()
        )

        brands = set()
        for (brand,) in self.session.query(ActiveBelief.brand).distinct().all():
            if not brand or not brand.strip():
                continue
            code = brand.strip().upper()
            if code in self.rules['excluded_brands']:
                continue
            brands.add(self.rules['brand_aliases'].get(code, code))

        return {'vendors': vendors, 'brands': sorted(brands)}

    def _transition(self, belief: ActiveBelief, target: MatchStatus, changed_by: Optional[str] = None):
        current = belief.status
        if current != target and target not in MATCH_STATUS_TRANSITIONS.get(current, set()):
            raise BeliefStateError(
                f"Cannot move belief {belief.id} from {current} to {target}",
                details={'belief_id': belief.id, 'from': current.value, 'to': target.value}
            )
        belief.status = target
        belief.status_changed_by = changed_by
        logger.info(f"Belief {belief.id} moved from {current} to {target} by {changed_by or 'system'}")

    def unmatch(self, belief_id: int, changed_by: Optional[str] = None) -> ActiveBelief:
        """Reset a belief to unmatched and clear every match field."""
        belief = self._require(belief_id)
        self._transition(belief, MatchStatus.UNMATCHED, changed_by)
        belief.clear_match()
        belief.expired_at = None
        self.session.flush()
        return belief

    def manual_match(
        self,
        belief_id: int,
        order_ref: str,
        actual_quantity: int,
        actual_value: int,
        changed_by: Optional[str] = None
    ) -> ActiveBelief:
        """Match a belief to an order by hand.

        Args:
            belief_id: Belief ID
            order_ref: Order reference (e.g. PO number)
            actual_quantity: Ordered quantity
            actual_value: Ordered value in minor currency units
            changed_by: Operator making the change

        Returns:
            Updated ActiveBelief

        Raises:
            ValidationError if the order reference is empty or figures are negative
        """
        order_ref = (order_ref or '').strip()
        if not order_ref:
            raise ValidationError("Order reference is required", code='ORDER_REF_REQUIRED')
        if actual_quantity is None or actual_value is None or actual_quantity < 0 or actual_value < 0:
            raise ValidationError("Actual quantity and value must be non-negative numbers")

        belief = self._require(belief_id)
        self._transition(belief, MatchStatus.MATCHED, changed_by)

        belief.matched_order_ref = order_ref[:self.rules['max_order_ref_length']]
        belief.matched_at = datetime.now()
        belief.actual_quantity = actual_quantity
        belief.actual_value = actual_value
        belief.quantity_variance = actual_quantity - (belief.quantity or 0)
        belief.value_variance = actual_value - (belief.forecast_value or 0)
        belief.variance_pct = calculate_variance_pct(belief.forecast_value, actual_value)
        belief.expired_at = None
        self.session.flush()
        return belief

    def mark_removed(self, belief_id: int, reason: str, changed_by: Optional[str] = None) -> ActiveBelief:
        """Discard a belief from reporting. A reason is required."""
        reason = (reason or '').strip()
        if not reason:
            raise ValidationError("A reason is required to remove a projection", code='REASON_REQUIRED')

        belief = self._require(belief_id)
        self._transition(belief, MatchStatus.REMOVED, changed_by)
        self._set_comment(belief, reason, changed_by)
        self.session.flush()
        return belief

    def mark_verified(
        self,
        belief_id: int,
        status: str,
        note: Optional[str] = None,
        changed_by: Optional[str] = None
    ) -> ActiveBelief:
        """Record an administrator's verdict on an expired or unmatched belief.

        ``verified`` confirms the order never happened: the belief becomes
        verified_unmatched with zero actuals and a frozen -100% variance.
        ``cancelled`` removes it from reporting.

        Raises:
            ValidationError for an unknown status
            BeliefStateError if the belief is not expired or unmatched
        """
        verdict = (status or '').strip().lower()
        if verdict not in ('verified', 'cancelled'):
            raise ValidationError(f"Invalid verification status: {status}. Valid values are: verified, cancelled")

        belief = self._require(belief_id)
        if belief.status not in (MatchStatus.EXPIRED, MatchStatus.UNMATCHED):
            raise BeliefStateError(
                f"Only expired or unmatched projections can be verified (belief {belief_id} is {belief.status})"
            )

        if verdict == 'cancelled':
            self._transition(belief, MatchStatus.REMOVED, changed_by)
        else:
            self._transition(belief, MatchStatus.VERIFIED_UNMATCHED, changed_by)
            forecast_value = belief.forecast_value or 0
            belief.actual_quantity = 0
            belief.actual_value = 0
            belief.quantity_variance = -(belief.quantity or 0)
            belief.value_variance = -forecast_value
            belief.variance_pct = -100 if forecast_value > 0 else None

        if note:
            self._set_comment(belief, note, changed_by)
        self.session.flush()
        return belief

    def restore(self, belief_id: int, changed_by: Optional[str] = None) -> ActiveBelief:
        """Bring an expired belief back to unmatched."""
        belief = self._require(belief_id)
        if belief.status != MatchStatus.EXPIRED:
            raise BeliefStateError(f"Only expired projections can be restored (belief {belief_id} is {belief.status})")

        self._transition(belief, MatchStatus.UNMATCHED, changed_by)
        belief.expired_at = None
        self.session.flush()
        return belief

    def update_order_type(self, belief_id: int, order_type: Union[OrderType, str]) -> ActiveBelief:
        if isinstance(order_type, str):
            try:
                order_type = OrderType.from_string(order_type)
            except ValueError as e:
                raise ValidationError(str(e))

        belief = self._require(belief_id)
        belief.order_type = order_type.value
        self.session.flush()
        return belief

    def update_comment(self, belief_id: int, comment: Optional[str], commented_by: Optional[str] = None) -> ActiveBelief:
        belief = self._require(belief_id)
        self._set_comment(belief, (comment or '').strip() or None, commented_by)
        self.session.flush()
        return belief

    def _set_comment(self, belief: ActiveBelief, comment: Optional[str], commented_by: Optional[str]):
        belief.comment = comment
        belief.commented_by = commented_by
        belief.commented_at = datetime.now() if comment else None
