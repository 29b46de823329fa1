# forecast_reconciliation/services/accuracy_service.py
from datetime import date
from typing import Dict, List, Mapping, Optional, Union

from sqlalchemy.orm import Session

from forecast_reconciliation.config import config
from forecast_reconciliation.models import OrderType
from forecast_reconciliation.records import AggregateKey, OrderAggregate
from forecast_reconciliation.core.deadlines import backtest_deadline, is_past
from forecast_reconciliation.core.horizon import horizon_months, select_horizon_snapshot, group_captures
from forecast_reconciliation.services.snapshot_service import SnapshotService
from forecast_reconciliation.utils.math_utils import calculate_churn_score, calculate_variance_pct
from forecast_reconciliation.exceptions import ReportingError
from forecast_reconciliation.logging_setup import get_logger

logger = get_logger(__name__)

class AccuracyService:
    """Accuracy reporter: read-only drift and horizon-accuracy views over the snapshot archive.

    Nothing here writes to the database.
    """

    def __init__(self, session: Session, rules: Optional[Dict] = None):
        """Initialize the accuracy service.

        Args:
            session: Database session
            rules: Optional reconciliation rules (defaults to config)
        """
        self.session = session
        self.rules = rules or config.reconciliation_rules
        self.snapshot_service = SnapshotService(session)

    @staticmethod
    def _order_type(value: Union[OrderType, str, None]) -> Optional[OrderType]:
        if value is None or isinstance(value, OrderType):
            return value
        try:
            return OrderType.from_string(value)
        except ValueError as e:
            raise ReportingError(str(e))

    def get_drift(
        self,
        target_year: int,
        target_month: int,
        vendor_id: Optional[int] = None,
        category_group: Optional[str] = None,
        order_type: Union[OrderType, str, None] = None
    ) -> Dict:
        """Forecast total per capture date for one target month, with its churn score.

        Args:
            target_year: Target year
            target_month: Target month
            vendor_id: Optional vendor ID filter
            category_group: Optional category group filter
            order_type: Optional order type filter

        Returns:
            Dictionary with the capture series and churn score
        """
        totals = self.snapshot_service.get_capture_totals(
            target_year, target_month, vendor_id, category_group, self._order_type(order_type)
        )
        values = [row['total_value'] for row in totals]

        return {
            'targetYear': target_year,
            'targetMonth': target_month,
            'series': [
                {
                    'capturedAt': row['captured_at'].isoformat(),
                    'totalValue': row['total_value'],
                    'snapshotCount': row['snapshot_count']
                }
                for row in totals
            ],
            'captureCount': len(totals),
            'churnScore': round(calculate_churn_score(values), 2)
        }

    def get_churn_trend(
        self,
        target_year: int,
        vendor_id: Optional[int] = None,
        category_group: Optional[str] = None,
        order_type: Union[OrderType, str, None] = None
    ) -> List[Dict]:
        """Churn score for each month of a year."""
        trend = []
        for month in range(1, 13):
            drift = self.get_drift(target_year, month, vendor_id, category_group, order_type)
            trend.append({
                'month': month,
                'churnScore': drift['churnScore'],
                'captureCount': drift['captureCount'],
                'snapshotCount': sum(point['snapshotCount'] for point in drift['series'])
            })
        return trend

    def get_key_history(self, vendor_code: str, sku: str, target_year: int, target_month: int) -> List[Dict]:
        """Every capture of one forecast key, oldest first."""
        return [
            {
                'capturedAt': snapshot.captured_at.isoformat(),
                'forecastValue': snapshot.forecast_value,
                'quantity': snapshot.quantity,
                'orderType': snapshot.order_type,
                'categoryGroup': snapshot.category_group
            }
            for snapshot in self.snapshot_service.get_key_history(vendor_code, sku, target_year, target_month)
        ]

    def get_horizon_accuracy(
        self,
        target_year: int,
        horizon: str,
        aggregates: Mapping[AggregateKey, OrderAggregate],
        order_type: Union[OrderType, str, None] = None,
        vendor_id: Optional[int] = None,
        category_group: Optional[str] = None,
        today: Optional[date] = None
    ) -> Dict:
        """Compare the forecast known at a horizon against realized orders, per month.

        For each forecast key the snapshot is picked from the calendar month
        ``horizon`` before the target month (see select_horizon_snapshot);
        the picked values are summed per month and compared to the order
        aggregates of that month.

        Args:
            target_year: Target year
            horizon: '90_day' or '6_month'
            aggregates: Realized order aggregates
            order_type: Optional order type filter
            vendor_id: Optional vendor ID filter
            category_group: Optional category group filter
            today: Evaluation date for the windowClosed flag (defaults to today)

        Returns:
            Dictionary with one entry per month and yearly totals

        Raises:
            ReportingError if the horizon or order type is not valid
        """
        today = today or date.today()
        order_type = self._order_type(order_type)
        try:
            horizon_months(horizon)
        except ValueError as e:
            raise ReportingError(str(e))

        months = []
        for month in range(1, 13):
            snapshots = self.snapshot_service.get_snapshots(
                target_year, month, vendor_id, category_group, order_type
            )

            key_types = {}
            for snapshot in snapshots:
                key_types[(snapshot.vendor_code, snapshot.sku, snapshot.target_year, snapshot.target_month)] = \
                    snapshot.order_type

            projected = 0
            chosen_dates = []
            for key, captures in group_captures(snapshots).items():
                key_type = OrderType.from_string(key_types[key])
                chosen = select_horizon_snapshot(
                    captures, target_year, month,
                    horizon_months(horizon, key_type),
                    self.rules['horizon_grace_days']
                )
                if chosen is not None:
                    chosen_dates.append(chosen[0])
                    projected += chosen[1]

            # Orders carry no category, so a category report only counts keys forecast in that category
            category_keys = None
            if category_group:
                category_keys = {(s.vendor_id, s.sku.strip().lower()) for s in snapshots}

            actual = 0
            for key, aggregate in aggregates.items():
                if key.target_year != target_year or key.target_month != month:
                    continue
                if vendor_id is not None and key.vendor_id != vendor_id:
                    continue
                if order_type is not None and aggregate.order_type != order_type:
                    continue
                if category_keys is not None and (key.vendor_id, key.item_key) not in category_keys:
                    continue
                actual += aggregate.total_value

            latest_capture = max((s.captured_at for s in snapshots), default=None)
            deadline = backtest_deadline(
                order_type or OrderType.STANDARD, target_year, month, self.rules, latest_capture
            )

            months.append({
                'month': month,
                'projected': projected,
                'actual': actual,
                'varianceDollar': actual - projected,
                'variancePct': calculate_variance_pct(projected, actual),
                'snapshotDate': max(chosen_dates).isoformat() if chosen_dates else None,
                'hasSnapshot': bool(chosen_dates),
                'windowClosed': is_past(deadline, today)
            })

        total_projected = sum(m['projected'] for m in months)
        total_actual = sum(m['actual'] for m in months)

        logger.debug(f"Horizon accuracy {target_year} {horizon}: projected={total_projected}, actual={total_actual}")

        return {
            'targetYear': target_year,
            'horizon': horizon,
            'orderType': order_type.value if order_type else None,
            'months': months,
            'totals': {
                'projected': total_projected,
                'actual': total_actual,
                'varianceDollar': total_actual - total_projected,
                'variancePct': calculate_variance_pct(total_projected, total_actual)
            }
        }
