# forecast_reconciliation/core/deadlines.py
"""
Order-placement deadlines.

Two formulas exist for the same idea. The live formulas drive the expiration
sweeper's cleanup triage; the backtest formulas decide whether a month is
closed for forecast-accuracy reporting. They are kept apart on purpose and
must not be unified without product sign-off.
"""
from datetime import date, timedelta
from typing import Dict, Optional

from ..models import OrderType
from ..utils.date_utils import shift_month, month_start, month_end, add_days

def live_deadline(
    order_type: OrderType,
    target_year: int,
    target_month: int,
    rules: Dict
) -> date:
    """Last day an order can still be placed for a live belief.

    Standard: the last day before the month ``standard_lead_months`` ahead of
    the target month starts (March 2026 gives Nov 30, 2025).
    Make-to-order: last day of the month before the target month plus
    ``mto_grace_days``.

    Args:
        order_type: Order type of the belief
        target_year: Target year
        target_month: Target month
        rules: Reconciliation rules from config

    Returns:
        Deadline date (inclusive)
    """
    if order_type == OrderType.MAKE_TO_ORDER:
        prev_year, prev_month = shift_month(target_year, target_month, -1)
        return add_days(month_end(prev_year, prev_month), rules['mto_grace_days'])

    lead_year, lead_month = shift_month(target_year, target_month, -rules['standard_lead_months'])
    return month_start(lead_year, lead_month) - timedelta(days=1)

def backtest_deadline(
    order_type: OrderType,
    target_year: int,
    target_month: int,
    rules: Dict,
    latest_capture: Optional[date] = None
) -> date:
    """Deadline used to decide whether a target month is closed for accuracy reporting.

    Standard: target-month start minus ``backtest_standard_lead_days``.
    Make-to-order: latest snapshot capture plus ``mto_snapshot_window_days``,
    or target-month start minus ``backtest_mto_lead_days`` when no capture is
    known.
    """
    start = month_start(target_year, target_month)
    if order_type == OrderType.MAKE_TO_ORDER:
        if latest_capture is not None:
            return add_days(latest_capture, rules['mto_snapshot_window_days'])
        return add_days(start, -rules['backtest_mto_lead_days'])
    return add_days(start, -rules['backtest_standard_lead_days'])

def is_past(deadline: date, today: date) -> bool:
    return today > deadline
