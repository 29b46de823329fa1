# forecast_reconciliation/core/horizon.py
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from ..models import OrderType
from ..utils.date_utils import shift_month, month_start, month_end, add_days

# Horizon name -> months before the target month
HORIZONS = {
    '90_day': 3,
    '6_month': 6,
}

# Make-to-order items are decided much closer to the target month
MTO_HORIZON_OVERRIDES = {
    '90_day': 1,
}

def horizon_months(horizon: str, order_type: Optional[OrderType] = None) -> int:
    """Get the number of months a horizon looks back.

    Args:
        horizon: Horizon name ('90_day' or '6_month')
        order_type: Optional order type; make-to-order uses a 30-day horizon
                    in place of the 90-day one

    Returns:
        Months between the capture month and the target month

    Raises:
        ValueError if the horizon name is not valid
    """
    if horizon not in HORIZONS:
        valid = ', '.join(HORIZONS)
        raise ValueError(f"Invalid horizon: {horizon}. Valid values are: {valid}")
    if order_type == OrderType.MAKE_TO_ORDER and horizon in MTO_HORIZON_OVERRIDES:
        return MTO_HORIZON_OVERRIDES[horizon]
    return HORIZONS[horizon]

def select_horizon_snapshot(
    captures: Sequence[Tuple[date, int]],
    target_year: int,
    target_month: int,
    months_before: int,
    grace_days: int = 14
) -> Optional[Tuple[date, int]]:
    """Pick the capture representing the forecast as known at decision time.

    Order of preference:
      1. latest capture inside the calendar month ``months_before`` ahead of the target
      2. latest capture before that month
      3. earliest capture within ``grace_days`` after that month ends
      4. earliest capture available

    Args:
        captures: (captured_at, value) pairs for one forecast key
        target_year: Target year
        target_month: Target month
        months_before: Horizon in months
        grace_days: Grace window after the horizon month

    Returns:
        Chosen (captured_at, value) pair or None if there are no captures
    """
    if not captures:
        return None

    ordered = sorted(captures, key=lambda c: c[0])
    window_year, window_month = shift_month(target_year, target_month, -months_before)
    window_start = month_start(window_year, window_month)
    window_end = month_end(window_year, window_month)

    in_window = [c for c in ordered if window_start <= c[0] <= window_end]
    if in_window:
        return in_window[-1]

    earlier = [c for c in ordered if c[0] < window_start]
    if earlier:
        return earlier[-1]

    grace_end = add_days(window_end, grace_days)
    in_grace = [c for c in ordered if window_end < c[0] <= grace_end]
    if in_grace:
        return in_grace[0]

    return ordered[0]

def group_captures(rows: Sequence) -> Dict[tuple, List[Tuple[date, int]]]:
    """Group snapshot rows by forecast key.

    Args:
        rows: Objects with vendor_code, sku, target_year, target_month,
              captured_at and forecast_value attributes

    Returns:
        Dictionary mapping (vendor_code, sku, year, month) to capture pairs
    """
    grouped = {}
    for row in rows:
        key = (row.vendor_code, row.sku, row.target_year, row.target_month)
        grouped.setdefault(key, []).append((row.captured_at, row.forecast_value or 0))
    return grouped
