# forecast_reconciliation/utils/math_utils.py
import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Sequence, Union

import numpy as np

def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up (``-2.5`` gives ``-2``)."""
    return int(math.floor(value + 0.5))

def parse_number(value: Union[str, int, float, Decimal, None]) -> Optional[Decimal]:
    """Parse a spreadsheet numeric cell.

    Accepts numbers and strings with currency symbols, thousands separators
    and accounting-style parentheses.

    Returns:
        Decimal or None for empty cells

    Raises:
        ValueError if the cell is not numeric
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        if math.isnan(value):
            return None
        return Decimal(str(value))

    text = str(value).strip()
    if not text or text == '-':
        return None

    negative = text.startswith('(') and text.endswith(')')
    cleaned = text.strip('()').replace('$', '').replace(',', '').strip()
    try:
        number = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")
    return -number if negative else number

def to_minor_units(value: Optional[Decimal]) -> int:
    """Convert a parsed numeric value already expressed in minor units to int."""
    if value is None:
        return 0
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))

def calculate_variance_pct(forecast_value: Optional[int], actual_value: Optional[int]) -> Optional[int]:
    """Percentage variance of actual against forecast.

    Returns:
        Rounded percentage; 100 when nothing was forecast but something was
        ordered; None when both are zero (undefined)
    """
    forecast_value = forecast_value or 0
    actual_value = actual_value or 0

    if forecast_value > 0:
        return round_half_up((actual_value - forecast_value) / forecast_value * 100.0)
    if actual_value > 0:
        return 100
    return None

def calculate_churn_score(values: Sequence[float]) -> float:
    """Churn of a forecast series across capture dates.

    ``sum(|v[i] - v[i-1]|) / mean(v) * 100``. Series shorter than two points,
    or with a zero mean, have no churn.

    Args:
        values: Forecast totals ordered by capture date

    Returns:
        Churn score as a percentage
    """
    if len(values) < 2:
        return 0.0

    series = np.asarray(values, dtype=float)
    mean = series.mean()
    if mean == 0:
        return 0.0

    return float(np.abs(np.diff(series)).sum() / mean * 100.0)
