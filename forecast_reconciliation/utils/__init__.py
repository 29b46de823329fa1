from .date_utils import shift_month, month_start, month_end, convert_to_date, resolve_capture_date
from .math_utils import calculate_variance_pct, calculate_churn_score, parse_number
from .validation import normalize_forecast_row, normalize_brand, classify_order_type

__all__ = [
    'shift_month',
    'month_start',
    'month_end',
    'convert_to_date',
    'resolve_capture_date',
    'calculate_variance_pct',
    'calculate_churn_score',
    'parse_number',
    'normalize_forecast_row',
    'normalize_brand',
    'classify_order_type'
]
