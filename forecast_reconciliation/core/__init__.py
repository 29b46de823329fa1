from .deadlines import live_deadline, backtest_deadline, is_past
from .vendor_resolution import VendorEntry, VendorIndex, normalize_name, resolve_vendor, RESOLUTION_CHAIN
from .horizon import HORIZONS, horizon_months, select_horizon_snapshot, group_captures
from .order_keys import extract_mto_collection, is_excluded_line, format_order_refs

__all__ = [
    'live_deadline',
    'backtest_deadline',
    'is_past',
    'VendorEntry',
    'VendorIndex',
    'normalize_name',
    'resolve_vendor',
    'RESOLUTION_CHAIN',
    'HORIZONS',
    'horizon_months',
    'select_horizon_snapshot',
    'group_captures',
    'extract_mto_collection',
    'is_excluded_line',
    'format_order_refs'
]
