# forecast_reconciliation/utils/validation.py
from typing import Dict, List, Optional, Tuple

from forecast_reconciliation.models import OrderType
from forecast_reconciliation.records import ForecastRow, NormalizedForecastRow
from forecast_reconciliation.utils.math_utils import parse_number, to_minor_units, round_half_up

def clean_text(value) -> Optional[str]:
    """Strip a text cell, mapping empty cells to None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None

def normalize_brand(brand: Optional[str], rules: Dict) -> Optional[str]:
    """Normalize a brand code and check it against the known brands.

    Args:
        brand: Raw brand code
        rules: Reconciliation rules from config

    Returns:
        Canonical brand code or None if unrecognized
    """
    code = (clean_text(brand) or '').upper()
    if not code:
        return None
    code = rules['brand_aliases'].get(code, code)
    if code in rules['excluded_brands'] or code not in rules['known_brands']:
        return None
    return code

def classify_order_type(marker, rules: Dict) -> Optional[OrderType]:
    """Classify a lead-time cell.

    The literal make-to-order marker means make-to-order; an empty or numeric
    lead time means standard; anything else is malformed.

    Returns:
        OrderType or None if the marker is malformed
    """
    text = clean_text(marker)
    if text is None:
        return OrderType.STANDARD
    if text.upper() == rules['mto_marker']:
        return OrderType.MAKE_TO_ORDER
    try:
        parse_number(text)
    except ValueError:
        return None
    return OrderType.STANDARD

def _parse_int(value, field: str, errors: List[str]) -> Optional[int]:
    try:
        number = parse_number(value)
    except ValueError:
        errors.append(f"unparseable {field} {value!r}")
        return None
    if number is None:
        errors.append(f"missing {field}")
        return None
    if number != number.to_integral_value():
        errors.append(f"{field} must be a whole number, got {value!r}")
        return None
    return int(number)

def normalize_forecast_row(row: ForecastRow, rules: Dict) -> Tuple[Optional[NormalizedForecastRow], List[str]]:
    """Validate and normalize one parsed forecast row.

    Args:
        row: Row handed over by the spreadsheet parser
        rules: Reconciliation rules from config

    Returns:
        Tuple with the normalized row (None if the row must be skipped) and
        the list of problems found
    """
    errors = []

    vendor_code = clean_text(row.vendor_code)
    vendor_name = clean_text(row.vendor_name)
    if not vendor_code and not vendor_name:
        errors.append("missing vendor code and name")

    order_type = classify_order_type(row.lead_time_marker, rules)
    if order_type is None:
        errors.append(f"malformed order type marker {row.lead_time_marker!r}")

    sku = clean_text(row.sku)
    collection = clean_text(row.collection)
    if order_type == OrderType.MAKE_TO_ORDER:
        item_key = collection
        if not item_key:
            errors.append("make-to-order row without collection")
    else:
        item_key = sku
        if order_type is not None and not item_key:
            errors.append("missing SKU")

    brand = normalize_brand(row.brand, rules)
    if brand is None:
        errors.append(f"unrecognized brand {row.brand!r}")

    target_year = _parse_int(row.target_year, 'target year', errors)
    if target_year is not None and not 2000 <= target_year <= 2100:
        errors.append(f"target year out of range: {target_year}")

    target_month = _parse_int(row.target_month, 'target month', errors)
    if target_month is not None and not 1 <= target_month <= 12:
        errors.append(f"target month out of range: {target_month}")

    try:
        forecast_value = to_minor_units(parse_number(row.forecast_value))
    except ValueError:
        errors.append(f"unparseable forecast value {row.forecast_value!r}")
        forecast_value = None

    try:
        unit_cost = to_minor_units(parse_number(row.unit_cost))
    except ValueError:
        errors.append(f"unparseable unit cost {row.unit_cost!r}")
        unit_cost = None

    if errors:
        return None, errors

    quantity = round_half_up(forecast_value / unit_cost) if unit_cost > 0 else 0

    return NormalizedForecastRow(
        vendor_code=vendor_code,
        vendor_name=vendor_name,
        item_key=item_key,
        order_type=order_type,
        target_year=target_year,
        target_month=target_month,
        forecast_value=forecast_value,
        quantity=quantity,
        unit_cost=unit_cost,
        brand=brand,
        sku_description=clean_text(row.sku_description),
        product_class=clean_text(row.product_class),
        collection=collection,
        country_of_origin=clean_text(row.country_of_origin),
    ), []
