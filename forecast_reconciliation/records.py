"""
Typed records exchanged with the engine's collaborators.

The spreadsheet parser hands the importer ``ForecastRow`` objects, the order
data aggregator hands the matcher ``OrderAggregate`` objects keyed by
``AggregateKey``. Money values are integers in minor currency units.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Union

from forecast_reconciliation.models import OrderType

Numeric = Union[int, float, Decimal, str, None]


@dataclass
class ForecastRow:
    """One parsed forecast line from a vendor projection file.

    Numeric fields may still be raw cell values; the importer validates them
    and reports unparseable cells as row warnings.
    """
    vendor_code: Optional[str]
    vendor_name: Optional[str]
    sku: Optional[str]
    target_year: Numeric
    target_month: Numeric
    forecast_value: Numeric
    sku_description: Optional[str] = None
    brand: Optional[str] = None
    product_class: Optional[str] = None
    collection: Optional[str] = None
    lead_time_marker: Optional[str] = None  # lead time in days, or the make-to-order marker
    country_of_origin: Optional[str] = None
    unit_cost: Numeric = None


@dataclass
class NormalizedForecastRow:
    """A forecast row after validation, order-type classification and keying."""
    vendor_code: Optional[str]
    vendor_name: Optional[str]
    item_key: str              # SKU, or collection name for make-to-order
    order_type: OrderType
    target_year: int
    target_month: int
    forecast_value: int
    quantity: int
    unit_cost: int
    brand: Optional[str] = None
    sku_description: Optional[str] = None
    product_class: Optional[str] = None
    collection: Optional[str] = None
    country_of_origin: Optional[str] = None
    source_rows: int = 1

    @property
    def vendor_group_key(self) -> str:
        """Key grouping rows that share the same unresolved vendor identity."""
        code = (self.vendor_code or '').strip().upper()
        name = (self.vendor_name or '').strip().lower()
        return f"{code}|{name}"


@dataclass(frozen=True)
class AggregateKey:
    vendor_id: int
    target_year: int
    target_month: int
    item_key: str  # SKU, or collection name for make-to-order

    @classmethod
    def build(cls, vendor_id: int, target_year: int, target_month: int, item_key: str) -> 'AggregateKey':
        return cls(vendor_id, target_year, target_month, (item_key or '').strip().lower())


@dataclass
class OrderAggregate:
    """Real purchase-order lines summed to forecast granularity."""
    total_quantity: int
    total_value: int
    order_references: List[str] = field(default_factory=list)
    order_type: OrderType = OrderType.STANDARD

    def add(self, quantity: int, value: int, reference: Optional[str]):
        self.total_quantity += quantity
        self.total_value += value
        if reference and reference not in self.order_references:
            self.order_references.append(reference)


@dataclass
class OrderLine:
    """A purchase-order line item as supplied by the order data layer."""
    order_number: str
    vendor_name: Optional[str]
    sku: Optional[str]
    quantity: int
    value: int
    ship_date: Optional[date]
    program_description: Optional[str] = None
    vendor_id: Optional[int] = None
    is_sample: bool = False


@dataclass
class VendorDecision:
    """Operator disposition for one unresolved vendor group of a pending import.

    action is one of ``create_new``, ``map_to_existing`` or ``skip``.
    """
    action: str
    vendor_id: Optional[int] = None
    vendor_name: Optional[str] = None
    vendor_code: Optional[str] = None

    CREATE_NEW = 'create_new'
    MAP_TO_EXISTING = 'map_to_existing'
    SKIP = 'skip'
