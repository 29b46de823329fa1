# forecast_reconciliation/services/order_aggregate_service.py
from typing import Dict, Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from forecast_reconciliation.config import config
from forecast_reconciliation.models import OrderType
from forecast_reconciliation.records import AggregateKey, OrderAggregate, OrderLine
from forecast_reconciliation.core.vendor_resolution import VendorIndex, RESOLUTION_CHAIN, resolve_vendor
from forecast_reconciliation.core.order_keys import extract_mto_collection, is_excluded_line
from forecast_reconciliation.services.vendor_service import VendorService
from forecast_reconciliation.logging_setup import get_logger

logger = get_logger(__name__)

# Purchase orders carry vendor names only, never the forecast vendor code
ORDER_VENDOR_CHAIN = [strategy for strategy in RESOLUTION_CHAIN if strategy[0] in ('exact_name', 'normalized_name')]

class OrderAggregateService:
    """Builds order aggregates at forecast granularity from purchase-order lines."""

    def __init__(self, session: Session, rules: Optional[Dict] = None):
        self.session = session
        self.rules = rules or config.reconciliation_rules
        self._index: Optional[VendorIndex] = None

    @property
    def vendor_index(self) -> VendorIndex:
        if self._index is None:
            self._index = VendorService(self.session).build_index()
        return self._index

    def build_aggregates(
        self,
        lines: Iterable[OrderLine],
        target_year: Optional[int] = None
    ) -> Tuple[Dict[AggregateKey, OrderAggregate], Dict]:
        """Sum purchase-order lines per (vendor, ship month, SKU or collection).

        Lines whose program description marks them make-to-order are keyed by
        collection; all others by SKU. Sample, swatch and zero-value lines,
        lines without a ship date and lines whose vendor cannot be resolved
        are skipped.

        Args:
            lines: Purchase-order lines
            target_year: Optional ship year to keep

        Returns:
            Tuple with the aggregates and a dictionary of line counts
        """
        aggregates = {}
        stats = {
            'lines': 0,
            'used': 0,
            'excluded': 0,
            'no_ship_date': 0,
            'unknown_vendor': 0,
            'no_key': 0,
            'other_year': 0
        }
        resolved_names = {}
        unknown_names = set()

        for line in lines:
            stats['lines'] += 1

            if is_excluded_line(line.sku, line.value, line.is_sample):
                stats['excluded'] += 1
                continue

            if line.ship_date is None:
                stats['no_ship_date'] += 1
                continue

            if target_year is not None and line.ship_date.year != target_year:
                stats['other_year'] += 1
                continue

            vendor_id = line.vendor_id
            if vendor_id is None:
                name = (line.vendor_name or '').strip()
                if name not in resolved_names:
                    entry, _ = resolve_vendor(self.vendor_index, None, name, chain=ORDER_VENDOR_CHAIN)
                    resolved_names[name] = entry.vendor_id if entry else None
                vendor_id = resolved_names[name]

            if vendor_id is None:
                stats['unknown_vendor'] += 1
                unknown_names.add(line.vendor_name)
                continue

            collection = extract_mto_collection(line.program_description, self.rules['known_mto_collections'])
            if collection:
                item_key, order_type = collection, OrderType.MAKE_TO_ORDER
            elif line.sku and line.sku.strip():
                item_key, order_type = line.sku, OrderType.STANDARD
            else:
                stats['no_key'] += 1
                continue

            key = AggregateKey.build(vendor_id, line.ship_date.year, line.ship_date.month, item_key)
            aggregate = aggregates.get(key)
            if aggregate is None:
                aggregate = aggregates[key] = OrderAggregate(0, 0, order_type=order_type)
            aggregate.add(line.quantity or 0, line.value or 0, line.order_number)
            stats['used'] += 1

        if unknown_names:
            logger.warning(f"{len(unknown_names)} order vendor names could not be resolved: "
                           f"{', '.join(sorted(str(n) for n in unknown_names)[:10])}")

        logger.info(f"Built {len(aggregates)} order aggregates from {stats['lines']} lines ({stats})")
        return aggregates, stats
