# forecast_reconciliation/services/snapshot_service.py
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from forecast_reconciliation.models import ForecastSnapshot, OrderType
from forecast_reconciliation.records import NormalizedForecastRow
from forecast_reconciliation.core.vendor_resolution import VendorEntry

class SnapshotService:
    """Append-only archive of every forecast value received.

    Snapshots are never updated. The only delete is the replacement of one
    capture date for a vendor/year cohort when the same file is re-imported.
    """

    def __init__(self, session: Session):
        self.session = session

    def count(self) -> int:
        return self.session.query(func.count(ForecastSnapshot.id)).scalar() or 0

    def delete_capture(
        self,
        vendor_id: int,
        target_year: int,
        category_group: str,
        captured_at: date
    ) -> int:
        """Delete the snapshots of one capture date for a vendor/year cohort.

        Returns:
            Number of deleted snapshots
        """
        return self.session.query(ForecastSnapshot).filter(
            ForecastSnapshot.vendor_id == vendor_id,
            ForecastSnapshot.target_year == target_year,
            ForecastSnapshot.category_group == category_group,
            ForecastSnapshot.captured_at == captured_at
        ).delete(synchronize_session='fetch')

    def append(
        self,
        vendor: VendorEntry,
        row: NormalizedForecastRow,
        captured_at: date,
        category_group: str,
        imported_by: Optional[str] = None
    ) -> ForecastSnapshot:
        """Archive one aggregated forecast row.

        Args:
            vendor: Resolved vendor
            row: Aggregated forecast row
            captured_at: Capture date of the import
            category_group: Category group tag of the import
            imported_by: Operator who imported the file

        Returns:
            Flushed ForecastSnapshot
        """
        snapshot = ForecastSnapshot(
            vendor_id=vendor.vendor_id,
            vendor_code=vendor.vendor_code or f"VENDOR-{vendor.vendor_id}",
            sku=row.item_key,
            sku_description=row.sku_description,
            brand=row.brand,
            product_class=row.product_class,
            collection=row.collection,
            country_of_origin=row.country_of_origin,
            unit_cost=row.unit_cost,
            target_year=row.target_year,
            target_month=row.target_month,
            order_type=row.order_type.value,
            forecast_value=row.forecast_value,
            quantity=row.quantity,
            captured_at=captured_at,
            category_group=category_group,
            imported_by=imported_by
        )
        self.session.add(snapshot)
        self.session.flush()
        return snapshot

    def get_snapshots(
        self,
        target_year: int,
        target_month: Optional[int] = None,
        vendor_id: Optional[int] = None,
        category_group: Optional[str] = None,
        order_type: Optional[OrderType] = None
    ) -> List[ForecastSnapshot]:
        """Get archived snapshots for a target period, oldest capture first."""
        query = self.session.query(ForecastSnapshot).filter(
            ForecastSnapshot.target_year == target_year
        )

        if target_month is not None:
            query = query.filter(ForecastSnapshot.target_month == target_month)

        if vendor_id is not None:
            query = query.filter(ForecastSnapshot.vendor_id == vendor_id)

        if category_group is not None:
            query = query.filter(ForecastSnapshot.category_group == category_group)

        if order_type is not None:
            query = query.filter(ForecastSnapshot.order_type == order_type.value)

        return query.order_by(ForecastSnapshot.captured_at, ForecastSnapshot.id).all()

    def get_capture_totals(
        self,
        target_year: int,
        target_month: int,
        vendor_id: Optional[int] = None,
        category_group: Optional[str] = None,
        order_type: Optional[OrderType] = None
    ) -> List[Dict]:
        """Total forecast value per capture date for one target month.

        Returns:
            List of dictionaries with captured_at, total_value and
            snapshot_count, ordered by capture date
        """
        query = self.session.query(
            ForecastSnapshot.captured_at,
            func.sum(ForecastSnapshot.forecast_value),
            func.count(ForecastSnapshot.id)
        ).filter(
            ForecastSnapshot.target_year == target_year,
            ForecastSnapshot.target_month == target_month
        )

        if vendor_id is not None:
            query = query.filter(ForecastSnapshot.vendor_id == vendor_id)

        if category_group is not None:
            query = query.filter(ForecastSnapshot.category_group == category_group)

        if order_type is not None:
            query = query.filter(ForecastSnapshot.order_type == order_type.value)

        rows = query.group_by(ForecastSnapshot.captured_at).order_by(ForecastSnapshot.captured_at).all()

        return [
            {
                'captured_at': captured_at,
                'total_value': int(total or 0),
                'snapshot_count': count
            }
            for captured_at, total, count in rows
        ]

    def get_key_history(
        self,
        vendor_code: str,
        sku: str,
        target_year: int,
        target_month: int
    ) -> List[ForecastSnapshot]:
        """Every capture of one forecast key, in capture order."""
        return self.session.query(ForecastSnapshot).filter(
            ForecastSnapshot.vendor_code == vendor_code,
            ForecastSnapshot.sku == sku,
            ForecastSnapshot.target_year == target_year,
            ForecastSnapshot.target_month == target_month
        ).order_by(ForecastSnapshot.captured_at).all()
