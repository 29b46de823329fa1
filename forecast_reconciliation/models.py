# forecast_reconciliation/models.py
from sqlalchemy import (
    Column, Integer, BigInteger, String, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
import enum

Base = declarative_base()

class MatchStatus(enum.Enum):
    """Reconciliation state of an active belief.

    Values:
        UNMATCHED: no order found yet
        PARTIAL: an order exists but its quantity is below the forecast
        MATCHED: order quantity meets or exceeds the forecast
        EXPIRED: order-placement window closed without a full match
        VERIFIED_UNMATCHED: administrator confirmed the gap is a real non-order
        REMOVED: administrator discarded the row from reporting
    """
    UNMATCHED = 'unmatched'
    PARTIAL = 'partial'
    MATCHED = 'matched'
    EXPIRED = 'expired'
    VERIFIED_UNMATCHED = 'verified_unmatched'
    REMOVED = 'removed'

    def __str__(self):
        """Return the string value of the enum."""
        return self.value

    @classmethod
    def from_string(cls, value: str) -> 'MatchStatus':
        """Create a MatchStatus from a string value.

        Raises:
            ValueError if the string value is not valid
        """
        try:
            return cls(value)
        except ValueError:
            valid = ', '.join(s.value for s in cls)
            raise ValueError(f"Invalid match status: {value}. Valid values are: {valid}")

# Rows the matcher and the expiration sweeper are allowed to touch
OPEN_STATUSES = (MatchStatus.UNMATCHED, MatchStatus.PARTIAL)

# Administrative and batch transitions. The matcher never leaves MATCHED/PARTIAL.
MATCH_STATUS_TRANSITIONS = {
    MatchStatus.UNMATCHED: {MatchStatus.PARTIAL, MatchStatus.MATCHED, MatchStatus.EXPIRED,
                            MatchStatus.VERIFIED_UNMATCHED, MatchStatus.REMOVED},
    MatchStatus.PARTIAL: {MatchStatus.MATCHED, MatchStatus.EXPIRED, MatchStatus.UNMATCHED,
                          MatchStatus.REMOVED},
    MatchStatus.MATCHED: {MatchStatus.UNMATCHED, MatchStatus.REMOVED},
    MatchStatus.EXPIRED: {MatchStatus.UNMATCHED, MatchStatus.MATCHED, MatchStatus.VERIFIED_UNMATCHED,
                          MatchStatus.REMOVED},
    MatchStatus.VERIFIED_UNMATCHED: {MatchStatus.UNMATCHED, MatchStatus.REMOVED},
    MatchStatus.REMOVED: {MatchStatus.UNMATCHED},
}

class OrderType(enum.Enum):
    STANDARD = 'standard'
    MAKE_TO_ORDER = 'make-to-order'

    def __str__(self):
        return self.value

    @classmethod
    def from_string(cls, value: str) -> 'OrderType':
        """Create an OrderType from a string value ('standard', 'make-to-order', 'mto', 'regular')."""
        normalized = (value or '').strip().lower()
        if normalized in ('mto', 'spo', 'make_to_order'):
            return cls.MAKE_TO_ORDER
        if normalized in ('regular', ''):
            return cls.STANDARD
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Invalid order type: {value}. Valid values are: standard, make-to-order")

class VerificationStatus(enum.Enum):
    PASSED = 'passed'
    FAILED = 'failed'

    def __str__(self):
        return self.value

class Vendor(Base):
    """External vendor reference table. Read by the engine, written only by pending-import completion."""
    __tablename__ = 'vendors'

    id = Column(Integer, primary_key=True)
    vendor_code = Column(String(64), unique=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=func.now())

    aliases = relationship("VendorAlias", back_populates="vendor")

    @property
    def canonical_code(self) -> str:
        """Code used as the vendor part of snapshot and belief keys."""
        return self.vendor_code or f"VENDOR-{self.id}"

class VendorAlias(Base):
    __tablename__ = 'vendor_aliases'

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False)
    alias_name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=func.now())

    vendor = relationship("Vendor", back_populates="aliases")

class ForecastSnapshot(Base):
    """Immutable capture of one forecast cell. Never updated after insert."""
    __tablename__ = 'forecast_snapshots'

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False)
    vendor_code = Column(String(64), nullable=False)
    sku = Column(String(100), nullable=False)  # SKU, or collection name for make-to-order
    sku_description = Column(Text)
    brand = Column(String(64))
    product_class = Column(String(100))
    collection = Column(String(100))
    country_of_origin = Column(String(100))
    unit_cost = Column(BigInteger, default=0)  # minor currency units
    target_year = Column(Integer, nullable=False)
    target_month = Column(Integer, nullable=False)
    order_type = Column(String(20), nullable=False, default=OrderType.STANDARD.value)
    forecast_value = Column(BigInteger, default=0)  # minor currency units
    quantity = Column(Integer, default=0)
    captured_at = Column(Date, nullable=False)
    category_group = Column(String(20), nullable=False)
    imported_by = Column(String(255))
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        UniqueConstraint('vendor_code', 'sku', 'target_year', 'target_month', 'captured_at',
                         name='forecast_snapshots_unique_idx'),
        Index('idx_snapshot_target', 'target_year', 'target_month'),
        Index('idx_snapshot_capture', 'category_group', 'captured_at'),
    )

class ActiveBelief(Base):
    """Current forecast plus latest reconciliation outcome for one vendor/SKU/month key."""
    __tablename__ = 'active_beliefs'

    id = Column(Integer, primary_key=True)
    snapshot_id = Column(Integer, ForeignKey('forecast_snapshots.id', ondelete='SET NULL'))
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False)
    vendor_code = Column(String(64), nullable=False)
    sku = Column(String(100), nullable=False)
    sku_description = Column(Text)
    brand = Column(String(64))
    product_class = Column(String(100))
    collection = Column(String(100))
    target_year = Column(Integer, nullable=False)
    target_month = Column(Integer, nullable=False)
    order_type = Column(String(20), nullable=False, default=OrderType.STANDARD.value)
    category_group = Column(String(20), nullable=False)
    forecast_value = Column(BigInteger, default=0)
    quantity = Column(Integer, default=0)

    # Matching fields
    match_status = Column(String(20), nullable=False, default=MatchStatus.UNMATCHED.value)
    matched_order_ref = Column(String(255))
    matched_at = Column(DateTime)
    actual_quantity = Column(Integer)
    actual_value = Column(BigInteger)
    quantity_variance = Column(Integer)
    value_variance = Column(BigInteger)
    variance_pct = Column(Integer)  # NULL when undefined, never 0 as a stand-in

    # Expiration / administration
    expired_at = Column(DateTime)
    status_changed_by = Column(String(255))
    comment = Column(Text)
    commented_by = Column(String(255))
    commented_at = Column(DateTime)

    last_snapshot_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    vendor = relationship("Vendor")

    __table_args__ = (
        UniqueConstraint('vendor_code', 'sku', 'target_year', 'target_month',
                         name='active_beliefs_unique_idx'),
        Index('idx_belief_cohort', 'vendor_id', 'target_year', 'category_group'),
        Index('idx_belief_status', 'match_status'),
    )

    @property
    def status(self) -> MatchStatus:
        """Get the match status as an enum value."""
        return MatchStatus.from_string(self.match_status)

    @status.setter
    def status(self, value: MatchStatus):
        """Set the match status from an enum value."""
        self.match_status = value.value

    @property
    def order_type_enum(self) -> OrderType:
        return OrderType.from_string(self.order_type)

    def clear_match(self):
        """Reset every match-derived field."""
        self.matched_order_ref = None
        self.matched_at = None
        self.actual_quantity = None
        self.actual_value = None
        self.quantity_variance = None
        self.value_variance = None
        self.variance_pct = None

    def to_dict(self):
        return {
            'id': self.id,
            'vendorId': self.vendor_id,
            'vendorCode': self.vendor_code,
            'sku': self.sku,
            'skuDescription': self.sku_description,
            'brand': self.brand,
            'productClass': self.product_class,
            'collection': self.collection,
            'targetYear': self.target_year,
            'targetMonth': self.target_month,
            'orderType': self.order_type,
            'categoryGroup': self.category_group,
            'forecastValue': self.forecast_value,
            'quantity': self.quantity,
            'matchStatus': self.match_status,
            'matchedOrderRef': self.matched_order_ref,
            'matchedAt': self.matched_at.isoformat() if self.matched_at else None,
            'actualQuantity': self.actual_quantity,
            'actualValue': self.actual_value,
            'quantityVariance': self.quantity_variance,
            'valueVariance': self.value_variance,
            'variancePct': self.variance_pct,
            'lastSnapshotDate': self.last_snapshot_date.isoformat() if self.last_snapshot_date else None,
            'comment': self.comment,
            'commentedBy': self.commented_by,
        }

class ImportHistory(Base):
    """Audit row written for every committed forecast import."""
    __tablename__ = 'import_history'

    id = Column(Integer, primary_key=True)
    file_name = Column(String(255))
    category_group = Column(String(20), nullable=False)
    captured_at = Column(Date, nullable=False)
    imported_by = Column(String(255))
    status = Column(String(20), nullable=False, default='success')  # success, partial, failed
    records_imported = Column(Integer, default=0)
    rows_skipped = Column(Integer, default=0)

    # Pre-import / expected / post-import verification counts
    pre_import_beliefs = Column(Integer)
    expected_beliefs = Column(Integer)
    post_import_beliefs = Column(Integer)
    pre_import_snapshots = Column(Integer)
    expected_snapshots = Column(Integer)
    post_import_snapshots = Column(Integer)
    verification_status = Column(String(20))
    verification_details = Column(Text)

    error_message = Column(Text)
    created_at = Column(DateTime, default=func.now())
