# forecast_reconciliation/services/vendor_service.py
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from forecast_reconciliation.models import Vendor, VendorAlias
from forecast_reconciliation.core.vendor_resolution import VendorEntry, VendorIndex
from forecast_reconciliation.exceptions import VendorError, NotFoundError
from forecast_reconciliation.logging_setup import get_logger

logger = get_logger(__name__)

class VendorService:
    """Service for reading the vendor reference table and recording vendor aliases."""

    def __init__(self, session: Session):
        """Initialize the vendor service.

        Args:
            session: Database session
        """
        self.session = session

    def get_vendor(self, vendor_id: int) -> Optional[Vendor]:
        """Get a vendor by ID.

        Args:
            vendor_id: Vendor ID

        Returns:
            Vendor object or None if not found
        """
        return self.session.get(Vendor, vendor_id)

    def get_all_vendors(self) -> List[Vendor]:
        return self.session.query(Vendor).order_by(Vendor.name).all()

    def build_index(self) -> VendorIndex:
        """Build the in-memory vendor index used for resolving forecast and order rows.

        Returns:
            VendorIndex over every vendor and its aliases
        """
        aliases = {}
        for alias in self.session.query(VendorAlias).all():
            aliases.setdefault(alias.vendor_id, []).append(alias.alias_name)

        entries = [
            VendorEntry(
                vendor_id=vendor.id,
                vendor_code=vendor.vendor_code,
                name=vendor.name,
                aliases=aliases.get(vendor.id, [])
            )
            for vendor in self.session.query(Vendor).order_by(Vendor.id).all()
        ]

        logger.debug(f"Built vendor index with {len(entries)} vendors and {len(aliases)} aliased vendors")
        return VendorIndex(entries)

    def create_vendor(self, name: str, vendor_code: Optional[str] = None) -> Vendor:
        """Create a vendor record.

        Args:
            name: Vendor name
            vendor_code: Optional external vendor code

        Returns:
            Created Vendor object (flushed, so it has an ID)

        Raises:
            VendorError if the name is empty or the code is already in use
        """
        name = (name or '').strip()
        if not name:
            raise VendorError("Vendor name is required", code='VENDOR_NAME_REQUIRED')

        vendor_code = (vendor_code or '').strip().upper() or None
        if vendor_code:
            existing = self.session.query(Vendor).filter(Vendor.vendor_code == vendor_code).first()
            if existing:
                raise VendorError(
                    f"Vendor code {vendor_code} already belongs to {existing.name}",
                    code='VENDOR_CODE_EXISTS',
                    details={'vendor_id': existing.id}
                )

        vendor = Vendor(name=name, vendor_code=vendor_code)
        self.session.add(vendor)
        self.session.flush()

        logger.info(f"Created vendor {vendor.id} ({name}, code={vendor_code})")
        return vendor

    def add_alias(self, vendor_id: int, alias_name: str) -> Optional[VendorAlias]:
        """Record an alternate name for a vendor.

        Args:
            vendor_id: Vendor ID
            alias_name: Alternate name as it appears in source files

        Returns:
            VendorAlias object, or None if the name is empty or already known

        Raises:
            NotFoundError if the vendor does not exist
        """
        vendor = self.get_vendor(vendor_id)
        if not vendor:
            raise NotFoundError(f"Vendor {vendor_id} not found")

        alias_name = (alias_name or '').strip()
        if not alias_name or alias_name.lower() == (vendor.name or '').strip().lower():
            return None

        existing = self.session.query(VendorAlias).filter(
            VendorAlias.vendor_id == vendor_id,
            func.lower(VendorAlias.alias_name) == alias_name.lower()
        ).first()
        if existing:
            return None

        alias = VendorAlias(vendor_id=vendor_id, alias_name=alias_name)
        self.session.add(alias)
        self.session.flush()

        logger.info(f"Recorded alias '{alias_name}' for vendor {vendor_id}")
        return alias
