from .vendor_service import VendorService
from .snapshot_service import SnapshotService
from .belief_service import BeliefService
from .pending_store import PendingImport, PendingImportStore
from .import_service import ForecastImportService
from .matching_service import MatchingService
from .order_aggregate_service import OrderAggregateService
from .expiration_service import ExpirationService
from .accuracy_service import AccuracyService

__all__ = [
    'VendorService',
    'SnapshotService',
    'BeliefService',
    'PendingImport',
    'PendingImportStore',
    'ForecastImportService',
    'MatchingService',
    'OrderAggregateService',
    'ExpirationService',
    'AccuracyService'
]
