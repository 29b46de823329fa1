# forecast_reconciliation/services/pending_store.py
"""
Short-lived store for imports waiting on vendor review.

Entries live in process memory and expire after a fixed time to live. A
pending import therefore cannot survive a restart and cannot be completed
from another process; the operator re-uploads the file in that case.

Hosts build their store with PendingImportStore.create(), which also starts
the recurring sweep of expired entries.
"""
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from forecast_reconciliation.config import config
from forecast_reconciliation.core.vendor_resolution import VendorEntry
from forecast_reconciliation.records import NormalizedForecastRow
from forecast_reconciliation.logging_setup import get_logger

logger = get_logger(__name__)

@dataclass
class PendingImport:
    """An import held back because some rows named unknown vendors."""
    captured_at: date
    category_group: str
    resolved_rows: List[Tuple[VendorEntry, NormalizedForecastRow]]
    unresolved_groups: Dict[str, List[NormalizedForecastRow]]
    file_name: Optional[str] = None
    imported_by: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    rows_skipped: int = 0
    handle: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def unknown_vendors(self) -> List[Dict]:
        """Summary of each unresolved vendor group for operator review."""
        summary = []
        for key, rows in self.unresolved_groups.items():
            first = rows[0]
            summary.append({
                'key': key,
                'vendor_code': first.vendor_code,
                'vendor_name': first.vendor_name,
                'row_count': sum(row.source_rows for row in rows),
                'total_value': sum(row.forecast_value for row in rows)
            })
        summary.sort(key=lambda v: v['total_value'], reverse=True)
        return summary

class PendingImportStore:
    """Thread-safe in-memory map of pending import handles with expiry."""

    def __init__(self, ttl_minutes: Optional[int] = None, clock: Callable[[], datetime] = datetime.now):
        """Initialize the store.

        Args:
            ttl_minutes: Minutes a pending import stays valid (defaults to config)
            clock: Callable returning the current time
        """
        batch_config = config.batch_config
        self.ttl = timedelta(minutes=ttl_minutes or batch_config['pending_import_ttl_minutes'])
        self.clock = clock
        self._entries: Dict[str, PendingImport] = {}
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._cleanup_active = False
        self._sweep_interval = batch_config['pending_sweep_interval_minutes'] * 60

    @classmethod
    def create(cls, ttl_minutes: Optional[int] = None) -> 'PendingImportStore':
        """Build a store with its recurring cleanup already running."""
        store = cls(ttl_minutes=ttl_minutes)
        store.start_cleanup()
        return store

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def add(self, pending: PendingImport) -> str:
        """Store a pending import and return its handle."""
        now = self.clock()
        pending.handle = uuid.uuid4().hex
        pending.created_at = now
        pending.expires_at = now + self.ttl

        with self._lock:
            self._entries[pending.handle] = pending

        logger.info(f"Pending import {pending.handle} stored until {pending.expires_at:%Y-%m-%d %H:%M}")
        return pending.handle

    def get(self, handle: str) -> Optional[PendingImport]:
        """Get a pending import, or None if it is unknown or expired."""
        with self._lock:
            pending = self._entries.get(handle)
            if pending is None:
                return None
            if pending.expires_at <= self.clock():
                del self._entries[handle]
                logger.info(f"Pending import {handle} expired")
                return None
            return pending

    def discard(self, handle: str) -> bool:
        with self._lock:
            return self._entries.pop(handle, None) is not None

    def sweep_expired(self) -> int:
        """Drop every expired entry.

        Returns:
            Number of discarded entries
        """
        now = self.clock()
        with self._lock:
            expired = [handle for handle, pending in self._entries.items() if pending.expires_at <= now]
            for handle in expired:
                del self._entries[handle]

        if expired:
            logger.info(f"Discarded {len(expired)} expired pending imports")
        return len(expired)

    def start_cleanup(self, interval_minutes: Optional[int] = None):
        """Run sweep_expired on a recurring daemon timer."""
        if interval_minutes is not None:
            self._sweep_interval = interval_minutes * 60
        self.stop_cleanup()
        self._cleanup_active = True
        self._schedule()

    def stop_cleanup(self):
        self._cleanup_active = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self):
        self._timer = threading.Timer(self._sweep_interval, self._run_cleanup)
        self._timer.daemon = True
        self._timer.start()

    def _run_cleanup(self):
        try:
            self.sweep_expired()
        except Exception as e:
            logger.error(f"Pending import cleanup failed: {str(e)}", exc_info=True)
        if self._cleanup_active:
            self._schedule()
