# forecast_reconciliation/services/import_service.py
import dataclasses
import json
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from forecast_reconciliation.config import config
from forecast_reconciliation.models import ImportHistory, VerificationStatus
from forecast_reconciliation.records import ForecastRow, NormalizedForecastRow, VendorDecision
from forecast_reconciliation.core.vendor_resolution import VendorEntry, VendorIndex, resolve_vendor
from forecast_reconciliation.services.vendor_service import VendorService
from forecast_reconciliation.services.snapshot_service import SnapshotService
from forecast_reconciliation.services.belief_service import BeliefService
from forecast_reconciliation.services.pending_store import PendingImport, PendingImportStore
from forecast_reconciliation.utils.validation import normalize_forecast_row
from forecast_reconciliation.utils.date_utils import resolve_capture_date
from forecast_reconciliation.exceptions import (
    ReconciliationError, PendingImportNotFoundError, NotFoundError
)
from forecast_reconciliation.logging_setup import logger as log_manager, get_logger

logger = get_logger(__name__)

ResolvedRow = Tuple[VendorEntry, NormalizedForecastRow]

class ForecastImportService:
    """Importer: archives forecast rows and replaces active belief cohorts.

    Each (vendor, target year) pair is written in its own nested transaction,
    so a failing pair rolls back alone while the other pairs commit.
    """

    def __init__(
        self,
        session: Session,
        pending_store: PendingImportStore,
        rules: Optional[Dict] = None
    ):
        """Initialize the import service.

        Args:
            session: Database session
            pending_store: Store holding imports waiting on vendor review
            rules: Optional reconciliation rules (defaults to config)
        """
        self.session = session
        self.pending_store = pending_store
        self.rules = rules or config.reconciliation_rules
        self.max_messages = config.batch_config['max_messages']
        self.vendor_service = VendorService(session)
        self.snapshot_service = SnapshotService(session)
        self.belief_service = BeliefService(session, self.rules)

    def _cap(self, messages: List[str]) -> List[str]:
        if len(messages) <= self.max_messages:
            return list(messages)
        hidden = len(messages) - self.max_messages
        return messages[:self.max_messages] + [f"... and {hidden} more"]

    def _failure(self, message: str, warnings: List[str], rows_skipped: int = 0, error: Optional[Dict] = None) -> Dict:
        result = {
            'success': False,
            'status': 'failed',
            'message': message,
            'records_imported': 0,
            'rows_skipped': rows_skipped,
            'messages': self._cap(warnings)
        }
        if error:
            result['error'] = error
        return result

    def import_forecast(
        self,
        rows: Iterable[ForecastRow],
        category_group: Optional[str] = None,
        captured_at: Union[date, datetime, str, None] = None,
        file_name: Optional[str] = None,
        imported_by: Optional[str] = None
    ) -> Dict:
        """Import a batch of parsed forecast rows.

        Rows that fail validation are skipped with a warning. When every
        remaining row resolves to a known vendor the batch is committed right
        away; otherwise nothing is written and the batch is held as a pending
        import for operator review.

        Args:
            rows: Rows from the spreadsheet parser
            category_group: Category group tag (defaults to config)
            captured_at: Capture date; falls back to the date in file_name, then today
            file_name: Source file name
            imported_by: Operator importing the file

        Returns:
            Dictionary with import results; status is ``success``, ``partial``,
            ``failed`` or ``needs_review``
        """
        category_group = (category_group or self.rules['default_category_group']).upper()
        capture_date = resolve_capture_date(captured_at, file_name)

        log_info = log_manager.batch_start_log(
            'forecast_import',
            {'file_name': file_name, 'category_group': category_group, 'captured_at': str(capture_date)}
        )

        warnings = []
        normalized = []
        rows_skipped = 0
        for index, row in enumerate(rows, start=1):
            result, problems = normalize_forecast_row(row, self.rules)
            if result is None:
                rows_skipped += 1
                warnings.append(f"Row {index}: skipped ({'; '.join(problems)})")
                continue
            normalized.append(result)

        if not normalized:
            result = self._failure("No valid forecast rows to import", warnings, rows_skipped)
            log_manager.batch_end_log(log_info, False, {'rows_skipped': rows_skipped})
            return result

        vendor_index = self.vendor_service.build_index()
        resolved, unresolved = self._resolve_rows(vendor_index, normalized)

        if unresolved:
            pending = PendingImport(
                captured_at=capture_date,
                category_group=category_group,
                resolved_rows=resolved,
                unresolved_groups=unresolved,
                file_name=file_name,
                imported_by=imported_by,
                warnings=warnings,
                rows_skipped=rows_skipped
            )
            handle = self.pending_store.add(pending)
            unknown = pending.unknown_vendors()

            logger.warning(f"Import of {file_name or 'forecast batch'} needs review: {len(unknown)} unknown vendors")
            log_manager.batch_end_log(log_info, True, {'status': 'needs_review', 'unknown_vendors': len(unknown)})

            return {
                'success': True,
                'status': 'needs_review',
                'pending_handle': handle,
                'expires_at': pending.expires_at,
                'unknown_vendors': unknown,
                'resolved_rows': len(resolved),
                'records_imported': 0,
                'rows_skipped': rows_skipped,
                'messages': self._cap(warnings)
            }

        result = self._commit(resolved, capture_date, category_group, file_name, imported_by, warnings, rows_skipped)
        log_manager.batch_end_log(log_info, result['success'], {
            'status': result['status'], 'records_imported': result['records_imported']
        })
        return result

    def _resolve_rows(
        self,
        index: VendorIndex,
        rows: List[NormalizedForecastRow]
    ) -> Tuple[List[ResolvedRow], Dict[str, List[NormalizedForecastRow]]]:
        resolved = []
        unresolved = {}
        cache = {}

        for row in rows:
            cache_key = (row.vendor_code, row.vendor_name)
            if cache_key not in cache:
                entry, strategy = resolve_vendor(index, row.vendor_code, row.vendor_name)
                if entry is not None and strategy != 'code':
                    logger.debug(f"Resolved vendor {row.vendor_name!r} to {entry.vendor_id} by {strategy}")
                cache[cache_key] = entry

            entry = cache[cache_key]
            if entry is None:
                unresolved.setdefault(row.vendor_group_key, []).append(row)
            else:
                resolved.append((entry, row))

        return resolved, unresolved

    def complete_pending_import(
        self,
        handle: str,
        decisions: Dict[str, Union[VendorDecision, Dict]]
    ) -> Dict:
        """Finish a pending import with the operator's vendor decisions.

        Args:
            handle: Pending import handle
            decisions: Decision per unknown vendor key (``create_new``,
                       ``map_to_existing`` or ``skip``); groups without a
                       decision are skipped

        Returns:
            Dictionary with import results
        """
        pending = self.pending_store.get(handle)
        if pending is None:
            error = PendingImportNotFoundError(details={'handle': handle})
            logger.warning(f"Completion requested for unknown or expired pending import {handle}")
            return self._failure(error.message, [], error=error.to_dict())

        log_info = log_manager.batch_start_log('complete_pending_import', {'handle': handle})

        warnings = list(pending.warnings)
        rows_skipped = pending.rows_skipped
        resolved = list(pending.resolved_rows)
        vendors_created = 0
        aliases_recorded = 0

        for key, rows in pending.unresolved_groups.items():
            first = rows[0]
            label = first.vendor_name or first.vendor_code or key
            group_rows = sum(row.source_rows for row in rows)

            decision = decisions.get(key)
            if isinstance(decision, dict):
                try:
                    decision = VendorDecision(**decision)
                except (TypeError, ValueError) as e:
                    logger.warning(f"Invalid decision for vendor {label}: {str(e)}")
                    warnings.append(f"Vendor {label}: invalid decision, {group_rows} rows skipped")
                    rows_skipped += group_rows
                    continue

            if decision is None or decision.action == VendorDecision.SKIP:
                if decision is None:
                    warnings.append(f"Vendor {label}: no decision given, {group_rows} rows skipped")
                else:
                    warnings.append(f"Vendor {label}: skipped by operator ({group_rows} rows)")
                rows_skipped += group_rows
                continue

            try:
                if decision.action == VendorDecision.CREATE_NEW:
                    vendor = self.vendor_service.create_vendor(
                        decision.vendor_name or first.vendor_name or first.vendor_code,
                        decision.vendor_code or first.vendor_code
                    )
                    vendors_created += 1
                elif decision.action == VendorDecision.MAP_TO_EXISTING:
                    if not decision.vendor_id:
                        raise NotFoundError("A vendor must be chosen to map to")
                    vendor = self.vendor_service.get_vendor(decision.vendor_id)
                    if vendor is None:
                        raise NotFoundError(f"Vendor {decision.vendor_id} not found")
                    if first.vendor_name and self.vendor_service.add_alias(vendor.id, first.vendor_name):
                        aliases_recorded += 1
                else:
                    raise ReconciliationError(f"Unknown vendor decision '{decision.action}'")
            except ReconciliationError as e:
                warnings.append(f"Vendor {label}: {e.message}, {group_rows} rows skipped")
                rows_skipped += group_rows
                continue

            entry = VendorEntry(vendor_id=vendor.id, vendor_code=vendor.vendor_code, name=vendor.name)
            resolved.extend((entry, row) for row in rows)

        if not resolved:
            self.pending_store.discard(handle)
            result = self._failure("No rows left to import after vendor review", warnings, rows_skipped)
            log_manager.batch_end_log(log_info, False, {'rows_skipped': rows_skipped})
            return result

        result = self._commit(
            resolved, pending.captured_at, pending.category_group,
            pending.file_name, pending.imported_by, warnings, rows_skipped
        )
        result['vendors_created'] = vendors_created
        result['aliases_recorded'] = aliases_recorded
        self.pending_store.discard(handle)

        log_manager.batch_end_log(log_info, result['success'], {
            'status': result['status'], 'records_imported': result['records_imported']
        })
        return result

    def cancel_pending_import(self, handle: str) -> Dict:
        """Drop a pending import without writing anything."""
        if self.pending_store.discard(handle):
            logger.info(f"Pending import {handle} cancelled")
            return {'success': True, 'message': 'Pending import cancelled'}

        error = PendingImportNotFoundError(details={'handle': handle})
        return {'success': False, 'message': error.message, 'error': error.to_dict()}

    def _aggregate(self, rows: List[ResolvedRow]) -> Dict[Tuple[int, int], List[ResolvedRow]]:
        """Sum duplicate rows per (vendor, item, year, month) and group them per (vendor, year)."""
        merged = {}
        for entry, row in rows:
            key = (entry.vendor_id, row.item_key.lower(), row.target_year, row.target_month)
            if key in merged:
                existing = merged[key][1]
                existing.forecast_value += row.forecast_value
                existing.quantity += row.quantity
                existing.source_rows += row.source_rows
            else:
                merged[key] = (entry, dataclasses.replace(row))

        cohorts = {}
        for (vendor_id, _, target_year, _), pair in merged.items():
            cohorts.setdefault((vendor_id, target_year), []).append(pair)
        return cohorts

    def _commit(
        self,
        rows: List[ResolvedRow],
        captured_at: date,
        category_group: str,
        file_name: Optional[str],
        imported_by: Optional[str],
        warnings: List[str],
        rows_skipped: int
    ) -> Dict:
        cohorts = self._aggregate(rows)

        pre_beliefs = self.belief_service.count()
        pre_snapshots = self.snapshot_service.count()
        belief_delta = 0
        snapshot_delta = 0

        succeeded = []
        failed = []
        records_imported = 0

        for (vendor_id, target_year), cohort in sorted(cohorts.items()):
            try:
                with self.session.begin_nested():
                    removed_beliefs = self.belief_service.delete_cohort(vendor_id, target_year, category_group)
                    removed_snapshots = self.snapshot_service.delete_capture(
                        vendor_id, target_year, category_group, captured_at
                    )
                    for entry, row in cohort:
                        snapshot = self.snapshot_service.append(entry, row, captured_at, category_group, imported_by)
                        self.belief_service.add_from_snapshot(snapshot)
                    self.session.flush()
            except Exception as e:
                logger.error(f"Cohort replace failed for vendor {vendor_id}, year {target_year}: {str(e)}")
                failed.append({'vendor_id': vendor_id, 'target_year': target_year, 'error': str(e)})
                warnings.append(f"Vendor {vendor_id} / {target_year}: rolled back ({str(e)})")
                continue

            belief_delta += len(cohort) - removed_beliefs
            snapshot_delta += len(cohort) - removed_snapshots
            records_imported += len(cohort)
            succeeded.append({
                'vendor_id': vendor_id,
                'target_year': target_year,
                'records': len(cohort),
                'replaced_beliefs': removed_beliefs
            })

        post_beliefs = self.belief_service.count()
        post_snapshots = self.snapshot_service.count()
        verification = {
            'pre_import_beliefs': pre_beliefs,
            'expected_beliefs': pre_beliefs + belief_delta,
            'post_import_beliefs': post_beliefs,
            'pre_import_snapshots': pre_snapshots,
            'expected_snapshots': pre_snapshots + snapshot_delta,
            'post_import_snapshots': post_snapshots
        }
        passed = (verification['expected_beliefs'] == post_beliefs
                  and verification['expected_snapshots'] == post_snapshots)
        verification['status'] = (VerificationStatus.PASSED if passed else VerificationStatus.FAILED).value

        if not passed:
            logger.warning(f"Import verification failed: {verification}")

        if not failed:
            status = 'success'
        elif succeeded:
            status = 'partial'
        else:
            status = 'failed'

        history = ImportHistory(
            file_name=file_name,
            category_group=category_group,
            captured_at=captured_at,
            imported_by=imported_by,
            status=status,
            records_imported=records_imported,
            rows_skipped=rows_skipped,
            pre_import_beliefs=pre_beliefs,
            expected_beliefs=verification['expected_beliefs'],
            post_import_beliefs=post_beliefs,
            pre_import_snapshots=pre_snapshots,
            expected_snapshots=verification['expected_snapshots'],
            post_import_snapshots=post_snapshots,
            verification_status=verification['status'],
            verification_details=json.dumps(verification),
            error_message='; '.join(f['error'] for f in failed) or None
        )
        self.session.add(history)
        self.session.flush()

        logger.info(
            f"Imported {records_imported} forecast records for {category_group} captured {captured_at} "
            f"({len(succeeded)} cohorts ok, {len(failed)} failed, {rows_skipped} rows skipped)"
        )

        return {
            'success': bool(succeeded),
            'status': status,
            'import_id': history.id,
            'captured_at': captured_at,
            'category_group': category_group,
            'records_imported': records_imported,
            'rows_skipped': rows_skipped,
            'cohorts_succeeded': succeeded,
            'cohorts_failed': failed,
            'verification': verification,
            'messages': self._cap(warnings)
        }
