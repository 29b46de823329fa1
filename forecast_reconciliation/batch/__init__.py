from .reconciliation_job import (
    run_matching_job, run_expiration_job, run_pending_cleanup, run_reconciliation_job, registry
)

__all__ = [
    'run_matching_job',
    'run_expiration_job',
    'run_pending_cleanup',
    'run_reconciliation_job',
    'registry'
]
