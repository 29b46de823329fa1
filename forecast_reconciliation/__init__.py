from .config import config
from .db import db, session_scope
from .logging_setup import logger, get_logger
from .exceptions import (
    ReconciliationError, ForecastImportError, PendingImportNotFoundError, BeliefStateError, NotFoundError
)

__all__ = [
    'config',
    'db',
    'session_scope',
    'logger',
    'get_logger',
    'ReconciliationError',
    'ForecastImportError',
    'PendingImportNotFoundError',
    'BeliefStateError',
    'NotFoundError'
]
