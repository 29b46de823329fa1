# forecast_reconciliation/db/__init__.py
from .connection import DatabaseConnection, create_db_engine, db, session_scope

__all__ = [
    'db',
    'session_scope',
    'create_db_engine',
    'DatabaseConnection'
]
