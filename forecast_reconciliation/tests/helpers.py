"""
Shared fixtures for the reconciliation tests.
"""
from datetime import date

from sqlalchemy.orm import sessionmaker

from forecast_reconciliation.db.connection import create_db_engine
from forecast_reconciliation.models import Base, Vendor, ActiveBelief
from forecast_reconciliation.records import ForecastRow


def make_session():
    """Fresh in-memory SQLite database and a session bound to it."""
    engine = create_db_engine('sqlite://')
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autoflush=False)
    return engine, Session()


def add_vendor(session, name, vendor_code=None, vendor_id=None):
    vendor = Vendor(id=vendor_id, name=name, vendor_code=vendor_code)
    session.add(vendor)
    session.flush()
    return vendor


def forecast_row(**overrides):
    """A valid standard forecast row: 50 units at 20.00 for March 2026."""
    values = {
        'vendor_code': 'V7',
        'vendor_name': 'Acme Home',
        'sku': '12345',
        'target_year': 2026,
        'target_month': 3,
        'forecast_value': 100000,
        'unit_cost': 2000,
        'brand': 'CB',
        'sku_description': 'Oak side table',
        'product_class': 'TABLES',
        'lead_time_marker': '120',
    }
    values.update(overrides)
    return ForecastRow(**values)


def add_belief(session, **overrides):
    """An unmatched standard belief for vendor 7: 50 units, 1,000.00 in March 2026."""
    values = {
        'vendor_id': 7,
        'vendor_code': 'V7',
        'sku': '12345',
        'brand': 'CB',
        'target_year': 2026,
        'target_month': 3,
        'order_type': 'standard',
        'category_group': 'FURNITURE',
        'forecast_value': 100000,
        'quantity': 50,
        'match_status': 'unmatched',
        'last_snapshot_date': date(2025, 11, 5),
    }
    values.update(overrides)
    belief = ActiveBelief(**values)
    session.add(belief)
    session.flush()
    return belief
