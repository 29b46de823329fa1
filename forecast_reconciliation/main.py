import argparse
import json
import sys
from typing import List, Optional

from tabulate import tabulate

from forecast_reconciliation.config import config
from forecast_reconciliation.db import db, session_scope
from forecast_reconciliation.logging_setup import logger, get_logger
from forecast_reconciliation.records import OrderLine
from forecast_reconciliation.utils.date_utils import convert_to_date
from forecast_reconciliation.utils.math_utils import parse_number, to_minor_units
from forecast_reconciliation.exceptions import ReconciliationError

def init_application(connection_string: Optional[str] = None):
    """Initialize application components."""
    db.initialize(connection_string)

    log = logger.app_logger
    log.info("Forecast Reconciliation Engine initialized")
    log.info(f"Using database: {config.get('DATABASE', 'url') or config.get('DATABASE', 'engine')}")
    return True

def _money(value) -> str:
    if value is None:
        return '-'
    return f"{value / 100:,.2f}"

def _pct(value) -> str:
    return '-' if value is None else f"{value}%"

def load_order_lines(path: str) -> List[OrderLine]:
    """Load purchase-order lines from a JSON export.

    Each object needs order_number, vendor_name, sku, quantity, value (minor
    units) and ship_date (ISO); program_description, vendor_id and is_sample
    are optional.
    """
    with open(path) as f:
        records = json.load(f)

    lines = []
    for record in records:
        lines.append(OrderLine(
            order_number=str(record.get('order_number', '')),
            vendor_name=record.get('vendor_name'),
            sku=record.get('sku'),
            quantity=int(record.get('quantity') or 0),
            value=to_minor_units(parse_number(record.get('value'))),
            ship_date=convert_to_date(record.get('ship_date')),
            program_description=record.get('program_description'),
            vendor_id=record.get('vendor_id'),
            is_sample=bool(record.get('is_sample', False))
        ))
    return lines

def cmd_init_db(args):
    db.initialize(args.db_url, create_tables=True)
    print("Database tables created")
    return 0

def cmd_sweep(args):
    from forecast_reconciliation.batch.reconciliation_job import run_expiration_job

    today = convert_to_date(args.today) if args.today else None
    results = run_expiration_job(today=today, target_year=args.year, vendor_id=args.vendor_id)
    if not results.get('success'):
        print(f"Sweep failed: {results.get('message') or results.get('error')}")
        return 1

    print(tabulate([[results['processed'], results['expired'], results['still_open']]],
                   headers=['Open rows', 'Expired', 'Still open']))
    for error in results['errors']:
        print(f"  ! {error}")
    return 0

def cmd_match(args):
    from forecast_reconciliation.batch.reconciliation_job import run_matching_job

    lines = load_order_lines(args.orders)
    results = run_matching_job(args.year, order_lines=lines, vendor_id=args.vendor_id)
    if not results.get('success'):
        print(f"Matching failed: {results.get('message') or results.get('error')}")
        return 1

    print(tabulate(
        [[results['processed'], results['matched'], results['partial'], results['no_orders'],
          results['stale_partial'], results['variances']]],
        headers=['Processed', 'Matched', 'Partial', 'No orders', 'Stale partial', 'Variances']
    ))
    for error in results['errors']:
        print(f"  ! {error}")
    return 0

def cmd_beliefs(args):
    from forecast_reconciliation.services.belief_service import BeliefService

    with session_scope() as session:
        beliefs = BeliefService(session).list_beliefs(
            target_year=args.year,
            vendor_id=args.vendor_id,
            target_month=args.month,
            status=args.status,
            order_type=args.order_type,
            brand=args.brand
        )
        table = [
            [b.id, b.vendor_code, b.sku, f"{b.target_year}-{b.target_month:02d}", b.order_type,
             _money(b.forecast_value), b.quantity, b.match_status, b.matched_order_ref or '',
             _money(b.actual_value), _pct(b.variance_pct)]
            for b in beliefs[:args.limit]
        ]

    print(tabulate(table, headers=['ID', 'Vendor', 'SKU', 'Target', 'Type', 'Forecast', 'Qty',
                                   'Status', 'Orders', 'Actual', 'Var %']))
    print(f"\nTotal: {len(beliefs)}")
    return 0

def cmd_summary(args):
    from forecast_reconciliation.services.belief_service import BeliefService
    from forecast_reconciliation.services.expiration_service import ExpirationService

    with session_scope() as session:
        summary = BeliefService(session).get_validation_summary(
            target_year=args.year, vendor_id=args.vendor_id, brand=args.brand
        )
        expired = ExpirationService(session).get_expired_summary(target_year=args.year, vendor_id=args.vendor_id)

    print(tabulate(sorted(summary.items()), headers=['Measure', 'Count']))
    print()
    print(tabulate(sorted(expired.items()), headers=['Expired rows', 'Value']))
    return 0

def cmd_drift(args):
    from forecast_reconciliation.services.accuracy_service import AccuracyService

    with session_scope() as session:
        drift = AccuracyService(session).get_drift(
            args.year, args.month, vendor_id=args.vendor_id, order_type=args.order_type
        )

    table = [[p['capturedAt'], _money(p['totalValue']), p['snapshotCount']] for p in drift['series']]
    print(tabulate(table, headers=['Captured', 'Forecast total', 'Snapshots']))
    print(f"\nChurn score: {drift['churnScore']}")
    return 0

def cmd_churn(args):
    from forecast_reconciliation.services.accuracy_service import AccuracyService

    with session_scope() as session:
        trend = AccuracyService(session).get_churn_trend(
            args.year, vendor_id=args.vendor_id, order_type=args.order_type
        )

    table = [[t['month'], t['churnScore'], t['captureCount'], t['snapshotCount']] for t in trend]
    print(tabulate(table, headers=['Month', 'Churn', 'Captures', 'Snapshots']))
    return 0

def cmd_accuracy(args):
    from forecast_reconciliation.services.accuracy_service import AccuracyService
    from forecast_reconciliation.services.order_aggregate_service import OrderAggregateService

    lines = load_order_lines(args.orders) if args.orders else []
    with session_scope() as session:
        aggregates, _ = OrderAggregateService(session).build_aggregates(lines, target_year=args.year)
        report = AccuracyService(session).get_horizon_accuracy(
            args.year, args.horizon, aggregates,
            order_type=args.order_type, vendor_id=args.vendor_id
        )

    table = [
        [m['month'], _money(m['projected']), _money(m['actual']), _money(m['varianceDollar']),
         _pct(m['variancePct']), m['snapshotDate'] or '-', 'yes' if m['windowClosed'] else 'no']
        for m in report['months']
    ]
    print(tabulate(table, headers=['Month', 'Projected', 'Actual', 'Variance', 'Var %', 'Snapshot', 'Closed']))
    totals = report['totals']
    print(f"\nYear: projected {_money(totals['projected'])}, actual {_money(totals['actual'])}, "
          f"variance {_pct(totals['variancePct'])}")
    return 0

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Forecast Reconciliation Engine')
    parser.add_argument('--db-url', type=str, help='Database URL (overrides configuration)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    init_parser = subparsers.add_parser('init-db', help='Create the database tables')
    init_parser.set_defaults(func=cmd_init_db)

    sweep_parser = subparsers.add_parser('sweep', help='Expire beliefs past their order deadline')
    sweep_parser.add_argument('--today', type=str, help='Evaluation date (YYYY-MM-DD)')
    sweep_parser.add_argument('--year', type=int, help='Target year')
    sweep_parser.add_argument('--vendor-id', type=int, help='Vendor ID')
    sweep_parser.set_defaults(func=cmd_sweep)

    match_parser = subparsers.add_parser('match', help='Match beliefs against purchase-order lines')
    match_parser.add_argument('--year', type=int, required=True, help='Target year')
    match_parser.add_argument('--orders', type=str, required=True, help='JSON file with purchase-order lines')
    match_parser.add_argument('--vendor-id', type=int, help='Vendor ID')
    match_parser.set_defaults(func=cmd_match)

    beliefs_parser = subparsers.add_parser('beliefs', help='List active beliefs')
    beliefs_parser.add_argument('--year', type=int, help='Target year')
    beliefs_parser.add_argument('--month', type=int, help='Target month')
    beliefs_parser.add_argument('--vendor-id', type=int, help='Vendor ID')
    beliefs_parser.add_argument('--status', type=str, help='Match status')
    beliefs_parser.add_argument('--order-type', type=str, help='standard or make-to-order')
    beliefs_parser.add_argument('--brand', type=str, help='Brand code')
    beliefs_parser.add_argument('--limit', type=int, default=100, help='Maximum rows to print')
    beliefs_parser.set_defaults(func=cmd_beliefs)

    summary_parser = subparsers.add_parser('summary', help='Validation summary counts')
    summary_parser.add_argument('--year', type=int, help='Target year')
    summary_parser.add_argument('--vendor-id', type=int, help='Vendor ID')
    summary_parser.add_argument('--brand', type=str, help='Brand code')
    summary_parser.set_defaults(func=cmd_summary)

    drift_parser = subparsers.add_parser('drift', help='Forecast drift across capture dates for one month')
    drift_parser.add_argument('--year', type=int, required=True, help='Target year')
    drift_parser.add_argument('--month', type=int, required=True, help='Target month')
    drift_parser.add_argument('--vendor-id', type=int, help='Vendor ID')
    drift_parser.add_argument('--order-type', type=str, help='standard or make-to-order')
    drift_parser.set_defaults(func=cmd_drift)

    churn_parser = subparsers.add_parser('churn', help='Churn score per month of a year')
    churn_parser.add_argument('--year', type=int, required=True, help='Target year')
    churn_parser.add_argument('--vendor-id', type=int, help='Vendor ID')
    churn_parser.add_argument('--order-type', type=str, help='standard or make-to-order')
    churn_parser.set_defaults(func=cmd_churn)

    accuracy_parser = subparsers.add_parser('accuracy', help='Forecast accuracy at a horizon')
    accuracy_parser.add_argument('--year', type=int, required=True, help='Target year')
    accuracy_parser.add_argument('--horizon', type=str, default='90_day', choices=['90_day', '6_month'],
                                 help='Forecast horizon')
    accuracy_parser.add_argument('--orders', type=str, help='JSON file with purchase-order lines')
    accuracy_parser.add_argument('--vendor-id', type=int, help='Vendor ID')
    accuracy_parser.add_argument('--order-type', type=str, help='standard or make-to-order')
    accuracy_parser.set_defaults(func=cmd_accuracy)

    return parser

def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    log = get_logger('cli')
    try:
        if args.command != 'init-db':
            init_application(args.db_url)
        return args.func(args)
    except ReconciliationError as e:
        log.error(str(e))
        print(f"Error: {e}")
        return 1

if __name__ == "__main__":
    sys.exit(main())
