"""
Tests for the command-line entry point.
"""
import json
import os
import tempfile
import unittest
from datetime import date
from unittest.mock import patch

import pytest

from forecast_reconciliation.db import db
from forecast_reconciliation.main import build_parser, load_order_lines, main


class TestCli(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_url = f"sqlite:///{os.path.join(self.tmp.name, 'recon.db')}"

    def tearDown(self):
        db.dispose()
        self.tmp.cleanup()

    def write_orders(self, records):
        path = os.path.join(self.tmp.name, 'orders.json')
        with open(path, 'w') as f:
            json.dump(records, f)
        return path

    def test_load_order_lines(self):
        path = self.write_orders([
            {'order_number': 1001, 'vendor_name': 'Acme Home', 'sku': '12345',
             'quantity': '60', 'value': '130000', 'ship_date': '2026-03-12'},
            {'order_number': 'PO-2', 'vendor_name': 'Acme Home', 'sku': 'SWATCH', 'value': 0,
             'ship_date': None, 'is_sample': True},
        ])

        lines = load_order_lines(path)

        self.assertEqual(lines[0].order_number, '1001')
        self.assertEqual(lines[0].quantity, 60)
        self.assertEqual(lines[0].value, 130000)
        self.assertEqual(lines[0].ship_date, date(2026, 3, 12))
        self.assertIsNone(lines[1].ship_date)
        self.assertTrue(lines[1].is_sample)

    def test_parser(self):
        args = build_parser().parse_args(['accuracy', '--year', '2026', '--horizon', '6_month'])
        self.assertEqual((args.command, args.year, args.horizon), ('accuracy', 2026, '6_month'))

        with pytest.raises(SystemExit):
            build_parser().parse_args(['accuracy', '--year', '2026', '--horizon', '1_year'])

    def test_no_command(self):
        with patch('sys.stdout'):
            self.assertEqual(main([]), 1)

    def test_commands_against_file_database(self):
        orders = self.write_orders([])

        with patch('builtins.print') as printed:
            self.assertEqual(main(['--db-url', self.db_url, 'init-db']), 0)
            self.assertEqual(main(['--db-url', self.db_url, 'beliefs', '--year', '2026']), 0)
            self.assertEqual(main(['--db-url', self.db_url, 'summary', '--year', '2026']), 0)
            self.assertEqual(main(['--db-url', self.db_url, 'match', '--year', '2026', '--orders', orders]), 0)
            self.assertEqual(main(['--db-url', self.db_url, 'sweep', '--today', '2026-01-02']), 0)
            self.assertEqual(main(['--db-url', self.db_url, 'drift', '--year', '2026', '--month', '3']), 0)
            self.assertEqual(main(['--db-url', self.db_url, 'churn', '--year', '2026']), 0)
            self.assertEqual(main(['--db-url', self.db_url, 'accuracy', '--year', '2026']), 0)

        self.assertIn("\nTotal: 0", [str(c.args[0]) for c in printed.call_args_list if c.args])

    def test_invalid_filter_is_reported(self):
        main(['--db-url', self.db_url, 'init-db'])

        with patch('builtins.print'):
            self.assertEqual(main(['--db-url', self.db_url, 'beliefs', '--status', 'pending']), 1)


if __name__ == '__main__':
    pytest.main([__file__])
