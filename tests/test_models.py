"""
Unit tests for data models and the statistics aggregator
"""

import unittest
from decimal import Decimal

from data.aggregator import SalesAggregator, aggregate, parse_amount
from data.models import AggregateView, LogEntry, make_record
from utils.exceptions import EmptyInputError


class TestRecord(unittest.TestCase):
    """Test Record construction"""

    def test_record_is_read_only(self):
        record = make_record({'date': '2024-01-01', 'amount': 100})
        self.assertEqual(record['amount'], '100')
        with self.assertRaises(TypeError):
            record['amount'] = '5'

    def test_none_values_become_empty_strings(self):
        record = make_record({'product': None})
        self.assertEqual(record['product'], '')


class TestParseAmount(unittest.TestCase):

    def test_plain_and_grouped_numbers(self):
        self.assertEqual(parse_amount('50000'), Decimal('50000'))
        self.assertEqual(parse_amount('1,234.5'), Decimal('1234.5'))

    def test_bad_values_coerce_to_zero(self):
        for raw in (None, '', '  ', 'abc', 'NaN', 'Infinity', '-20'):
            self.assertEqual(parse_amount(raw), Decimal('0'), raw)


class TestSalesAggregator(unittest.TestCase):

    def setUp(self):
        self.records = [
            make_record({'date': '2024-01-01', 'product': 'A', 'category': 'Electronics', 'amount': '50000'}),
            make_record({'date': '2024-01-02', 'product': 'B', 'category': 'Food', 'amount': '3000'}),
        ]

    def test_totals_and_categories(self):
        view = aggregate(self.records)
        self.assertEqual(view.total, Decimal('53000'))
        self.assertEqual(view.average, Decimal('26500'))
        self.assertEqual(view.by_category, {'Electronics': Decimal('50000'), 'Food': Decimal('3000')})
        self.assertEqual(view.record_count, 2)
        self.assertEqual(view.missing_fields(), [])

    def test_max_min_and_top_product(self):
        view = aggregate(self.records)
        self.assertEqual(view.max_record.amount, Decimal('50000'))
        self.assertEqual(view.max_record.record['product'], 'A')
        self.assertEqual(view.min_record.record['product'], 'B')
        self.assertEqual(view.top_entity.name, 'A')
        self.assertEqual(view.top_entity.amount, Decimal('50000'))

    def test_dates_are_chronological(self):
        records = [
            make_record({'date': '2024-02-01', 'amount': '1'}),
            make_record({'date': '2024-01-15', 'amount': '2'}),
            make_record({'date': '2024-01-15', 'amount': '3'}),
        ]
        view = aggregate(records)
        self.assertEqual(list(view.by_date), ['2024-01-15', '2024-02-01'])
        self.assertEqual(view.by_date['2024-01-15'], Decimal('5'))

    def test_missing_fields_grouped_as_unknown(self):
        view = aggregate([make_record({'amount': '10'})])
        self.assertEqual(view.by_category, {'Unknown': Decimal('10')})
        self.assertEqual(view.top_entity.name, 'Unknown')

    def test_unparseable_amount_counts_as_zero(self):
        records = self.records + [make_record({'product': 'C', 'category': 'Food', 'amount': 'n/a'})]
        aggregator = SalesAggregator(records)
        self.assertEqual(aggregator.total(), Decimal('53000'))
        self.assertEqual(aggregator.min_record().record['product'], 'C')

    def test_empty_input_rejected(self):
        with self.assertRaises(EmptyInputError):
            SalesAggregator([])


class TestAggregateView(unittest.TestCase):

    def test_missing_fields_listed(self):
        view = AggregateView(total=Decimal('1'))
        missing = view.missing_fields()
        self.assertIn('average', missing)
        self.assertNotIn('total', missing)


def test_log_entry_format():
    from datetime import datetime
    entry = LogEntry(timestamp=datetime(2024, 1, 2, 3, 4, 5), message='hello', level='WARNING')
    assert entry.format() == '[2024-01-02 03:04:05] WARNING: hello'
