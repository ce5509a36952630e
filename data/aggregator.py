"""
Statistics aggregator for the sales report tool
Reduces records into the AggregateView the report is drawn from
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Sequence

from config.settings import FieldMap
from data.models import AggregateView, Record, RecordAmount, TopEntity
from utils.exceptions import EmptyInputError

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = 'Unknown'
ZERO = Decimal('0')


def parse_amount(raw: Optional[str]) -> Decimal:
    """Parse an amount string; missing, malformed, non-finite or negative values count as zero"""
    if raw is None:
        return ZERO
    text = str(raw).strip().replace(',', '')
    if not text:
        return ZERO
    try:
        value = Decimal(text)
    except InvalidOperation:
        return ZERO
    if not value.is_finite() or value < 0:
        return ZERO
    return value


def _date_sort_key(label: str):
    try:
        return (0, datetime.fromisoformat(label.replace('/', '-')).replace(tzinfo=None), label)
    except ValueError:
        return (1, datetime.max, label)


class SalesAggregator:
    """Computes totals, averages and grouped sums over sales records"""

    def __init__(self, records: Sequence[Record], field_map: Optional[FieldMap] = None):
        if not records:
            raise EmptyInputError("Sales data is empty")
        self.records = list(records)
        self.fields = field_map or FieldMap()
        self._amounts = [parse_amount(r.get(self.fields.amount)) for r in self.records]

    def total(self) -> Decimal:
        return sum(self._amounts, ZERO)

    def average(self) -> Decimal:
        return self.total() / len(self.records)

    def max_record(self) -> RecordAmount:
        best = 0
        for i, amount in enumerate(self._amounts):
            if amount > self._amounts[best]:
                best = i
        return RecordAmount(self.records[best], self._amounts[best])

    def min_record(self) -> RecordAmount:
        worst = 0
        for i, amount in enumerate(self._amounts):
            if amount < self._amounts[worst]:
                worst = i
        return RecordAmount(self.records[worst], self._amounts[worst])

    def _group_by(self, field_name: str) -> Dict[str, Decimal]:
        sums: Dict[str, Decimal] = {}
        for record, amount in zip(self.records, self._amounts):
            key = (record.get(field_name) or '').strip() or UNKNOWN_LABEL
            sums[key] = sums.get(key, ZERO) + amount
        return sums

    def by_category(self) -> Dict[str, Decimal]:
        return self._group_by(self.fields.category)

    def by_product(self) -> Dict[str, Decimal]:
        return self._group_by(self.fields.product)

    def by_date(self) -> Dict[str, Decimal]:
        """Daily sums in chronological order"""
        sums = self._group_by(self.fields.date)
        return {label: sums[label] for label in sorted(sums, key=_date_sort_key)}

    def top_entity(self) -> TopEntity:
        products = self.by_product()
        name = max(products, key=lambda k: products[k])
        return TopEntity(name=name, amount=products[name])

    def build_view(self, label: str = 'Sales') -> AggregateView:
        view = AggregateView(
            label=label,
            record_count=len(self.records),
            total=self.total(),
            average=self.average(),
            max_record=self.max_record(),
            min_record=self.min_record(),
            by_category=self.by_category(),
            by_date=self.by_date(),
            by_product=self.by_product(),
            top_entity=self.top_entity(),
        )
        logger.info(f"Aggregated {view.record_count} records: total={view.total}, categories={len(view.by_category)}")
        return view


def aggregate(records: Sequence[Record], field_map: Optional[FieldMap] = None, label: str = 'Sales') -> AggregateView:
    """Shortcut for SalesAggregator(records).build_view()"""
    return SalesAggregator(records, field_map).build_view(label)
