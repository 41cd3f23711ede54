# estimator/estimates/editor.py
"""In-memory collection of editable line items.

The editor holds items exactly as the user typed them (strings allowed) and
only normalises them when they cross into storage shape through
``to_persistable_list``.  Each item gets a temporary id that is unrelated to
any database id.
"""

import itertools
from typing import Any, Iterable

from estimator.errors import ErrorCode, NotFoundError, ValidationError
from estimator.estimates import calc

EDITABLE_FIELDS = (
    'description',
    'quantity',
    'unit_price',
    'labor_hours',
    'labor_rate',
    'taxable',
)

# Storage defaults for values that are empty or fail to parse
NUMERIC_DEFAULTS = {
    'quantity': 1.0,
    'unit_price': 0.0,
    'labor_hours': 0.0,
    'labor_rate': 0.0,
}

_temp_ids = itertools.count(1)


def _new_temp_id() -> str:
    return f'tmp-{next(_temp_ids)}'


def blank_item() -> dict:
    return {
        'temp_id': _new_temp_id(),
        'description': '',
        'quantity': 1,
        'unit_price': 0,
        'labor_hours': 0,
        'labor_rate': 0,
        'taxable': True,
    }


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ('', '0', 'false', 'no', 'off')
    return bool(value)


class LineItemEditor:
    """Ordered, never-empty list of editable line items."""

    def __init__(self, items: Iterable[dict] | None = None):
        self.items: list[dict] = list(items or [])
        if not self.items:
            self.items.append(blank_item())

    @classmethod
    def from_rows(cls, rows: Iterable[Any]) -> 'LineItemEditor':
        """Seed an editor from payload dicts or stored item rows.

        Stored ids and owner links are dropped; every row gets a fresh
        temporary id.
        """
        items = []
        for row in rows:
            item = blank_item()
            for name in EDITABLE_FIELDS:
                value = row.get(name) if isinstance(row, dict) else getattr(row, name, None)
                if value is not None:
                    item[name] = value
            item['taxable'] = _as_bool(item['taxable'])
            items.append(item)
        return cls(items)

    def __len__(self):
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def _find(self, temp_id: str) -> dict:
        for item in self.items:
            if item['temp_id'] == temp_id:
                return item
        raise NotFoundError('Line item', temp_id)

    def add_item(self) -> dict:
        item = blank_item()
        self.items.append(item)
        return item

    def remove_item(self, temp_id: str) -> None:
        if len(self.items) == 1:
            raise ValidationError(
                'You must have at least one line item',
                field='items',
                code=ErrorCode.CANNOT_REMOVE,
            )
        item = self._find(temp_id)
        self.items.remove(item)

    def update_item(self, temp_id: str, field: str, value: Any) -> dict:
        if field not in EDITABLE_FIELDS:
            raise ValidationError(f'Unknown line item field: {field}', field=field)
        item = self._find(temp_id)
        item[field] = value
        return item

    def has_valid_item(self) -> bool:
        """True when some item has a description and a price or labor rate."""
        return any(
            str(i.get('description') or '').strip()
            and (calc.parse_number(i.get('unit_price')) > 0
                 or calc.parse_number(i.get('labor_rate')) > 0)
            for i in self.items
        )

    def totals(self, tax_rate_percent: Any, deposit_percent: Any) -> calc.Totals:
        """Live totals over the items as currently typed."""
        return calc.summarize(self.items, tax_rate_percent, deposit_percent)

    def to_persistable_list(self) -> list[dict]:
        """Items in storage shape.

        Rows without a description are dropped, sort_order becomes the index
        in the remaining order, and numbers are parsed with their defaults.
        """
        rows = []
        for item in self.items:
            description = str(item.get('description') or '').strip()
            if not description:
                continue
            row = {'description': description}
            for name, default in NUMERIC_DEFAULTS.items():
                row[name] = calc.parse_number(item.get(name), default)
            row['taxable'] = _as_bool(item.get('taxable', True))
            row['sort_order'] = len(rows)
            rows.append(row)
        return rows

    def to_list(self) -> list[dict]:
        return [dict(i, line_total=calc.line_total(i)) for i in self.items]
