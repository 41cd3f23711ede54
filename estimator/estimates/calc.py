# estimator/estimates/calc.py
"""Money and quantity arithmetic for line items and estimate totals.

Inputs are whatever the user typed: numbers, numeric strings, empty strings
or junk.  Anything that does not parse to a finite number counts as 0, so
these functions never raise on bad input.  Values are kept as raw floats;
rounding to cents is left to whoever formats them for display.

Items may be mappings (request payloads, editor rows) or objects with the
same attribute names (``EstimateItem`` / ``EstimateTemplateItem`` rows).
"""

import math
from typing import Any, Iterable, NamedTuple


def parse_number(value: Any, default: float = 0.0) -> float:
    """Return ``value`` as a float, or ``default`` when it does not parse."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def is_taxable(item: Any) -> bool:
    return bool(_field(item, 'taxable', True))


def line_total(item: Any) -> float:
    """quantity * unit_price + labor_hours * labor_rate"""
    qty   = parse_number(_field(item, 'quantity'))
    price = parse_number(_field(item, 'unit_price'))
    hours = parse_number(_field(item, 'labor_hours'))
    rate  = parse_number(_field(item, 'labor_rate'))
    return qty * price + hours * rate


def subtotal(items: Iterable[Any]) -> float:
    """Sum of every line total, taxable or not."""
    return sum((line_total(i) for i in items), 0.0)


def taxable_total(items: Iterable[Any]) -> float:
    return sum((line_total(i) for i in items if is_taxable(i)), 0.0)


def tax_amount(items: Iterable[Any], tax_rate_percent: Any) -> float:
    """Tax on the taxable base only; non-taxable lines contribute nothing."""
    return taxable_total(items) * parse_number(tax_rate_percent) / 100


def total(subtotal_value: float, tax: float) -> float:
    return subtotal_value + tax


def deposit_amount(total_value: float, deposit_percent: Any) -> float:
    return total_value * parse_number(deposit_percent) / 100


class Totals(NamedTuple):
    subtotal: float
    tax: float
    total: float
    deposit_amount: float

    def to_dict(self):
        return self._asdict()


def summarize(items: Iterable[Any], tax_rate_percent: Any, deposit_percent: Any) -> Totals:
    """Compute the four stored figures of an estimate in one pass."""
    items = list(items)
    sub = subtotal(items)
    tax = tax_amount(items, tax_rate_percent)
    grand = total(sub, tax)
    return Totals(sub, tax, grand, deposit_amount(grand, deposit_percent))
