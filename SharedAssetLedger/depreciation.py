"""
Depreciation Module

Straight-line depreciation of shared items, at day granularity.

An item is worth its full price on its purchase date and loses
price / depreciation_days every day until it reaches exactly zero on
purchase_date + depreciation_days. There is no salvage value.

Functions:
    depreciation_window: Inclusive day range over which value declines.
    value_at: Remaining value of an item on a given day.
    per_day_value: Constant daily cost of an item.
    is_fully_depreciated: Whether an item is worthless on a given day.

All functions assume a validated Item (depreciation_days >= 1).
"""

from datetime import date, timedelta
from decimal import Decimal

from items import Item


def depreciation_window(item: Item) -> tuple[date, date]:
    """
    Return the (start, end_inclusive) days of an item's depreciation.

    A 1-day schedule starts and ends on the purchase date.
    """
    start = item.purchase_date
    end_inclusive = start + timedelta(days=item.depreciation_days - 1)
    return start, end_inclusive


def per_day_value(item: Item) -> Decimal:
    """Daily cost of an item: price / depreciation_days."""
    return item.price / Decimal(item.depreciation_days)


def value_at(item: Item, on_date: date) -> Decimal:
    """
    Remaining value of an item on a given day.

    Returns:
        Decimal: price before (and on) the purchase date, zero once the
        schedule has fully elapsed, otherwise the linearly remaining value.
    """
    if on_date < item.purchase_date:
        return item.price

    days_elapsed = (on_date - item.purchase_date).days
    if days_elapsed >= item.depreciation_days:
        return Decimal("0")

    remaining_days = item.depreciation_days - days_elapsed
    # Multiply before dividing so whole-number results stay exact
    return item.price * Decimal(remaining_days) / Decimal(item.depreciation_days)


def is_fully_depreciated(item: Item, on_date: date) -> bool:
    return (on_date - item.purchase_date).days >= item.depreciation_days
