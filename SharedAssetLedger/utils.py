"""
Utilities Module

This module provides helpers shared by the proration engine and the API
layer of the shared asset ledger.

Features:
    - Day-precision date normalization (no time-of-day leakage)
    - Inclusive day iteration
    - Presentation rounding and currency formatting
    - Per-member balance explanations for transparency

Functions:
    to_day: Normalize a date, datetime or ISO string to a date.
    iter_days: Iterate an inclusive range of days.
    to_decimal: Convert a monetary input to Decimal without float drift.
    round_currency: Round a Decimal to cents for display.
    format_currency: Format amount with currency symbol.
    explain_member_balance: Get a readable breakdown for one member.
    explain_all_members: Get readable breakdowns for all members.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterator


ONE_DAY = timedelta(days=1)


def to_day(value) -> date:
    """
    Normalize a date-like value to a calendar date.

    Accepts:
        - date: returned unchanged
        - datetime: time component discarded
        - str: "YYYY-MM-DD", or an ISO datetime whose date part is used

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            day = datetime.strptime(text[:10], "%Y-%m-%d").date()
            if len(text) > 10:
                # Only the date part of a full ISO datetime matters
                if text[10] not in "T ":
                    raise ValueError(text)
                datetime.fromisoformat(text.replace("Z", "+00:00"))
            return day
        except ValueError:
            raise ValueError(f"Date must be in YYYY-MM-DD format, got: {value}")
    raise ValueError(f"Expected a date, got: {value!r}")


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every day from start to end, both inclusive."""
    day = start
    while day <= end:
        yield day
        day += ONE_DAY


def to_decimal(value) -> Decimal:
    """
    Convert a monetary amount to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary
    approximation.

    Raises:
        ValueError: If the value is not a number.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid monetary amount: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid monetary amount: {value!r}")


def round_currency(value: Decimal) -> float:
    """
    Round a Decimal to 2 decimal places and convert to float.

    Only used at the presentation boundary; the engine keeps full precision.

    Args:
        value: Decimal value to round.

    Returns:
        float: Rounded value as float.
    """
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_currency(amount, symbol: str = "$") -> str:
    """
    Format a monetary amount with the appropriate currency symbol.

    Negative amounts keep the sign in front of the symbol ("-$12.50").

    Args:
        amount: The amount to format (Decimal or float).
        symbol: Currency symbol (default: $).

    Returns:
        str: Formatted string like "$1,234.56".
    """
    value = round_currency(to_decimal(amount))
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def explain_member_balance(balance, items_by_id: dict, symbol: str = "$") -> dict:
    """
    Generate a readable explanation of one member's balance.

    For each item the member is involved with, shows what they put in
    (initial payment or buy-in), what they used, what they received from
    later joiners and the resulting net.

    Args:
        balance: MemberBalance from allocation.calculate_member_balance().
        items_by_id: Dict mapping item_id to Item, used for item names.
        symbol: Currency symbol for the formatted lines.

    Returns:
        dict: Explanation containing:
            - member_id: string
            - lines: list of human-readable strings, one per item
            - net_balance: formatted net balance
            - status: "owed", "owes" or "settled"
    """
    lines = []
    for breakdown in balance.items:
        item = items_by_id.get(breakdown.item_id)
        label = item.name if item is not None and item.name else breakdown.item_id

        if breakdown.is_late_joiner:
            entry = f"{label}: bought in for {format_currency(breakdown.buy_in_paid, symbol)}"
        else:
            entry = f"{label}: paid {format_currency(breakdown.initial_payment, symbol)} at purchase"

        entry += f", used {format_currency(breakdown.usage, symbol)}"
        if breakdown.buy_in_received:
            entry += f", received {format_currency(breakdown.buy_in_received, symbol)} in buy-ins"
        entry += f" (net {format_currency(breakdown.net_balance, symbol)})"
        lines.append(entry)

    net = round_currency(balance.net_balance)
    if net > 0:
        status = "owed"
    elif net < 0:
        status = "owes"
    else:
        status = "settled"

    return {
        "member_id": balance.member_id,
        "lines": lines,
        "net_balance": format_currency(balance.net_balance, symbol),
        "status": status,
    }


def explain_all_members(balances: dict, items: list, symbol: str = "$") -> list[dict]:
    """
    Generate explanations for all members, ordered by member_id.

    Args:
        balances: Output from allocation.calculate_balances().
        items: List of Item snapshots.
        symbol: Currency symbol.

    Returns:
        list[dict]: One explanation per member.
    """
    items_by_id = {item.item_id: item for item in items}
    explanations = [
        explain_member_balance(balance, items_by_id, symbol)
        for balance in balances.values()
    ]
    explanations.sort(key=lambda x: x["member_id"])
    return explanations
