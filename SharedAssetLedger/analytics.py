"""
Analytics Module

Group-level reporting over a member/item snapshot.

Features:
    - Total purchase value and total current (depreciated) value
    - Per-item depreciation status
    - Active member head-count
    - Rule-based warnings

Output - dict containing:
    - analytics: total_purchase_value, total_current_value,
      active_member_count, item_status
    - warnings: list of warning strings

Functions:
    generate_analytics: Generate analytics and warnings for a snapshot.
"""

from datetime import date
from decimal import Decimal

from allocation import calculate_balances
from depreciation import depreciation_window, is_fully_depreciated, value_at
from items import Item
from members import Member
from presence import present_on
from utils import format_currency, round_currency


def _item_status(item: Item, as_of: date) -> dict:
    _, window_end = depreciation_window(item)
    return {
        "item_id": item.item_id,
        "name": item.name,
        "price": round_currency(item.price),
        "current_value": round_currency(value_at(item, as_of)),
        "depreciation_end": window_end.isoformat(),
        "days_remaining": max(0, (window_end - as_of).days + 1),
        "fully_depreciated": is_fully_depreciated(item, as_of),
    }


def generate_analytics(
    members: list[Member],
    items: list[Item],
    as_of: date,
    expiry_warning_days: int = 30,
    symbol: str = "$",
) -> dict:
    """
    Generate analytics and warnings for a group.

    Warnings generated (rule-based):
        - An item has fully depreciated
        - An item finishes depreciating within expiry_warning_days
        - A member who has left still owes money
        - Nobody was present on an item's purchase date

    Args:
        members: Every member of the group.
        items: Every shared item.
        as_of: Day the report is for.
        expiry_warning_days: Look-ahead for the "finishing soon" warning.
        symbol: Currency symbol used in warning text.

    Returns:
        dict: {"analytics": {...}, "warnings": [...]}

    Raises:
        ValueError: If the snapshot is invalid.
    """
    balances = calculate_balances(members, items, as_of, cutoff=as_of)

    total_purchase = sum((item.price for item in items), Decimal("0"))
    total_current = sum((value_at(item, as_of) for item in items), Decimal("0"))
    item_status = [_item_status(item, as_of) for item in items]

    analytics = {
        "total_purchase_value": round_currency(total_purchase),
        "total_current_value": round_currency(total_current),
        "active_member_count": len(present_on(members, as_of)),
        "item_status": item_status,
    }

    warnings = []

    # Rules 1 and 2: depreciation status
    for item, status in zip(items, item_status):
        label = item.name or item.item_id
        if item.purchase_date > as_of:
            continue
        if status["fully_depreciated"]:
            warnings.append(f"Warning: '{label}' is fully depreciated (since {status['depreciation_end']})")
        elif status["days_remaining"] <= expiry_warning_days:
            warnings.append(
                f"Warning: '{label}' finishes depreciating in {status['days_remaining']} day(s) "
                f"(current value {format_currency(value_at(item, as_of), symbol)})"
            )

    # Rule 3: leavers who still owe the group
    for member in members:
        if member.leave_date is None or member.leave_date > as_of:
            continue
        net = balances[member.member_id].net_balance
        if round_currency(net) < 0:
            name = member.name or member.member_id
            warnings.append(f"Warning: {name} left on {member.leave_date} owing {format_currency(-net, symbol)}")

    # Rule 4: items nobody was around to buy
    for item in items:
        if not present_on(members, item.purchase_date):
            label = item.name or item.item_id
            warnings.append(f"Warning: no member was present on the purchase date of '{label}'")

    return {
        "analytics": analytics,
        "warnings": warnings,
    }
