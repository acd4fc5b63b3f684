"""
Allocation Module

This module is the proration engine: it works out, for every member and
every shared item, how much of the item's cost the member is responsible
for given when they joined and left.

Features:
    - Equal split of the price among original purchasers
    - Buy-in for members who join while an item still has value
    - Day-weighted usage (each day's cost split among members present)
    - Redistribution of buy-ins to the incumbents at the joiner's join date
    - Per-item breakdowns and per-member aggregation
    - Refund owed to (or by) a member on leaving

Data Model:
    Input - members: list of members.Member snapshots
    Input - items: list of items.Item snapshots
    Input - as_of: today (usage of members who have not left accrues to it)
    Input - cutoff: optional report date capping everyone's usage

    Output - ItemBreakdown (one member, one item):
        - initial_share: price / original purchasers, or buy-in if late
        - usage: sum of daily cost shares over days present
        - buy_in_received: shares of later joiners' buy-ins
        - net_balance: initial_share - usage + buy_in_received
            - Positive = member is owed money
            - Negative = member owes money

    Output - MemberBalance: the same fields summed over items, with the
    initial share split into initial_payment and buy_in_paid.

Functions:
    is_involved: Eligibility of a member for an item.
    original_purchasers: Members who split the price at purchase.
    late_joiners: Members who bought in after purchase.
    incumbents_at: Members a late joiner's buy-in is paid to.
    buy_in_amount: What a late joiner pays for an item.
    calculate_item_breakdown: Breakdown for one member and one item.
    calculate_member_balance: Aggregate over items for one member.
    calculate_balances: Aggregate for every member.
    calculate_leave_refund: Net balance settled on a member's leave date.

Notes:
    - Inputs are never mutated; identical snapshots give identical results
    - Uses Decimal throughout; rounding happens only in to_dict(rounded=True)
    - Never reads the clock; callers pass as_of
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from depreciation import depreciation_window, per_day_value, value_at
from items import Item, validate_items
from members import Member, validate_members
from presence import daily_present_counts, is_present, present_on
from utils import iter_days, round_currency

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _money(value: Decimal, rounded: bool):
    return round_currency(value) if rounded else value


@dataclass(frozen=True)
class ItemBreakdown:
    """One member's position on one item."""

    member_id: str
    item_id: str
    is_late_joiner: bool
    initial_share: Decimal
    usage: Decimal
    buy_in_received: Decimal

    @property
    def initial_payment(self) -> Decimal:
        return ZERO if self.is_late_joiner else self.initial_share

    @property
    def buy_in_paid(self) -> Decimal:
        return self.initial_share if self.is_late_joiner else ZERO

    @property
    def net_balance(self) -> Decimal:
        return self.initial_share - self.usage + self.buy_in_received

    def to_dict(self, rounded: bool = False) -> dict:
        return {
            "member_id": self.member_id,
            "item_id": self.item_id,
            "is_late_joiner": self.is_late_joiner,
            "initial_payment": _money(self.initial_payment, rounded),
            "usage": _money(self.usage, rounded),
            "buy_in_paid": _money(self.buy_in_paid, rounded),
            "buy_in_received": _money(self.buy_in_received, rounded),
            "net_balance": _money(self.net_balance, rounded),
        }


@dataclass(frozen=True)
class MemberBalance:
    """A member's balance summed over every item they are involved with."""

    member_id: str
    initial_payment: Decimal = ZERO
    usage: Decimal = ZERO
    buy_in_paid: Decimal = ZERO
    buy_in_received: Decimal = ZERO
    net_balance: Decimal = ZERO
    items: tuple = field(default_factory=tuple)

    def to_dict(self, rounded: bool = False) -> dict:
        return {
            "member_id": self.member_id,
            "initial_payment": _money(self.initial_payment, rounded),
            "usage": _money(self.usage, rounded),
            "buy_in_paid": _money(self.buy_in_paid, rounded),
            "buy_in_received": _money(self.buy_in_received, rounded),
            "net_balance": _money(self.net_balance, rounded),
            "items": [b.to_dict(rounded=rounded) for b in self.items],
        }


# =============================================================================
# Eligibility and classification
# =============================================================================

def is_involved(member: Member, item: Item) -> bool:
    """
    Check whether a member has any stake in an item.

    A member is not involved when:
        - they left on or before the purchase date, OR
        - they joined after the item had fully depreciated
    """
    if member.leave_date is not None and member.leave_date <= item.purchase_date:
        return False

    _, window_end = depreciation_window(item)
    if member.join_date > window_end:
        return False

    return True


def is_late_joiner(member: Member, item: Item) -> bool:
    """A member joining on the purchase date is an original purchaser."""
    return member.join_date > item.purchase_date


def original_purchasers(item: Item, members: list[Member]) -> list[Member]:
    """
    Members who split the item's price at purchase time.

    Joined on or before the purchase date and still in the group after it.
    This set is fixed at purchase; later joins and leaves do not change it.
    """
    return [
        m for m in members
        if not is_late_joiner(m, item) and is_involved(m, item)
    ]


def late_joiners(item: Item, members: list[Member]) -> list[Member]:
    """Members who joined after purchase but before full depreciation."""
    return [
        m for m in members
        if is_late_joiner(m, item) and is_involved(m, item)
    ]


def incumbents_at(joiner: Member, members: list[Member]) -> list[Member]:
    """Members present on the joiner's join date who joined strictly before them."""
    return [
        m for m in present_on(members, joiner.join_date)
        if m.join_date < joiner.join_date
    ]


def buy_in_amount(item: Item, joiner: Member, members: list[Member]) -> Decimal:
    """
    Buy-in a late joiner pays for an item.

    The item's remaining value on the join date, split among everyone
    present that day including the joiner.
    """
    remaining = value_at(item, joiner.join_date)
    if remaining <= 0:
        return ZERO

    # The joiner is present on their own join day, so this is at least 1
    present_count = len(present_on(members, joiner.join_date))
    return remaining / Decimal(present_count)


# =============================================================================
# Per-item calculation
# =============================================================================

def _initial_share(member: Member, item: Item, members: list[Member]) -> Decimal:
    if is_late_joiner(member, item):
        return buy_in_amount(item, member, members)

    purchasers = original_purchasers(item, members)
    return item.price / Decimal(len(purchasers))


def _usage_window(
    member: Member,
    item: Item,
    as_of: date,
    cutoff: Optional[date] = None,
) -> tuple[date, date]:
    """
    Days over which a member's usage of an item accrues.

    Starts at the later of join and purchase dates. Ends at the earliest of
    the depreciation window end, the leave date (as_of if the member has
    not left) and the cutoff. A future leave date is honoured even when it
    lies after as_of; pass cutoff to stop a report at a given day.
    """
    window_start, window_end = depreciation_window(item)

    start = max(member.join_date, window_start)
    end = min(window_end, member.leave_date if member.leave_date is not None else as_of)
    if cutoff is not None:
        end = min(end, cutoff)

    return start, end


def _usage(
    member: Member,
    item: Item,
    members: list[Member],
    as_of: date,
    cutoff: Optional[date],
    present_counts: Optional[dict],
) -> Decimal:
    """Sum of the member's daily cost shares over their effective window."""
    start, end = _usage_window(member, item, as_of, cutoff)
    if start > end:
        return ZERO

    if present_counts is None:
        present_counts = daily_present_counts(members, start, end)

    daily_cost = per_day_value(item)
    usage = ZERO
    for day in iter_days(start, end):
        count = present_counts.get(day)
        if count is None:
            count = len(present_on(members, day))
        if count > 0:
            usage += daily_cost / Decimal(count)

    return usage


def _buy_in_received(member: Member, item: Item, members: list[Member]) -> Decimal:
    """Shares of later joiners' buy-ins that flow to this member."""
    received = ZERO

    for joiner in late_joiners(item, members):
        if joiner.member_id == member.member_id:
            continue
        # Only incumbents: joined strictly before and present that day
        if member.join_date >= joiner.join_date:
            continue
        if not is_present(member, joiner.join_date):
            continue

        incumbents = incumbents_at(joiner, members)
        share = buy_in_amount(item, joiner, members) / Decimal(len(incumbents))
        logger.debug(
            "Member %s receives %s of %s's buy-in for item %s",
            member.member_id, share, joiner.member_id, item.item_id,
        )
        received += share

    return received


def calculate_item_breakdown(
    member: Member,
    item: Item,
    members: list[Member],
    as_of: date,
    present_counts: Optional[dict] = None,
    cutoff: Optional[date] = None,
) -> Optional[ItemBreakdown]:
    """
    Calculate one member's breakdown for one item.

    Args:
        member: The member to calculate for.
        item: The item.
        members: Every member of the group (used for head-counts).
        as_of: Today. Usage of a member who has not left accrues up to it;
            a member with a leave date accrues up to the leave date, even
            one after as_of.
        present_counts: Optional day -> present head-count mapping covering
            the item's window, as returned by presence.daily_present_counts.
        cutoff: Optional last day for usage of every member (report date).

    Returns:
        ItemBreakdown, or None if the member has no involvement with the item.
    """
    if not is_involved(member, item):
        logger.debug("Member %s not involved with item %s", member.member_id, item.item_id)
        return None

    return ItemBreakdown(
        member_id=member.member_id,
        item_id=item.item_id,
        is_late_joiner=is_late_joiner(member, item),
        initial_share=_initial_share(member, item, members),
        usage=_usage(member, item, members, as_of, cutoff, present_counts),
        buy_in_received=_buy_in_received(member, item, members),
    )


# =============================================================================
# Aggregation
# =============================================================================

def _item_present_counts(
    item: Item,
    members: list[Member],
    as_of: date,
    cutoff: Optional[date],
) -> dict:
    window_start, _ = depreciation_window(item)
    # Cover the latest day any member's usage can reach
    last_day = max(
        (_usage_window(m, item, as_of, cutoff)[1] for m in members),
        default=window_start,
    )
    return daily_present_counts(members, window_start, last_day)


def _aggregate(member_id: str, breakdowns: list[ItemBreakdown]) -> MemberBalance:
    return MemberBalance(
        member_id=member_id,
        initial_payment=sum((b.initial_payment for b in breakdowns), ZERO),
        usage=sum((b.usage for b in breakdowns), ZERO),
        buy_in_paid=sum((b.buy_in_paid for b in breakdowns), ZERO),
        buy_in_received=sum((b.buy_in_received for b in breakdowns), ZERO),
        net_balance=sum((b.net_balance for b in breakdowns), ZERO),
        items=tuple(breakdowns),
    )


def _require_member(member: Member, members: list[Member]) -> None:
    if not any(m.member_id == member.member_id for m in members):
        raise ValueError(f"Member {member.member_id} is not part of the member snapshot")


def calculate_member_balance(
    member: Member,
    items: list[Item],
    members: list[Member],
    as_of: date,
    cutoff: Optional[date] = None,
) -> MemberBalance:
    """
    Calculate a member's balance across all items.

    Items the member has no involvement with are left out of the breakdown.

    Raises:
        ValueError: If the snapshot is invalid or the member is not in it.
    """
    validate_members(members)
    validate_items(items)
    _require_member(member, members)

    breakdowns = []
    for item in items:
        breakdown = calculate_item_breakdown(member, item, members, as_of, cutoff=cutoff)
        if breakdown is not None:
            breakdowns.append(breakdown)

    return _aggregate(member.member_id, breakdowns)


def calculate_balances(
    members: list[Member],
    items: list[Item],
    as_of: date,
    cutoff: Optional[date] = None,
) -> dict:
    """
    Calculate balances for every member of the group.

    Per-day present counts are computed once per item and shared across
    members.

    Args:
        members: Every member of the group.
        items: Every shared item.
        as_of: Today; open-ended memberships accrue usage up to it.
        cutoff: Optional last day for everyone's usage.

    Returns:
        dict: member_id -> MemberBalance, in member order.

    Raises:
        ValueError: If the snapshot is invalid.
    """
    validate_members(members)
    validate_items(items)

    per_member = {m.member_id: [] for m in members}

    for item in items:
        counts = _item_present_counts(item, members, as_of, cutoff)
        for member in members:
            breakdown = calculate_item_breakdown(member, item, members, as_of, counts, cutoff)
            if breakdown is not None:
                per_member[member.member_id].append(breakdown)

    logger.debug("Calculated balances for %d members over %d items", len(members), len(items))

    return {
        member_id: _aggregate(member_id, breakdowns)
        for member_id, breakdowns in per_member.items()
    }


def calculate_leave_refund(
    member: Member,
    items: list[Item],
    members: list[Member],
) -> Optional[Decimal]:
    """
    Amount settled with a member when they leave.

    This is the member's net balance with usage accrued up to their leave
    date. Positive means the group refunds them; negative means they pay.

    Returns:
        Decimal, or None if the member has not left.
    """
    if member.leave_date is None:
        return None

    balance = calculate_member_balance(member, items, members, as_of=member.leave_date)
    return balance.net_balance
