"""
Presence Module

Answers "who was in the group on day D?".

A member is present on a day if:
    - join_date <= day
    - AND (leave_date is None OR leave_date >= day)

Presence is always evaluated per day: a member who joins after an item's
purchase is absent for every day before their join_date.

Functions:
    is_present: Check one member on one day.
    present_on: Filter a member list to those present on a day.
    daily_present_counts: Present head-count for every day in a range.
"""

from datetime import date

from members import Member
from utils import iter_days


def is_present(member: Member, day: date) -> bool:
    """
    Check if a member is present on a given day.

    Args:
        member: Member snapshot.
        day: Calendar date (already normalized to a date).

    Returns:
        bool: True if the member counts as in the group that day.
    """
    # Not joined yet
    if day < member.join_date:
        return False

    # Left before this day (the leave day itself still counts)
    if member.leave_date is not None and day > member.leave_date:
        return False

    return True


def present_on(members: list[Member], day: date) -> list[Member]:
    """Return the members present on the given day, in input order."""
    return [m for m in members if is_present(m, day)]


def daily_present_counts(members: list[Member], start: date, end: date) -> dict[date, int]:
    """
    Count present members for every day in [start, end].

    Computed once per item and shared across members so the allocation
    loop does not rescan the member list for each member.

    Returns:
        dict: day -> number of members present. Empty if start > end.
    """
    counts = {}
    for day in iter_days(start, end):
        counts[day] = sum(1 for m in members if is_present(m, day))
    return counts
