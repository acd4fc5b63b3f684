"""
Members Module

This module defines the member snapshot used by the proration engine and
the validation applied to member data at the system boundary.

Features:
    - Immutable member snapshots (join/leave dates at day precision)
    - Parsing from plain dicts (ISO dates, datetimes truncated to days)
    - Validation with descriptive error messages

Data Model:
    Member fields:
        - member_id: string (unique, opaque)
        - name: string
        - email: string or None
        - join_date: date (first day the member counts as present)
        - leave_date: date or None (None = still present)

Functions:
    validate_member: Check a single member's invariants.
    validate_members: Check a member list (invariants + unique ids).
    members_from_dicts: Parse and validate a list of member dicts.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from utils import to_day


@dataclass(frozen=True)
class Member:
    """
    Represents a member of the group at one point in time.

    Attributes:
        member_id (str): Unique identifier for the member.
        name (str): Display name.
        join_date (date): Day the member starts being counted present.
        leave_date (date | None): Last day present, or None if still present.
        email (str | None): Optional contact address, display only.
    """

    member_id: str
    name: str
    join_date: date
    leave_date: Optional[date] = None
    email: Optional[str] = None

    @property
    def has_left(self) -> bool:
        return self.leave_date is not None

    def to_dict(self) -> dict:
        """Convert member to a JSON-friendly dictionary."""
        return {
            "member_id": self.member_id,
            "name": self.name,
            "email": self.email,
            "join_date": self.join_date.isoformat(),
            "leave_date": self.leave_date.isoformat() if self.leave_date else None,
        }

    def __repr__(self) -> str:
        return f"Member(name='{self.name}', join='{self.join_date}', leave={self.leave_date})"

    @classmethod
    def from_dict(cls, data: dict) -> "Member":
        """Create a Member from a dictionary, normalizing dates to days."""
        leave_date = data.get("leave_date")
        return cls(
            member_id=str(data["member_id"]) if data.get("member_id") is not None else "",
            name=data.get("name") or "",
            email=data.get("email"),
            join_date=to_day(data.get("join_date")),
            leave_date=to_day(leave_date) if leave_date else None,
        )


def _validate_non_empty_string(value: str, field_name: str) -> bool:
    """
    Validate that a string is non-empty.

    Args:
        value: String to validate.
        field_name: Name of the field for error messages.

    Returns:
        bool: True if valid.

    Raises:
        ValueError: If string is empty or not a string.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string")
    return True


def validate_member(member: Member) -> bool:
    """
    Validate a member snapshot.

    Rules:
        - member_id is a non-empty string
        - join_date is a date
        - leave_date, if set, is a date on or after join_date

    Raises:
        ValueError: Naming the member and the invariant that failed.
    """
    _validate_non_empty_string(member.member_id, "member_id")

    if not isinstance(member.join_date, date):
        raise ValueError(f"Member {member.member_id}: join_date must be a date")

    if member.leave_date is not None:
        if not isinstance(member.leave_date, date):
            raise ValueError(f"Member {member.member_id}: leave_date must be a date or None")
        if member.leave_date < member.join_date:
            raise ValueError(
                f"Member {member.member_id}: leave_date ({member.leave_date}) "
                f"cannot be before join_date ({member.join_date})"
            )

    return True


def validate_members(members: list[Member]) -> bool:
    """Validate every member and reject duplicate member ids."""
    seen = set()
    for member in members:
        validate_member(member)
        if member.member_id in seen:
            raise ValueError(f"Duplicate member_id: {member.member_id}")
        seen.add(member.member_id)
    return True


def members_from_dicts(data: list[dict]) -> list[Member]:
    """
    Parse a list of member dicts into validated Member snapshots.

    Raises:
        ValueError: If any date is malformed or an invariant fails.
    """
    members = [Member.from_dict(d) for d in data]
    validate_members(members)
    return members
