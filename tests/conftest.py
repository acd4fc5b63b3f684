"""Pytest configuration for the shared asset ledger tests

WHAT: Shared member/item snapshots used across engine and API tests
WHY: The same handful of groups (two founders, a late joiner, a leaver)
     exercise most of the allocation rules
"""

import pytest
from datetime import date
from decimal import Decimal

from items import Item
from members import Member


@pytest.fixture
def fridge():
    """1200 fridge bought 2024-01-01, depreciated over 3 years."""
    return Item(
        item_id="fridge",
        name="Fridge",
        price=Decimal("1200"),
        purchase_date=date(2024, 1, 1),
        depreciation_days=1095,
    )


@pytest.fixture
def founders():
    """Two members who joined on the fridge's purchase date."""
    return [
        Member(member_id="a", name="Alex", join_date=date(2024, 1, 1)),
        Member(member_id="b", name="Blair", join_date=date(2024, 1, 1)),
    ]


@pytest.fixture
def late_joiner():
    """Member joining 182 days after the fridge was bought."""
    return Member(member_id="c", name="Casey", join_date=date(2024, 7, 1))


@pytest.fixture
def short_item():
    """100 item bought 2024-01-01 that depreciates over 10 days."""
    return Item(
        item_id="kettle",
        name="Kettle",
        price=Decimal("100"),
        purchase_date=date(2024, 1, 1),
        depreciation_days=10,
    )
