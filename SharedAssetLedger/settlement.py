"""
Settlement Module

This module turns buy-ins into concrete payments between members.

Features:
    - List every buy-in payment (late joiner -> incumbent, per item)
    - Net payments per member and minimize the number of transfers
    - Handle rounding safely

Data Model:
    Output - buy-in transfers:
        - item_id: string
        - from_member: string (late joiner who pays)
        - to_member: string (incumbent who receives)
        - amount: Decimal

    Output - settlements:
        - from_member: string (debtor who pays)
        - to_member: string (creditor who receives)
        - amount: float (rounded to 2 decimal places)

Functions:
    buy_in_transfers: List buy-in payments for a snapshot.
    optimize_settlements: Net transfers into minimal settlement transactions.
"""

from collections import defaultdict
from decimal import Decimal

from allocation import buy_in_amount, incumbents_at, late_joiners
from items import Item, validate_items
from members import Member, validate_members
from utils import round_currency


# Threshold for ignoring tiny rounding differences
EPSILON = Decimal("0.01")


def buy_in_transfers(members: list[Member], items: list[Item]) -> list[dict]:
    """
    List the payments that settle every buy-in.

    Each late joiner's buy-in for an item is split equally among the
    incumbents present on their join date, giving one transfer per
    incumbent. A joiner with no incumbents (everyone else joined the same
    day or later) produces no transfers for that item.

    Raises:
        ValueError: If the snapshot is invalid.
    """
    validate_members(members)
    validate_items(items)

    transfers = []
    for item in items:
        for joiner in late_joiners(item, members):
            amount = buy_in_amount(item, joiner, members)
            incumbents = incumbents_at(joiner, members)
            if amount <= 0 or not incumbents:
                continue

            share = amount / Decimal(len(incumbents))
            for incumbent in incumbents:
                transfers.append({
                    "item_id": item.item_id,
                    "from_member": joiner.member_id,
                    "to_member": incumbent.member_id,
                    "amount": share,
                })

    return transfers


def optimize_settlements(transfers: list[dict]) -> list[dict]:
    """
    Net a list of transfers into a minimal list of settlement transactions.

    Uses a greedy algorithm:
        1. Net every member's position (received - paid)
        2. Sort debtors by largest debt first, creditors by largest credit first
        3. Match the largest debtor with the largest creditor, settling the
           smaller of the two amounts, until all balances are cleared

    Args:
        transfers: Dicts with from_member, to_member and amount.

    Returns:
        list[dict]: from_member, to_member, amount (rounded to cents).

    Notes:
        - Ignores residue below one cent
        - Does NOT modify the input transfers
    """
    net = defaultdict(Decimal)
    for transfer in transfers:
        amount = Decimal(str(transfer["amount"]))
        net[transfer["from_member"]] -= amount
        net[transfer["to_member"]] += amount

    # Amounts are stored as positive numbers on both sides
    debtors = [[member_id, -value] for member_id, value in net.items() if value < -EPSILON]
    creditors = [[member_id, value] for member_id, value in net.items() if value > EPSILON]

    debtors.sort(key=lambda x: x[1], reverse=True)
    creditors.sort(key=lambda x: x[1], reverse=True)

    settlements = []
    debtor_idx = 0
    creditor_idx = 0

    while debtor_idx < len(debtors) and creditor_idx < len(creditors):
        debtor_id, debt_amount = debtors[debtor_idx]
        creditor_id, credit_amount = creditors[creditor_idx]

        settlement_amount = min(debt_amount, credit_amount)

        if settlement_amount >= EPSILON:
            settlements.append({
                "from_member": debtor_id,
                "to_member": creditor_id,
                "amount": round_currency(settlement_amount),
            })

        debtors[debtor_idx][1] = debt_amount - settlement_amount
        creditors[creditor_idx][1] = credit_amount - settlement_amount

        if debtors[debtor_idx][1] < EPSILON:
            debtor_idx += 1
        if creditors[creditor_idx][1] < EPSILON:
            creditor_idx += 1

    return settlements
