"""Tests for the proration engine.

WHAT: Initial shares, buy-ins, day-weighted usage and net balances
WHY: These numbers are what members actually pay or get refunded

Scenarios:
  - A: two founders share a fridge, nobody leaves
  - B: a third member buys in half a year later
  - C: a member leaves before an item is bought
  - D: an item fully depreciates before a member leaves
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from allocation import (
    buy_in_amount,
    calculate_balances,
    calculate_item_breakdown,
    calculate_leave_refund,
    calculate_member_balance,
    is_involved,
    original_purchasers,
)
from items import Item
from members import Member
from utils import round_currency


PER_DAY = Decimal("1200") / Decimal(1095)
VALUE_AT_JOIN = Decimal("1200") * Decimal(913) / Decimal(1095)


def close(actual: Decimal, expected: Decimal) -> bool:
    return abs(actual - expected) < Decimal("1e-18")


class TestScenarioA:
    """Two original purchasers, no leavers."""

    def test_initial_share_is_equal_split(self, fridge, founders):
        for member in founders:
            breakdown = calculate_item_breakdown(member, fridge, founders, as_of=date(2024, 1, 10))
            assert breakdown.initial_share == Decimal("600")
            assert breakdown.initial_payment == Decimal("600")
            assert breakdown.buy_in_paid == 0
            assert breakdown.is_late_joiner is False

    def test_usage_accrues_half_a_day_each(self, fridge, founders):
        """Ten days, two members present each day."""
        breakdown = calculate_item_breakdown(founders[0], fridge, founders, as_of=date(2024, 1, 10))
        assert close(breakdown.usage, PER_DAY / 2 * 10)
        assert round_currency(breakdown.usage) == 5.48

    def test_net_balance_is_live(self, fridge, founders):
        """Members who have not left still get a running balance."""
        breakdown = calculate_item_breakdown(founders[0], fridge, founders, as_of=date(2024, 1, 10))
        assert breakdown.net_balance == breakdown.initial_share - breakdown.usage
        assert breakdown.net_balance > 0

    def test_no_usage_before_purchase(self, fridge, founders):
        breakdown = calculate_item_breakdown(founders[0], fridge, founders, as_of=date(2023, 12, 31))
        assert breakdown.usage == 0


class TestScenarioB:
    """A third member joins 182 days after purchase."""

    def test_buy_in_amount(self, fridge, founders, late_joiner):
        members = founders + [late_joiner]
        expected = VALUE_AT_JOIN / 3
        assert buy_in_amount(fridge, late_joiner, members) == expected
        assert round_currency(expected) == 333.52

    def test_late_joiner_breakdown(self, fridge, founders, late_joiner):
        members = founders + [late_joiner]
        breakdown = calculate_item_breakdown(late_joiner, fridge, members, as_of=date(2024, 7, 10))

        assert breakdown.is_late_joiner is True
        assert breakdown.initial_payment == 0
        assert breakdown.buy_in_paid == VALUE_AT_JOIN / 3
        assert breakdown.buy_in_received == 0
        assert close(breakdown.usage, PER_DAY / 3 * 10)

    def test_incumbents_receive_equal_halves(self, fridge, founders, late_joiner):
        members = founders + [late_joiner]
        for member in founders:
            breakdown = calculate_item_breakdown(member, fridge, members, as_of=date(2024, 7, 10))
            assert breakdown.buy_in_received == VALUE_AT_JOIN / 3 / 2
            assert round_currency(breakdown.buy_in_received) == 166.76

    def test_usage_drops_to_a_third_after_join(self, fridge, founders, late_joiner):
        """182 days shared by two, then 10 days shared by three."""
        members = founders + [late_joiner]
        breakdown = calculate_item_breakdown(founders[0], fridge, members, as_of=date(2024, 7, 10))
        assert close(breakdown.usage, PER_DAY / 2 * 182 + PER_DAY / 3 * 10)

    def test_initial_share_fixed_at_purchase(self, fridge, founders, late_joiner):
        """Later joiners do not change what founders paid."""
        members = founders + [late_joiner]
        breakdown = calculate_item_breakdown(founders[0], fridge, members, as_of=date(2024, 7, 10))
        assert breakdown.initial_share == Decimal("600")


class TestScenarioC:
    """Member leaves before an item is bought."""

    def test_no_involvement(self, founders):
        leaver = Member("d", "Dana", date(2024, 1, 1), leave_date=date(2024, 1, 2))
        sofa = Item("sofa", "Sofa", Decimal("800"), date(2024, 2, 1), 730)
        members = founders + [leaver]

        assert calculate_item_breakdown(leaver, sofa, members, as_of=date(2024, 3, 1)) is None

        balance = calculate_member_balance(leaver, [sofa], members, as_of=date(2024, 3, 1))
        assert balance.items == ()
        assert balance.net_balance == 0

    def test_leaving_on_purchase_date_is_not_involved(self, fridge):
        leaver = Member("d", "Dana", date(2023, 6, 1), leave_date=date(2024, 1, 1))
        stayer = Member("e", "Eli", date(2023, 6, 1))

        assert is_involved(leaver, fridge) is False
        assert original_purchasers(fridge, [leaver, stayer]) == [stayer]

        breakdown = calculate_item_breakdown(stayer, fridge, [leaver, stayer], as_of=date(2024, 1, 1))
        assert breakdown.initial_share == Decimal("1200")


class TestScenarioD:
    """Schedule ends before the member leaves."""

    def test_usage_capped_at_window_end(self, short_item):
        a = Member("a", "Alex", date(2023, 12, 1), leave_date=date(2024, 3, 1))
        b = Member("b", "Blair", date(2023, 12, 1))
        members = [a, b]

        breakdown = calculate_item_breakdown(a, short_item, members, as_of=date(2024, 6, 1))
        assert breakdown.usage == Decimal("50")
        assert breakdown.net_balance == 0

    def test_leaver_alone_pays_for_solo_days(self, short_item):
        """Once the other founder leaves, each day is charged to one member."""
        a = Member("a", "Alex", date(2024, 1, 1), leave_date=date(2024, 1, 10))
        b = Member("b", "Blair", date(2024, 1, 1), leave_date=date(2024, 1, 2))
        members = [a, b]

        a_breakdown = calculate_item_breakdown(a, short_item, members, as_of=date(2024, 6, 1))
        b_breakdown = calculate_item_breakdown(b, short_item, members, as_of=date(2024, 6, 1))

        assert a_breakdown.usage == Decimal("90")
        assert a_breakdown.net_balance == Decimal("-40")
        assert b_breakdown.usage == Decimal("10")
        assert b_breakdown.net_balance == Decimal("40")


class TestEligibility:

    def test_join_on_purchase_date_is_original_purchaser(self, fridge):
        member = Member("a", "Alex", date(2024, 1, 1))
        breakdown = calculate_item_breakdown(member, fridge, [member], as_of=date(2024, 1, 1))
        assert breakdown.is_late_joiner is False

    def test_join_after_full_depreciation(self, short_item, founders):
        newcomer = Member("z", "Zed", date(2024, 1, 11))
        assert calculate_item_breakdown(newcomer, short_item, founders + [newcomer], as_of=date(2024, 2, 1)) is None

    def test_join_on_last_window_day_buys_in(self, short_item, founders):
        newcomer = Member("z", "Zed", date(2024, 1, 10))
        members = founders + [newcomer]
        breakdown = calculate_item_breakdown(newcomer, short_item, members, as_of=date(2024, 2, 1))
        assert breakdown.is_late_joiner is True
        assert breakdown.buy_in_paid == Decimal("10") / 3


class TestBuyInRedistribution:

    def test_same_day_joiners_are_not_incumbents(self, short_item, founders):
        """Two members joining together each pay, only founders receive."""
        c = Member("c", "Casey", date(2024, 1, 6))
        d = Member("d", "Dana", date(2024, 1, 6))
        members = founders + [c, d]
        as_of = date(2024, 2, 1)

        value = Decimal("100") * 5 / 10
        c_breakdown = calculate_item_breakdown(c, short_item, members, as_of)
        d_breakdown = calculate_item_breakdown(d, short_item, members, as_of)
        a_breakdown = calculate_item_breakdown(founders[0], short_item, members, as_of)

        assert c_breakdown.buy_in_paid == value / 4
        assert c_breakdown.buy_in_received == 0
        assert d_breakdown.buy_in_received == 0
        assert a_breakdown.buy_in_received == value / 4

    def test_departed_incumbent_receives_nothing(self, fridge, late_joiner):
        a = Member("a", "Alex", date(2024, 1, 1), leave_date=date(2024, 6, 30))
        b = Member("b", "Blair", date(2024, 1, 1))
        members = [a, b, late_joiner]
        as_of = date(2024, 8, 1)

        a_breakdown = calculate_item_breakdown(a, fridge, members, as_of)
        b_breakdown = calculate_item_breakdown(b, fridge, members, as_of)

        assert a_breakdown.buy_in_received == 0
        assert b_breakdown.buy_in_received == VALUE_AT_JOIN / 2

    def test_earlier_late_joiner_is_incumbent_for_later_one(self, short_item, founders):
        c = Member("c", "Casey", date(2024, 1, 3))
        d = Member("d", "Dana", date(2024, 1, 6))
        members = founders + [c, d]

        d_buy_in = Decimal("50") / 4
        c_breakdown = calculate_item_breakdown(c, short_item, members, as_of=date(2024, 2, 1))
        assert c_breakdown.buy_in_received == d_buy_in / 3

    def test_buy_ins_paid_equal_buy_ins_received(self, fridge, founders, late_joiner):
        members = founders + [late_joiner]
        balances = calculate_balances(members, [fridge], as_of=date(2024, 8, 1))
        paid = sum(b.buy_in_paid for b in balances.values())
        received = sum(b.buy_in_received for b in balances.values())
        assert round_currency(paid) == round_currency(received)


class TestProperties:

    def test_conservation_of_initial_shares(self):
        item = Item("tv", "TV", Decimal("100"), date(2024, 1, 1), 365)
        members = [Member(str(n), f"M{n}", date(2023, 12, 1)) for n in range(3)]
        balances = calculate_balances(members, [item], as_of=date(2024, 1, 1))

        total = sum(b.initial_payment for b in balances.values())
        assert round_currency(total) == 100.0

    def test_full_window_usage_sums_to_price(self, short_item, founders, late_joiner):
        c = Member("c", "Casey", date(2024, 1, 4), leave_date=date(2024, 1, 8))
        balances = calculate_balances(founders + [c], [short_item], as_of=date(2024, 3, 1))
        total_usage = sum(b.usage for b in balances.values())
        assert round_currency(total_usage) == 100.0

    def test_usage_never_negative(self, fridge, short_item, founders, late_joiner):
        leaver = Member("d", "Dana", date(2024, 1, 5), leave_date=date(2024, 1, 7))
        members = founders + [late_joiner, leaver]
        for as_of in (date(2023, 1, 1), date(2024, 1, 5), date(2026, 1, 1)):
            for balance in calculate_balances(members, [fridge, short_item], as_of).values():
                assert all(b.usage >= 0 for b in balance.items)

    def test_idempotent(self, fridge, short_item, founders, late_joiner):
        members = founders + [late_joiner]
        items = [fridge, short_item]
        first = calculate_balances(members, items, as_of=date(2024, 9, 1))
        second = calculate_balances(members, items, as_of=date(2024, 9, 1))
        assert first == second

    def test_shared_counts_match_single_member_path(self, fridge, short_item, founders, late_joiner):
        members = founders + [late_joiner]
        items = [fridge, short_item]
        as_of = date(2024, 9, 1)
        balances = calculate_balances(members, items, as_of)

        for member in members:
            single = calculate_member_balance(member, items, members, as_of)
            assert single.net_balance == balances[member.member_id].net_balance

    def test_zero_price_gives_zero_balances(self, founders, late_joiner):
        chair = Item("chair", "Chair", Decimal("0"), date(2024, 1, 1), 100)
        members = founders + [late_joiner]
        for balance in calculate_balances(members, [chair], as_of=date(2024, 2, 1)).values():
            assert balance.net_balance == 0
            assert balance.usage == 0


class TestAggregation:

    def test_member_totals_sum_items(self, fridge, short_item, founders):
        balance = calculate_member_balance(founders[0], [fridge, short_item], founders, as_of=date(2024, 1, 20))

        assert len(balance.items) == 2
        assert balance.initial_payment == Decimal("650")
        assert balance.net_balance == sum((b.net_balance for b in balance.items), Decimal("0"))

    def test_to_dict_rounded(self, fridge, founders, late_joiner):
        members = founders + [late_joiner]
        balance = calculate_member_balance(founders[0], [fridge], members, as_of=date(2024, 7, 10))
        data = balance.to_dict(rounded=True)

        assert data["initial_payment"] == 600.0
        assert data["buy_in_received"] == 166.76
        assert data["items"][0]["is_late_joiner"] is False

    def test_unknown_member_rejected(self, fridge, founders):
        stranger = Member("x", "Stranger", date(2024, 1, 1))
        with pytest.raises(ValueError, match="not part of the member snapshot"):
            calculate_member_balance(stranger, [fridge], founders, as_of=date(2024, 2, 1))

    def test_invalid_snapshot_rejected(self, fridge):
        bad = Member("a", "Alex", date(2024, 2, 1), leave_date=date(2024, 1, 1))
        with pytest.raises(ValueError, match="leave_date"):
            calculate_balances([bad], [fridge], as_of=date(2024, 2, 1))

    def test_oversized_depreciation_period_rejected(self, founders):
        vault = Item("vault", "Vault", Decimal("500"), date(2024, 1, 1), 3_000_000)
        with pytest.raises(ValueError, match="depreciation_days"):
            calculate_balances(founders, [vault], as_of=date(2024, 2, 1))


class TestLeaveRefund:

    def test_none_while_member_stays(self, fridge, founders):
        assert calculate_leave_refund(founders[0], [fridge], founders) is None

    def test_refund_uses_leave_date(self, fridge):
        a = Member("a", "Alex", date(2024, 1, 1), leave_date=date(2024, 7, 1))
        b = Member("b", "Blair", date(2024, 1, 1))
        members = [a, b]

        refund = calculate_leave_refund(a, [fridge], members)
        assert close(refund, Decimal("600") - PER_DAY / 2 * 183)
        assert round_currency(refund) == 499.73

    def test_refund_ignores_items_bought_after_leaving(self, fridge):
        a = Member("a", "Alex", date(2024, 1, 1), leave_date=date(2024, 1, 31))
        b = Member("b", "Blair", date(2024, 1, 1))
        sofa = Item("sofa", "Sofa", Decimal("800"), date(2024, 2, 1), 730)

        with_sofa = calculate_leave_refund(a, [fridge, sofa], [a, b])
        without_sofa = calculate_leave_refund(a, [fridge], [a, b])
        assert with_sofa == without_sofa


class TestUsageWindow:
    """Usage ends at the window end, the leave date (or today) and the cutoff."""

    def test_future_leave_date_accrues_past_as_of(self, fridge):
        a = Member("a", "Alex", date(2024, 1, 1), leave_date=date(2024, 1, 20))
        b = Member("b", "Blair", date(2024, 1, 1))
        as_of = date(2024, 1, 10)

        a_breakdown = calculate_item_breakdown(a, fridge, [a, b], as_of)
        b_breakdown = calculate_item_breakdown(b, fridge, [a, b], as_of)

        assert close(a_breakdown.usage, PER_DAY / 2 * 20)
        assert close(b_breakdown.usage, PER_DAY / 2 * 10)

    def test_cutoff_caps_every_member(self, fridge):
        a = Member("a", "Alex", date(2024, 1, 1), leave_date=date(2024, 1, 20))
        b = Member("b", "Blair", date(2024, 1, 1))
        balances = calculate_balances([a, b], [fridge], as_of=date(2024, 1, 10), cutoff=date(2024, 1, 5))

        assert close(balances["a"].usage, PER_DAY / 2 * 5)
        assert close(balances["b"].usage, PER_DAY / 2 * 5)

    def test_cutoff_after_as_of_leaves_open_members_at_as_of(self, fridge, founders):
        balance = calculate_member_balance(
            founders[0], [fridge], founders, as_of=date(2024, 1, 10), cutoff=date(2024, 2, 1)
        )
        assert close(balance.usage, PER_DAY / 2 * 10)

    def test_shared_counts_match_single_member_path_with_future_leave(self, fridge, short_item, late_joiner):
        a = Member("a", "Alex", date(2024, 1, 1), leave_date=date(2024, 9, 30))
        b = Member("b", "Blair", date(2024, 1, 1))
        members = [a, b, late_joiner]
        items = [fridge, short_item]
        as_of = date(2024, 7, 10)
        balances = calculate_balances(members, items, as_of)

        for member in members:
            single = calculate_member_balance(member, items, members, as_of)
            assert single.usage == balances[member.member_id].usage
            assert single.net_balance == balances[member.member_id].net_balance
