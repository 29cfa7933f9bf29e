"""Tests for the due-soon prioritizer and the overflow router helpers."""

from datetime import date, timedelta

from waterfall.models import (
    AllocationType,
    CatalogSnapshot,
    DueSoonCharge,
    OverflowTargetType,
    Rule,
    Target,
    TargetKind,
    TargetType,
)
from waterfall.resolvers import (
    collect_due_soon,
    fund_due_soon,
    lookahead_end,
    route_overflow,
    split_goal_claim,
)


AS_OF = date(2024, 3, 1)


class TestLookahead:
    """Window end selection."""

    def test_next_pay_date_wins(self):
        """A known next pay date is the window end."""
        assert lookahead_end(AS_OF, date(2024, 3, 8)) == date(2024, 3, 8)

    def test_default_fourteen_days(self):
        """Without a pay date the window is 14 days."""
        assert lookahead_end(AS_OF) == date(2024, 3, 15)

    def test_custom_days(self):
        """The fallback length is configurable."""
        assert lookahead_end(AS_OF, days=30) == date(2024, 3, 31)


class TestCollectDueSoon:
    """Gathering obligations from categories and charges."""

    def test_overdue_items_count(self):
        """Something already overdue is still due soon."""
        catalog = CatalogSnapshot(categories=(
            Target(id="late", kind=TargetKind.CATEGORY, name="Water",
                   planned_amount=20, due_date=AS_OF - timedelta(days=5)),
        ))
        items = collect_due_soon(catalog, AS_OF + timedelta(days=14))
        assert [i.category_id for i in items] == ["late"]
        assert items[0].name == "Water (Due 2/25)"

    def test_unlinked_and_orphan_charges_ignored(self):
        """Charges need a category that still exists."""
        catalog = CatalogSnapshot(charges=(
            DueSoonCharge(name="Gym", amount=30, due_date=AS_OF),
            DueSoonCharge(name="Music", category_id="deleted", amount=10, due_date=AS_OF),
        ))
        assert collect_due_soon(catalog, AS_OF + timedelta(days=14)) == []

    def test_same_day_charges_before_categories(self):
        """Ties keep charges ahead of categories."""
        due = AS_OF + timedelta(days=2)
        catalog = CatalogSnapshot(
            categories=(
                Target(id="bills", kind=TargetKind.CATEGORY, name="Bills",
                       planned_amount=10, due_date=due),
            ),
            charges=(DueSoonCharge(name="Cloud", category_id="bills", amount=5, due_date=due),),
        )
        items = collect_due_soon(catalog, AS_OF + timedelta(days=14))
        assert [i.name for i in items] == ["Cloud (Due 3/3)", "Bills (Due 3/3)"]


class TestFundDueSoon:
    """Greedy funding."""

    def test_already_funded_items_get_nothing(self):
        """An item whose category already has enough is skipped."""
        catalog = CatalogSnapshot(categories=(
            Target(id="ok", kind=TargetKind.CATEGORY, name="Paid", planned_amount=50,
                   current_amount=50, due_date=AS_OF),
            Target(id="need", kind=TargetKind.CATEGORY, name="Owed", planned_amount=50,
                   current_amount=20, due_date=AS_OF + timedelta(days=1)),
        ))
        results = fund_due_soon(catalog, AS_OF, None, 100, "rule-1")
        assert [(r.target_id, r.amount) for r in results] == [("need", 30)]
        assert results[0].rule_id == "rule-1"

    def test_stops_when_pool_runs_out(self):
        """Later obligations go unfunded once the pool is empty."""
        catalog = CatalogSnapshot(categories=(
            Target(id="a", kind=TargetKind.CATEGORY, name="A", planned_amount=80, due_date=AS_OF),
            Target(id="b", kind=TargetKind.CATEGORY, name="B", planned_amount=80,
                   due_date=AS_OF + timedelta(days=1)),
        ))
        results = fund_due_soon(catalog, AS_OF, None, 80, "rule-1")
        assert [(r.target_id, r.amount) for r in results] == [("a", 80)]


class TestOverflowHelpers:
    """split_goal_claim and route_overflow on their own."""

    def test_split_goal_claim(self):
        """Claims beyond the remaining capacity overflow."""
        goal = Target(kind=TargetKind.GOAL, name="EF", capacity=500, current_amount=400)
        assert split_goal_claim(goal, 200) == (100, 100)
        assert split_goal_claim(goal, 50) == (50, 0)

    def test_overfunded_goal_has_no_room(self):
        """A goal above its target has zero capacity left, never negative."""
        goal = Target(kind=TargetKind.GOAL, name="EF", capacity=500, current_amount=700)
        assert goal.remaining_capacity == 0
        assert split_goal_claim(goal, 10) == (0, 10)

    def test_route_overflow_capped_at_pool(self):
        """The routed amount never exceeds what is left."""
        catalog = CatalogSnapshot(categories=(Target(id="c", kind=TargetKind.CATEGORY, name="C"),))
        rule = Rule(owner_id="o", target_type=TargetType.GOAL, target_id="g",
                    allocation_type=AllocationType.FIXED, amount=100,
                    overflow_target_id="c", overflow_target_type=OverflowTargetType.CATEGORY)
        routed = route_overflow(rule, 80, 30, catalog)
        assert routed.amount == 30
        assert routed.target_type == TargetType.CATEGORY

    def test_route_overflow_missing_target(self):
        """A deleted overflow target routes nothing."""
        rule = Rule(owner_id="o", target_type=TargetType.GOAL, target_id="g",
                    allocation_type=AllocationType.FIXED, amount=100,
                    overflow_target_id="gone", overflow_target_type=OverflowTargetType.GOAL)
        assert route_overflow(rule, 80, 100, CatalogSnapshot()) is None
