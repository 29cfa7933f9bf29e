"""Tests for the two-level income template resolver."""

from decimal import Decimal

import pytest

from waterfall.models import (
    AllocationType,
    CatalogSnapshot,
    CategoryTemplate,
    CategoryType,
    Rule,
    Target,
    TargetKind,
    TargetType,
)
from waterfall.resolvers import NoRulesConfiguredError, TemplateResolver, configured_totals


SOURCE = "income-job"


@pytest.fixture
def catalog():
    return CatalogSnapshot(
        accounts=(
            Target(id="chk", kind=TargetKind.ACCOUNT, name="Checking"),
            Target(id="sav", kind=TargetKind.ACCOUNT, name="Savings"),
        ),
        categories=(
            Target(id="cat-rent", kind=TargetKind.CATEGORY, name="Rent", account_id="chk"),
            # Same name, different account: must not match for checking
            Target(id="cat-sav-food", kind=TargetKind.CATEGORY, name="Food", account_id="sav"),
        ),
    )


def _split(target_id, allocation_type, priority=0, **fields) -> Rule:
    return Rule(owner_id=SOURCE, target_type=TargetType.ACCOUNT, target_id=target_id,
                allocation_type=allocation_type, priority_order=priority, **fields)


def _template(name, allocation_type, priority=0, **fields) -> CategoryTemplate:
    return CategoryTemplate(income_source_id=SOURCE, category_name=name,
                            allocation_type=allocation_type, priority_order=priority, **fields)


class TestTemplateResolver:
    """Income -> accounts -> categories."""

    def test_two_levels(self, catalog):
        """The income is split across accounts, then each share across templates."""
        checking = _split("chk", AllocationType.PERCENTAGE, 1, percentage=Decimal("75"))
        splits = [checking, _split("sav", AllocationType.REMAINDER, 2)]
        templates = [
            _template("Rent", AllocationType.FIXED, 1, amount=2000, account_split_id=checking.id),
            _template("Food", AllocationType.PERCENTAGE, 2, percentage=Decimal("10")),
        ]
        outcome = TemplateResolver(catalog).resolve(SOURCE, splits, templates, 4000)

        chk, sav = outcome.accounts
        assert (chk.account_id, chk.amount) == ("chk", 3000)
        assert (sav.account_id, sav.amount) == ("sav", 1000)

        assert [(c.category_name, c.amount) for c in chk.categories] == [("Rent", 2000), ("Food", 300)]
        assert chk.remaining == 700
        # Rent is linked to the checking split only
        assert [(c.category_name, c.amount) for c in sav.categories] == [("Food", 100)]
        assert sav.remaining == 900

        assert outcome.remaining_income == 0
        assert outcome.total_allocated == 4000

    def test_existing_categories_matched_within_account(self, catalog):
        """A category name is looked up in the account it would live in."""
        splits = [_split("chk", AllocationType.REMAINDER)]
        templates = [
            _template("Rent", AllocationType.FIXED, 1, amount=100),
            _template("Food", AllocationType.FIXED, 2, amount=100),
        ]
        outcome = TemplateResolver(catalog).resolve(SOURCE, splits, templates, 1000)
        rent, food = outcome.accounts[0].categories

        assert rent.exists and rent.category_id == "cat-rent"
        assert not food.exists and food.category_id is None

    def test_percentages_round_half_up(self, catalog):
        """Template percentages round half a cent up."""
        splits = [_split("chk", AllocationType.PERCENTAGE, percentage=Decimal("50"))]
        outcome = TemplateResolver(catalog).resolve(SOURCE, splits, [], 999)

        assert outcome.accounts[0].amount == 500
        assert outcome.remaining_income == 499

    def test_template_remainder(self, catalog):
        """A remainder template takes the rest of the account's share."""
        splits = [_split("chk", AllocationType.REMAINDER)]
        templates = [
            _template("Rent", AllocationType.FIXED, 1, amount=600),
            _template("Savings", AllocationType.REMAINDER, 2, category_type=CategoryType.SAVINGS),
        ]
        share = TemplateResolver(catalog).resolve(SOURCE, splits, templates, 1000).accounts[0]

        assert share.categories[1].amount == 400
        assert share.categories[1].category_type == CategoryType.SAVINGS
        assert share.remaining == 0

    def test_splits_to_same_account_add_up(self, catalog):
        """Two splits feeding one account produce one combined share."""
        splits = [
            _split("chk", AllocationType.FIXED, 1, amount=100),
            _split("chk", AllocationType.FIXED, 2, amount=200),
        ]
        outcome = TemplateResolver(catalog).resolve(SOURCE, splits, [], 1000)

        assert len(outcome.accounts) == 1
        assert outcome.accounts[0].amount == 300
        assert outcome.remaining_income == 700

    def test_no_splits(self, catalog):
        """An income source without account splits raises."""
        with pytest.raises(NoRulesConfiguredError) as exc_info:
            TemplateResolver(catalog).resolve(SOURCE, [], [], 1000)
        assert exc_info.value.owner_kind == "income_source"


class TestConfiguredTotals:
    """Totals shown in the template editor."""

    def test_sums_by_type(self):
        """Percentages and fixed amounts are summed separately."""
        totals = configured_totals([
            _template("A", AllocationType.PERCENTAGE, percentage=Decimal("60")),
            _template("B", AllocationType.PERCENTAGE, percentage=Decimal("50")),
            _template("C", AllocationType.FIXED, amount=1500),
            _template("D", AllocationType.REMAINDER),
        ])
        assert totals.total_percentage == Decimal("110")
        assert totals.total_fixed == 1500
        assert totals.has_remainder
        assert totals.over_allocated

    def test_empty(self):
        """No templates, no totals."""
        totals = configured_totals([])
        assert totals.total_percentage == 0
        assert not totals.has_remainder
        assert not totals.over_allocated
