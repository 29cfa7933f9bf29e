"""Tests for write-time rule validation."""

from decimal import Decimal

import pytest

from waterfall.models import (
    AllocationType,
    CategoryTemplate,
    OverflowTargetType,
    Rule,
    TargetType,
)
from waterfall.orchestrator import RuleSetupFlow
from waterfall.services.storage import InMemoryStore
from waterfall.validation import InvalidRuleError, RuleValidator


def _rule(**fields) -> Rule:
    defaults = dict(
        owner_id="acct-1",
        target_type=TargetType.CATEGORY,
        target_id="cat-1",
        allocation_type=AllocationType.FIXED,
        amount=100,
    )
    defaults.update(fields)
    return Rule(**defaults)


def _issue_types(result) -> set[str]:
    return {issue.issue_type for issue in result.issues}


class TestShapeValidation:
    """Stage 1: a rule on its own."""

    def test_valid_fixed_rule(self):
        """A complete fixed rule passes."""
        result = RuleValidator().validate_rule(_rule())
        assert result.is_valid
        assert result.issues == []

    def test_fixed_requires_amount(self):
        """Fixed rules need an amount."""
        result = RuleValidator().validate_rule(_rule(amount=None))
        assert not result.is_valid
        assert "missing" in _issue_types(result)

    def test_negative_fixed_amount(self):
        """Negative amounts are rejected."""
        result = RuleValidator().validate_rule(_rule(amount=-1))
        assert "negative" in _issue_types(result)

    def test_zero_fixed_amount_is_a_warning(self):
        """A zero amount is allowed but flagged."""
        result = RuleValidator().validate_rule(_rule(amount=0))
        assert result.is_valid
        assert result.warnings

    @pytest.mark.parametrize("percentage", ["0", "-5", "100.01"])
    def test_percentage_out_of_range(self, percentage):
        """Percentages must be in (0, 100]."""
        rule = _rule(allocation_type=AllocationType.PERCENTAGE, amount=None,
                     percentage=Decimal(percentage))
        assert "out_of_range" in _issue_types(RuleValidator().validate_rule(rule))

    def test_percentage_of_one_hundred_is_valid(self):
        """100% is the inclusive upper bound."""
        rule = _rule(allocation_type=AllocationType.PERCENTAGE, amount=None,
                     percentage=Decimal("100"))
        assert RuleValidator().validate_rule(rule).is_valid

    def test_target_required(self):
        """Category, goal and account rules need a target."""
        result = RuleValidator().validate_rule(_rule(target_id=None))
        assert "missing" in _issue_types(result)

    def test_targetless_types(self):
        """split_remaining and unallocated rules have no target."""
        rule = _rule(target_type=TargetType.SPLIT_REMAINING, target_id=None,
                     allocation_type=AllocationType.SPLIT, amount=None)
        assert RuleValidator().validate_rule(rule).is_valid

    def test_split_outside_split_remaining_rejected(self):
        """A split allocation on a category rule is rejected."""
        rule = _rule(allocation_type=AllocationType.SPLIT, amount=None)
        result = RuleValidator().validate_rule(rule)
        assert not result.is_valid
        assert "not_supported" in _issue_types(result)

    def test_zero_fixed_account_amount_rejected(self):
        """A fixed paycheck split into an account needs a positive amount."""
        rule = _rule(owner_id="plan-1", target_type=TargetType.ACCOUNT, target_id="acct-1",
                     amount=0)
        result = RuleValidator().validate_rule(rule)
        assert not result.is_valid
        assert _issue_types(result) == {"not_positive"}

    @pytest.mark.asyncio
    async def test_rule_setup_refuses_zero_account_amount(self):
        """The rejected distribution rule never reaches the store."""
        store = InMemoryStore()
        rule = _rule(owner_id="plan-1", target_type=TargetType.ACCOUNT, target_id="acct-1",
                     amount=0)
        with pytest.raises(InvalidRuleError):
            await RuleSetupFlow(store).add_rule(rule)
        assert await store.get_rule(rule.id) is None

    def test_due_date_aware_only_on_categories(self):
        """Goals can't be due-date aware."""
        rule = _rule(target_type=TargetType.GOAL, target_id="goal-1", due_date_aware=True)
        assert not RuleValidator().validate_rule(rule).is_valid

    def test_overflow_only_on_goals(self):
        """Category rules can't redirect overflow."""
        rule = _rule(overflow_target_id="goal-2", overflow_target_type=OverflowTargetType.GOAL)
        assert "not_supported" in _issue_types(RuleValidator().validate_rule(rule))

    def test_overflow_must_be_complete(self):
        """An overflow target without a type is rejected."""
        rule = _rule(target_type=TargetType.GOAL, target_id="goal-1", overflow_target_id="goal-2")
        assert "incomplete" in _issue_types(RuleValidator().validate_rule(rule))

    def test_goal_cannot_overflow_into_itself(self):
        """Self-referencing overflow is rejected."""
        rule = _rule(target_type=TargetType.GOAL, target_id="goal-1",
                     overflow_target_id="goal-1", overflow_target_type=OverflowTargetType.GOAL)
        assert "self_reference" in _issue_types(RuleValidator().validate_rule(rule))


class TestSiblingValidation:
    """Stage 2: a rule against the owner's other rules."""

    def test_second_remainder_rejected(self):
        """Only one remainder rule per owner."""
        existing = [_rule(allocation_type=AllocationType.REMAINDER, amount=None)]
        new = _rule(target_id="cat-2", allocation_type=AllocationType.REMAINDER, amount=None)
        result = RuleValidator().validate_rule(new, existing)
        assert "duplicate_remainder" in _issue_types(result)

    def test_resaving_the_remainder_rule_is_fine(self):
        """A rule isn't its own sibling."""
        rule = _rule(allocation_type=AllocationType.REMAINDER, amount=None)
        assert RuleValidator().validate_rule(rule, [rule]).is_valid

    def test_other_owners_do_not_count(self):
        """Remainder rules of other owners are irrelevant."""
        other = _rule(owner_id="acct-2", allocation_type=AllocationType.REMAINDER, amount=None)
        new = _rule(allocation_type=AllocationType.REMAINDER, amount=None)
        assert RuleValidator().validate_rule(new, [other]).is_valid

    @pytest.mark.asyncio
    async def test_validate_fetches_siblings_from_store(self):
        """validate() reads the owner's rules from the store."""
        store = InMemoryStore()
        store.add_rule(_rule(allocation_type=AllocationType.REMAINDER, amount=None))
        new = _rule(target_id="cat-2", allocation_type=AllocationType.REMAINDER, amount=None)

        result = await RuleValidator(store).validate(new)
        assert not result.is_valid


class TestTemplateValidation:
    """Category templates."""

    def test_split_not_allowed(self):
        """Templates don't support split allocation."""
        template = CategoryTemplate(income_source_id="src", category_name="Food",
                                    allocation_type=AllocationType.SPLIT)
        assert not RuleValidator().validate_template(template).is_valid

    def test_duplicate_remainder(self):
        """One remainder template per income source."""
        first = CategoryTemplate(income_source_id="src", category_name="A",
                                 allocation_type=AllocationType.REMAINDER)
        second = CategoryTemplate(income_source_id="src", category_name="B",
                                  allocation_type=AllocationType.REMAINDER)
        assert not RuleValidator().validate_template(second, [first]).is_valid


class TestEnsureValid:
    """Raising and summarizing."""

    def test_raises_with_messages(self):
        """InvalidRuleError carries the result and the error messages."""
        result = RuleValidator().validate_rule(_rule(amount=None))
        with pytest.raises(InvalidRuleError) as exc_info:
            RuleValidator.ensure_valid(result)
        assert exc_info.value.result is result
        assert "Fixed allocation requires an amount" in str(exc_info.value)

    def test_valid_result_passes(self):
        """Nothing is raised for a valid rule."""
        RuleValidator.ensure_valid(RuleValidator().validate_rule(_rule()))

    def test_user_friendly_summary(self):
        """The summary lists errors with suggested fixes."""
        validator = RuleValidator()
        summary = validator.get_user_friendly_summary(validator.validate_rule(_rule(amount=None)))
        assert "can't be saved" in summary
        assert "Enter the amount in cents" in summary

    def test_summary_for_good_rule(self):
        """A clean rule gets a short confirmation."""
        validator = RuleValidator()
        assert validator.get_user_friendly_summary(validator.validate_rule(_rule())) == "Rule looks good."
