"""
Distribution Resolver (paycheck -> accounts)

The single-level sibling of the allocation resolver: a paycheck is split
across bank accounts by fixed, percentage and remainder rules. There are
no goals, no overflow, no due dates and no split rules here.

Money left over after the last rule is NOT an error. It is returned as
ResolutionOutcome.remaining and surfaced to the user as an advisory.
"""

from decimal import ROUND_FLOOR

from waterfall.models.results import (
    AllocationResult,
    DistributionLine,
    ResolutionOutcome,
    percentage_of,
)
from waterfall.models.rules import AllocationType, Rule, TargetType, order_rules
from waterfall.models.targets import CatalogSnapshot
from waterfall.resolvers.amounts import calculate_rule_amount
from waterfall.resolvers.errors import NoRulesConfiguredError


class DistributionResolver:
    """
    Resolves account-targeted rules against a snapshot of accounts.

    The income-template resolver reuses this for its first phase with
    half-up rounding of percentages and owner_kind="income_source".
    """

    def __init__(
        self,
        catalog: CatalogSnapshot,
        rounding: str = ROUND_FLOOR,
        owner_kind: str = "paycheck_plan",
    ):
        self._catalog = catalog
        self._rounding = rounding
        self._owner_kind = owner_kind

    def resolve(
        self,
        owner_id: str,
        rules: list[Rule],
        total_amount: int,
    ) -> ResolutionOutcome:
        """
        Split total_amount across accounts.

        Raises:
            NoRulesConfiguredError: if the owner has no rules at all
        """
        if not rules:
            raise NoRulesConfiguredError(owner_id, self._owner_kind)

        results: list[AllocationResult] = []
        skipped: list[str] = []
        remaining = total_amount

        for rule in order_rules(rules):
            if remaining <= 0:
                break

            account = (
                self._catalog.account(rule.target_id)
                if rule.target_type == TargetType.ACCOUNT
                else None
            )
            if account is None:
                skipped.append(rule.id)
                continue

            amount = calculate_rule_amount(rule, remaining, total_amount, self._rounding)
            if amount <= 0:
                continue

            results.append(AllocationResult(
                target_type=TargetType.ACCOUNT,
                target_id=account.id,
                target_name=account.name,
                amount=amount,
                rule_id=rule.id,
            ))
            remaining -= amount

        return ResolutionOutcome(
            owner_id=owner_id,
            total_amount=total_amount,
            results=results,
            remaining=remaining,
            skipped_rule_ids=skipped,
        )


def describe_distribution(
    outcome: ResolutionOutcome,
    rules: list[Rule],
) -> list[DistributionLine]:
    """Enrich a distribution outcome with each rule's type and share of the paycheck."""
    rules_by_id = {rule.id: rule for rule in rules}
    lines = []
    for result in outcome.results:
        rule = rules_by_id.get(result.rule_id)
        lines.append(DistributionLine(
            account_id=result.target_id,
            account_name=result.target_name,
            amount=result.amount,
            percentage_of_total=percentage_of(result.amount, outcome.total_amount),
            allocation_type=rule.allocation_type if rule else AllocationType.FIXED,
            rule_id=result.rule_id,
        ))
    return lines
