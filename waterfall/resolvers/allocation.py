"""
Allocation Resolver (account -> categories / goals)

This is the brain of the waterfall: money sitting in an account is
walked through the account's rules in priority order and split across
budget categories and savings goals.

Per rule, until the pool is empty:
1. due_date_aware category rule -> fund due-soon obligations first
2. category / goal -> claim an amount; goals are capped at their target
   and may redirect the overflow
3. split_remaining -> spread what is left evenly over the budgeted
   categories nothing has funded yet
4. unallocated -> park everything that is left; nothing after it runs

DESIGN DECISION: The resolver is pure. It reads a CatalogSnapshot and
returns a ResolutionOutcome. It never writes, never logs, never awaits.
"""

from datetime import date
from typing import Optional

from waterfall.models.results import AllocationResult, ResolutionOutcome
from waterfall.models.rules import Rule, TargetType, order_rules
from waterfall.models.targets import CatalogSnapshot
from waterfall.resolvers.amounts import calculate_rule_amount
from waterfall.resolvers.due_soon import fund_due_soon
from waterfall.resolvers.errors import NoRulesConfiguredError
from waterfall.resolvers.overflow import route_overflow, split_goal_claim


class _Run:
    """Mutable bookkeeping for a single resolve call."""

    def __init__(self, total_amount: int):
        self.total = total_amount
        self.remaining = total_amount
        self.allocated_target_ids: set[str] = set()
        self.results: list[AllocationResult] = []
        self.skipped_rule_ids: list[str] = []

    def emit(self, result: AllocationResult, mark_allocated: bool = True) -> None:
        self.results.append(result)
        self.remaining -= result.amount
        if mark_allocated and result.target_id:
            self.allocated_target_ids.add(result.target_id)


class AllocationResolver:
    """
    Resolves an account's allocation rules against a snapshot.

    Usage:
        resolver = AllocationResolver(snapshot, as_of_date=date.today())
        outcome = resolver.resolve(account_id, rules, available_cents)
    """

    def __init__(
        self,
        catalog: CatalogSnapshot,
        as_of_date: date,
        lookahead_end: Optional[date] = None,
        unallocated_label: str = "Unallocated",
    ):
        self._catalog = catalog
        self._as_of_date = as_of_date
        self._lookahead_end = lookahead_end
        self._unallocated_label = unallocated_label

    def resolve(
        self,
        owner_id: str,
        rules: list[Rule],
        total_amount: int,
    ) -> ResolutionOutcome:
        """
        Compute how total_amount is split by the owner's rules.

        Raises:
            NoRulesConfiguredError: if the owner has no rules at all
        """
        if not rules:
            raise NoRulesConfiguredError(owner_id, "account")

        run = _Run(total_amount)

        for rule in order_rules(rules):
            if run.remaining <= 0:
                break

            if rule.due_date_aware and rule.target_type == TargetType.CATEGORY:
                self._fund_due_soon(rule, run)
            elif rule.target_type in (TargetType.CATEGORY, TargetType.GOAL):
                self._fund_target(rule, run)
            elif rule.target_type == TargetType.SPLIT_REMAINING:
                self._split_remaining(rule, run)
            elif rule.target_type == TargetType.UNALLOCATED:
                self._leave_unallocated(rule, run)
                break
            else:
                # Accounts are not allocation targets
                run.skipped_rule_ids.append(rule.id)

        return ResolutionOutcome(
            owner_id=owner_id,
            total_amount=total_amount,
            results=run.results,
            remaining=run.remaining,
            skipped_rule_ids=run.skipped_rule_ids,
        )

    def _fund_due_soon(self, rule: Rule, run: _Run) -> None:
        for result in fund_due_soon(
            self._catalog,
            self._as_of_date,
            self._lookahead_end,
            run.remaining,
            rule.id,
        ):
            run.emit(result)

    def _fund_target(self, rule: Rule, run: _Run) -> None:
        if rule.target_type == TargetType.GOAL:
            target = self._catalog.goal(rule.target_id)
        else:
            target = self._catalog.category(rule.target_id)

        if target is None:
            run.skipped_rule_ids.append(rule.id)
            return

        amount = calculate_rule_amount(rule, run.remaining, run.total)

        if rule.target_type == TargetType.CATEGORY:
            if amount > 0:
                run.emit(AllocationResult(
                    target_type=TargetType.CATEGORY,
                    target_id=target.id,
                    target_name=target.name,
                    amount=amount,
                    rule_id=rule.id,
                ))
            return

        capped, overflow = split_goal_claim(target, amount)
        routed = route_overflow(rule, overflow, run.remaining - capped, self._catalog)

        if capped > 0 or overflow > 0:
            run.emit(AllocationResult(
                target_type=TargetType.GOAL,
                target_id=target.id,
                target_name=target.name,
                amount=capped,
                rule_id=rule.id,
                overflow_amount=overflow or None,
                overflow_target_id=routed.target_id if routed else None,
                overflow_target_name=routed.target_name if routed else None,
            ))
        if routed is not None:
            run.emit(routed, mark_allocated=False)

    def _split_remaining(self, rule: Rule, run: _Run) -> None:
        eligible = [
            category for category in self._catalog.categories
            if category.planned_amount > 0
            and category.id not in run.allocated_target_ids
        ]
        if not eligible:
            return

        per_category = run.remaining // len(eligible)
        for category in eligible:
            run.results.append(AllocationResult(
                target_type=TargetType.CATEGORY,
                target_id=category.id,
                target_name=category.name,
                amount=per_category,
                rule_id=rule.id,
            ))
            run.allocated_target_ids.add(category.id)

        # Integer-division leftover is not handed to any of the split
        # categories; it stays in the pool for later rules.
        run.remaining = run.remaining % len(eligible)

    def _leave_unallocated(self, rule: Rule, run: _Run) -> None:
        run.emit(
            AllocationResult(
                target_type=TargetType.UNALLOCATED,
                target_name=self._unallocated_label,
                amount=run.remaining,
                rule_id=rule.id,
            ),
            mark_allocated=False,
        )


def resolve_allocation(
    owner_id: str,
    rules: list[Rule],
    catalog: CatalogSnapshot,
    total_amount: int,
    as_of_date: date,
    lookahead_end: Optional[date] = None,
) -> ResolutionOutcome:
    """Functional shortcut for AllocationResolver(...).resolve(...)."""
    resolver = AllocationResolver(catalog, as_of_date, lookahead_end)
    return resolver.resolve(owner_id, rules, total_amount)
