"""
Capacity & Overflow Router

A goal cannot be funded past its target amount. Whatever a goal rule
claims beyond that is overflow, which the rule may redirect to one other
goal or category. The redirect is a single hop: an overflow target that
is itself a full goal does not overflow again.
"""

from typing import Optional

from waterfall.models.results import AllocationResult
from waterfall.models.rules import OverflowTargetType, Rule, TargetType
from waterfall.models.targets import CatalogSnapshot, Target


def split_goal_claim(goal: Target, claimed: int) -> tuple[int, int]:
    """
    Split a claim against a goal into (capped_amount, overflow_amount).

    A goal without a capacity is treated as unbounded.
    """
    space_left = goal.remaining_capacity
    if space_left is None or claimed <= space_left:
        return claimed, 0
    return space_left, claimed - space_left


def route_overflow(
    rule: Rule,
    overflow_amount: int,
    remaining_pool: int,
    catalog: CatalogSnapshot,
) -> Optional[AllocationResult]:
    """
    Send a goal rule's overflow to its configured overflow target.

    The routed amount is capped at what is left in the pool. Returns
    None when nothing is routed (no target configured, target gone, or
    nothing to send); the overflow then stays in the pool for later rules.
    """
    if overflow_amount <= 0 or not rule.has_overflow_target:
        return None

    if rule.overflow_target_type == OverflowTargetType.GOAL:
        target = catalog.goal(rule.overflow_target_id)
        target_type = TargetType.GOAL
    else:
        target = catalog.category(rule.overflow_target_id)
        target_type = TargetType.CATEGORY

    if target is None:
        return None

    amount = min(overflow_amount, remaining_pool)
    if amount <= 0:
        return None

    return AllocationResult(
        target_type=target_type,
        target_id=target.id,
        target_name=target.name,
        amount=amount,
        rule_id=rule.id,
    )
