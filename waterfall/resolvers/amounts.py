"""
Amount Calculator

Computes the gross amount one rule claims from a pool, before any
capacity limit is applied. All money is integer cents; percentages are
evaluated with Decimal so no float ever touches an amount.
"""

from decimal import ROUND_FLOOR, Decimal
from typing import Optional

from waterfall.models.rules import AllocationType


def percentage_amount(
    total_pool: int,
    percentage: Optional[Decimal],
    rounding: str = ROUND_FLOOR,
) -> int:
    """total_pool * percentage / 100 as whole cents."""
    if not percentage or total_pool <= 0:
        return 0
    value = Decimal(total_pool) * Decimal(percentage) / Decimal(100)
    return int(value.to_integral_value(rounding=rounding))


def calculate_rule_amount(
    rule,
    remaining_pool: int,
    total_pool: int,
    rounding: str = ROUND_FLOOR,
) -> int:
    """
    Gross amount a rule claims.

    Works for anything carrying allocation_type / amount / percentage
    (rules and category templates).

    - fixed: rule.amount, capped at remaining_pool
    - percentage: share of total_pool (NOT of remaining_pool), capped at remaining_pool
    - remainder: all of remaining_pool
    - split: 0, the resolver spreads split rules itself
    """
    if remaining_pool <= 0:
        return 0

    allocation_type = rule.allocation_type
    if allocation_type == AllocationType.FIXED:
        amount = min(rule.amount or 0, remaining_pool)
    elif allocation_type == AllocationType.PERCENTAGE:
        amount = min(
            percentage_amount(total_pool, rule.percentage, rounding),
            remaining_pool,
        )
    elif allocation_type == AllocationType.REMAINDER:
        amount = remaining_pool
    else:
        amount = 0

    return max(amount, 0)
