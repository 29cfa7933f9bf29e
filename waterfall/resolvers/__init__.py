"""
Resolvers package.

Pure, synchronous computations: rules + snapshot in, results out.
"""

from waterfall.resolvers.allocation import AllocationResolver, resolve_allocation
from waterfall.resolvers.amounts import calculate_rule_amount, percentage_amount
from waterfall.resolvers.distribution import DistributionResolver, describe_distribution
from waterfall.resolvers.due_soon import (
    DEFAULT_LOOKAHEAD_DAYS,
    DueSoonItem,
    collect_due_soon,
    fund_due_soon,
    lookahead_end,
)
from waterfall.resolvers.errors import AllocationError, NoRulesConfiguredError
from waterfall.resolvers.overflow import route_overflow, split_goal_claim
from waterfall.resolvers.templates import TemplateResolver, configured_totals

__all__ = [
    "AllocationError",
    "AllocationResolver",
    "DEFAULT_LOOKAHEAD_DAYS",
    "DistributionResolver",
    "DueSoonItem",
    "NoRulesConfiguredError",
    "TemplateResolver",
    "calculate_rule_amount",
    "collect_due_soon",
    "configured_totals",
    "describe_distribution",
    "fund_due_soon",
    "lookahead_end",
    "percentage_amount",
    "resolve_allocation",
    "route_overflow",
    "split_goal_claim",
]
