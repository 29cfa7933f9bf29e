"""
Rule Models for Waterfall

A rule is one ordered instruction that claims some amount from a pool
for a target. Rules are long-lived, user-edited configuration owned by an
account (allocation rules), a paycheck plan (distribution rules) or an
income source (account splits).

DESIGN DECISION: Rule is a closed tagged union of
target_type x allocation_type, not a class hierarchy.
The resolvers switch on the tags.

The models here are deliberately permissive. Semantic checks
(percentage range, duplicate remainder, missing target) live in
RuleValidator and run at write time, so a resolver can still be handed
slightly stale or odd configuration without blowing up.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    """Generate a new opaque identifier."""
    return str(uuid4())


# =============================================================================
# ENUMS - the tags of the union
# =============================================================================

class TargetType(str, Enum):
    """
    What a rule (or a result) sends money to.

    Not every resolver accepts every target type:
    - allocation: category, goal, split_remaining, unallocated
    - distribution / account splits: account
    """
    CATEGORY = "category"
    GOAL = "goal"
    ACCOUNT = "account"
    SPLIT_REMAINING = "split_remaining"
    UNALLOCATED = "unallocated"


class AllocationType(str, Enum):
    """How a rule computes the amount it claims."""
    FIXED = "fixed"             # rule.amount cents, capped at what is left
    PERCENTAGE = "percentage"   # share of the ORIGINAL total, capped at what is left
    REMAINDER = "remainder"     # everything that is left
    SPLIT = "split"             # spread across several targets by the resolver


class OverflowTargetType(str, Enum):
    """Where goal overflow may be redirected."""
    CATEGORY = "category"
    GOAL = "goal"


class CategoryType(str, Enum):
    """Kind of budget category a template creates."""
    EXPENSE = "expense"
    SAVINGS = "savings"


# Target types that never carry a target_id
TARGETLESS_TYPES = frozenset({TargetType.SPLIT_REMAINING, TargetType.UNALLOCATED})


# =============================================================================
# RULES
# =============================================================================

class Rule(BaseModel):
    """
    One ordered waterfall instruction.

    amount is in cents and only meaningful for FIXED rules.
    percentage is 0-100 and only meaningful for PERCENTAGE rules.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        description="Unique rule ID"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="Account, paycheck plan or income source that owns this rule"
    )
    priority_order: int = Field(
        default=0,
        description="Ascending execution order; ties keep insertion order"
    )

    target_type: TargetType
    target_id: Optional[str] = Field(
        default=None,
        description="Target identifier (absent for split_remaining / unallocated)"
    )

    allocation_type: AllocationType
    amount: Optional[int] = Field(
        default=None,
        description="Fixed amount in cents"
    )
    percentage: Optional[Decimal] = Field(
        default=None,
        description="Percentage of the total pool (0 < p <= 100)"
    )

    due_date_aware: bool = Field(
        default=False,
        description="Fund categories due soon before anything else (category rules only)"
    )
    overflow_target_id: Optional[str] = None
    overflow_target_type: Optional[OverflowTargetType] = None

    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the rule was created"
    )

    @property
    def has_overflow_target(self) -> bool:
        return bool(self.overflow_target_id and self.overflow_target_type)


class CategoryTemplate(BaseModel):
    """
    A category allocation inside an income template.

    Templates name categories rather than pointing at them, because the
    category may not exist yet in the budget the template is applied to.
    A template with no account_split_id applies to every account the
    income is split into.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    income_source_id: str = Field(..., min_length=1)
    category_name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Name of the category to fund (created on execute if missing)"
    )
    category_type: CategoryType = CategoryType.EXPENSE
    allocation_type: AllocationType
    amount: Optional[int] = None
    percentage: Optional[Decimal] = None
    priority_order: int = 0
    account_split_id: Optional[str] = Field(
        default=None,
        description="Account split rule this template belongs to; None means all accounts"
    )


def order_rules(rules: list) -> list:
    """
    Sort rules (or templates) by priority_order.

    sorted() is stable, so equal priorities keep the order the store
    returned them in, which is creation order.
    """
    return sorted(rules, key=lambda r: r.priority_order)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found with a rule before it is saved."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'out_of_range', 'duplicate_remainder')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Outcome of validating one rule or template against its siblings."""

    rule_id: str
    validated_at: datetime = Field(default_factory=datetime.utcnow)
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
