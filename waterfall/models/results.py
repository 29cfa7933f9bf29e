"""
Result Models for Waterfall

Everything a resolver returns is plain data. The preview screens render
it as-is; the execute path hands the same objects to the applier.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from waterfall.models.rules import AllocationType, CategoryType, TargetType


class AllocationResult(BaseModel):
    """
    One disbursement produced by a resolver.

    When a goal rule claims more than the goal can hold, the goal result
    carries overflow_amount. If the rule routes that overflow somewhere,
    overflow_target_id / overflow_target_name are filled in and a second
    result for the overflow target follows.
    """
    model_config = ConfigDict(frozen=True)

    target_type: TargetType
    target_id: Optional[str] = None
    target_name: str
    amount: int = Field(..., ge=0, description="Amount in cents")
    rule_id: str

    overflow_amount: Optional[int] = Field(default=None, ge=0)
    overflow_target_id: Optional[str] = None
    overflow_target_name: Optional[str] = None

    @property
    def overflow_redirected(self) -> bool:
        return self.overflow_target_id is not None


class ResolutionOutcome(BaseModel):
    """
    Output of the allocation and distribution resolvers.

    remaining is whatever the rules did not claim. For a distribution
    that is an advisory for the caller, not an error.
    skipped_rule_ids lists rules whose target could not be found.
    """

    owner_id: str
    total_amount: int = Field(..., ge=0)
    results: list[AllocationResult] = Field(default_factory=list)
    remaining: int = 0
    skipped_rule_ids: list[str] = Field(default_factory=list)

    @property
    def total_allocated(self) -> int:
        return sum(r.amount for r in self.results)

    @property
    def has_shortfall(self) -> bool:
        return self.remaining > 0

    @property
    def advisory(self) -> Optional[str]:
        """Message to show when money was left unallocated."""
        if not self.has_shortfall:
            return None
        return (
            f"{self.remaining} cents left unallocated. "
            "Consider adding a remainder rule."
        )


class DistributionLine(BaseModel):
    """A distribution result enriched for display."""

    account_id: str
    account_name: str
    amount: int
    percentage_of_total: float
    allocation_type: AllocationType
    rule_id: str


# =============================================================================
# INCOME TEMPLATES
# =============================================================================

class TemplateCategoryLine(BaseModel):
    """One category funded by an income template within one account."""

    template_id: str
    category_name: str
    category_type: CategoryType
    category_id: Optional[str] = Field(
        default=None,
        description="Existing category id; None when the category would be created"
    )
    amount: int = Field(..., ge=0)
    exists: bool


class AccountShare(BaseModel):
    """An account's share of an income and how it is split into categories."""

    account_id: str
    account_name: str
    rule_id: str
    amount: int = Field(..., ge=0)
    categories: list[TemplateCategoryLine] = Field(default_factory=list)
    remaining: int = 0

    @property
    def allocated_to_categories(self) -> int:
        return sum(line.amount for line in self.categories)


class TemplateOutcome(BaseModel):
    """Output of the two-level template resolver."""

    income_source_id: str
    income_amount: int = Field(..., ge=0)
    accounts: list[AccountShare] = Field(default_factory=list)
    remaining_income: int = 0
    skipped_rule_ids: list[str] = Field(default_factory=list)

    @property
    def total_allocated(self) -> int:
        return self.income_amount - self.remaining_income


# =============================================================================
# FULL PAYCHECK (two tiers)
# =============================================================================

class AccountAllocationPreview(BaseModel):
    """Tier-two view of one account's share of a paycheck."""

    account_id: str
    account_name: str
    amount: int
    percentage: float
    allocations: list[AllocationResult] = Field(default_factory=list)
    rules_configured: bool = True

    @property
    def total_allocated(self) -> int:
        """Money sent to categories and goals; parked money doesn't count."""
        return sum(
            a.amount for a in self.allocations
            if a.target_type != TargetType.UNALLOCATED
        )

    @property
    def unallocated(self) -> int:
        return self.amount - self.total_allocated


class FullAllocationPreview(BaseModel):
    """Where every cent of a paycheck goes: accounts first, then categories and goals."""

    paycheck_amount: int
    distribution: list[AccountAllocationPreview] = Field(default_factory=list)
    total_allocated: int = 0
    unallocated: int = 0


class AllocationSummary(BaseModel):
    """Dashboard totals derived from a full paycheck preview."""

    total_to_checking: int = 0
    total_to_savings: int = 0
    total_to_bills: int = 0
    total_to_goals: int = 0
    unallocated: int = 0


def percentage_of(amount: int, total: int) -> float:
    """Share of total as a percentage, 0 when total is 0."""
    if total <= 0:
        return 0.0
    return float(Decimal(amount) * 100 / Decimal(total))


class ConfiguredTotals(BaseModel):
    """What a set of splits or templates claims before any income arrives."""

    total_percentage: Decimal = Decimal(0)
    total_fixed: int = 0
    has_remainder: bool = False

    @property
    def over_allocated(self) -> bool:
        return self.total_percentage > 100
