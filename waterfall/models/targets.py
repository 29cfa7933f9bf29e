"""
Target Models for Waterfall

Targets are the accounts, budget categories and savings goals that
receive money. They are live entities mutated elsewhere (budgeting,
transactions); the engine only ever sees a frozen snapshot of them.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from waterfall.models.rules import CategoryType, new_id


class TargetKind(str, Enum):
    """Kind of entity a target is."""
    ACCOUNT = "account"
    CATEGORY = "category"
    GOAL = "goal"


class Target(BaseModel):
    """
    Read-only snapshot of an account, category or goal.

    capacity is only set for goals (their target amount).
    planned_amount is the monthly amount budgeted for a category and
    drives both split_remaining eligibility and due-soon shortfalls.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    kind: TargetKind
    name: str = Field(..., min_length=1, max_length=200)

    capacity: Optional[int] = Field(
        default=None,
        ge=0,
        description="Goal target amount in cents; None means unbounded"
    )
    current_amount: int = Field(
        default=0,
        description="Current balance / available amount / saved amount in cents"
    )

    # Category-only fields
    planned_amount: int = Field(default=0, ge=0)
    due_date: Optional[date] = None
    category_type: Optional[CategoryType] = None

    # Ownership, used to list targets
    user_id: Optional[str] = None
    budget_id: Optional[str] = None
    account_id: Optional[str] = Field(
        default=None,
        description="Account a category belongs to"
    )

    @property
    def remaining_capacity(self) -> Optional[int]:
        """Room left before the capacity is reached (never negative)."""
        if self.capacity is None:
            return None
        return max(self.capacity - self.current_amount, 0)

    @property
    def shortfall(self) -> int:
        """How much the category still needs to reach its planned amount."""
        return self.planned_amount - self.current_amount


class DueSoonCharge(BaseModel):
    """A recurring charge (subscription, bill) whose next occurrence is known."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    category_id: Optional[str] = Field(
        default=None,
        description="Category that pays for this charge; unlinked charges are ignored"
    )
    amount: int = Field(..., ge=0)
    due_date: date
    user_id: Optional[str] = None


class CatalogSnapshot(BaseModel):
    """
    Immutable view of every target a resolve call may touch.

    The flows fetch this once up front; the resolvers never do I/O.
    Lookups return None for unknown ids so a rule pointing at a deleted
    target can be skipped instead of aborting the run.
    """
    model_config = ConfigDict(frozen=True)

    categories: tuple[Target, ...] = ()
    goals: tuple[Target, ...] = ()
    accounts: tuple[Target, ...] = ()
    charges: tuple[DueSoonCharge, ...] = ()

    @staticmethod
    def _find(items: tuple[Target, ...], target_id: Optional[str]) -> Optional[Target]:
        if not target_id:
            return None
        return next((t for t in items if t.id == target_id), None)

    def category(self, category_id: Optional[str]) -> Optional[Target]:
        return self._find(self.categories, category_id)

    def goal(self, goal_id: Optional[str]) -> Optional[Target]:
        return self._find(self.goals, goal_id)

    def account(self, account_id: Optional[str]) -> Optional[Target]:
        return self._find(self.accounts, account_id)

    def categories_for_account(self, account_id: str) -> list[Target]:
        return [c for c in self.categories if c.account_id == account_id]
