"""
Shared fixtures.

Every test runs against InMemoryStore; nothing touches Google Sheets
or the network.
"""

from datetime import date

import pytest

from waterfall.audit import AuditLogger
from waterfall.config import AllocationSettings
from waterfall.models import (
    CatalogSnapshot,
    Target,
    TargetKind,
)
from waterfall.services.storage import InMemoryStore


AS_OF = date(2024, 3, 1)
USER_ID = "user-1"
BUDGET_ID = "budget-2024-03"


@pytest.fixture
def as_of() -> date:
    return AS_OF


@pytest.fixture
def settings() -> AllocationSettings:
    return AllocationSettings(
        due_soon_lookahead_days=14,
        unallocated_label="Unallocated",
        warn_on_unallocated=True,
    )


@pytest.fixture
def store() -> InMemoryStore:
    """
    A household with two accounts, three categories and a goal.

    checking: Rent (planned 1200_00), Groceries (planned 400_00)
    savings:  Emergency Fund goal (500_00 target, 400_00 saved),
              Vacation category (planned 0)
    """
    s = InMemoryStore()
    s.add_target(Target(id="acct-checking", kind=TargetKind.ACCOUNT, name="Main Checking",
                        current_amount=10_000, user_id=USER_ID))
    s.add_target(Target(id="acct-savings", kind=TargetKind.ACCOUNT, name="High Yield Savings",
                        current_amount=0, user_id=USER_ID))
    s.add_target(Target(id="cat-rent", kind=TargetKind.CATEGORY, name="Rent",
                        planned_amount=120_000, budget_id=BUDGET_ID, account_id="acct-checking"))
    s.add_target(Target(id="cat-groceries", kind=TargetKind.CATEGORY, name="Groceries",
                        planned_amount=40_000, budget_id=BUDGET_ID, account_id="acct-checking"))
    s.add_target(Target(id="cat-vacation", kind=TargetKind.CATEGORY, name="Vacation",
                        budget_id=BUDGET_ID, account_id="acct-savings"))
    s.add_target(Target(id="goal-emergency", kind=TargetKind.GOAL, name="Emergency Fund",
                        capacity=50_000, current_amount=40_000, user_id=USER_ID))
    return s


@pytest.fixture
def audit_logger(store) -> AuditLogger:
    return AuditLogger(store)


@pytest.fixture
def simple_catalog() -> CatalogSnapshot:
    """Three categories A, B, C with nothing budgeted."""
    return CatalogSnapshot(categories=(
        Target(id="A", kind=TargetKind.CATEGORY, name="A"),
        Target(id="B", kind=TargetKind.CATEGORY, name="B"),
        Target(id="C", kind=TargetKind.CATEGORY, name="C"),
    ))
