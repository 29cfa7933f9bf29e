"""
Abstract Storage Interface

DESIGN DECISION: The engine never talks to a database directly. It sees
rules, targets and balances only through these interfaces. This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Wrap the balance writer in a transaction without touching any resolver

The interfaces are intentionally narrow - just the operations the
waterfall flows need.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from waterfall.models.audit import AuditEvent
from waterfall.models.rules import CategoryTemplate, CategoryType, Rule
from waterfall.models.targets import DueSoonCharge, Target


class RuleStoreInterface(ABC):
    """
    Persists ordered rule lists per owner.

    The owner is an account (allocation rules), a paycheck plan
    (distribution rules) or an income source (account splits).
    """

    @abstractmethod
    async def list_rules(self, owner_id: str) -> list[Rule]:
        """
        List an owner's rules.

        Returns:
            Rules ordered by priority_order ascending; equal priorities
            in creation order
        """
        pass

    @abstractmethod
    async def get_rule(self, rule_id: str) -> Optional[Rule]:
        """Retrieve a rule by ID, None if it doesn't exist."""
        pass

    @abstractmethod
    async def save_rule(self, rule: Rule) -> Rule:
        """
        Insert a new rule or replace an existing one with the same ID.

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule. Returns True if something was deleted."""
        pass

    @abstractmethod
    async def reorder_rules(self, ordering: list[tuple[str, int]]) -> None:
        """
        Set priority_order for several rules at once.

        Args:
            ordering: (rule_id, priority_order) pairs

        Raises:
            NotFoundError: If any rule ID is unknown
        """
        pass

    @abstractmethod
    async def list_templates(self, income_source_id: str) -> list[CategoryTemplate]:
        """List an income source's category templates in priority order."""
        pass

    @abstractmethod
    async def save_template(self, template: CategoryTemplate) -> CategoryTemplate:
        """Insert or replace a category template."""
        pass


class TargetCatalogInterface(ABC):
    """
    Read access to the current state of accounts, categories and goals.

    create_category is the only write, used when an income template
    names a category the budget doesn't have yet.
    """

    @abstractmethod
    async def get_category(self, category_id: str) -> Optional[Target]:
        pass

    @abstractmethod
    async def get_goal(self, goal_id: str) -> Optional[Target]:
        pass

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Target]:
        pass

    @abstractmethod
    async def list_categories_for_budget(self, budget_id: str) -> list[Target]:
        pass

    @abstractmethod
    async def list_goals_for_user(self, user_id: str) -> list[Target]:
        pass

    @abstractmethod
    async def list_due_soon_charges(
        self,
        user_id: str,
        window_end: date,
    ) -> list[DueSoonCharge]:
        """Recurring charges whose next occurrence is on or before window_end."""
        pass

    @abstractmethod
    async def create_category(
        self,
        budget_id: str,
        account_id: str,
        name: str,
        category_type: CategoryType = CategoryType.EXPENSE,
    ) -> Target:
        """
        Create an empty category in a budget, owned by an account.

        Raises:
            StorageError: If the category cannot be created
        """
        pass


class BalanceWriterInterface(ABC):
    """
    Durable, ADDITIVE balance updates.

    Every method adds delta to the value currently stored
    (new = current + delta). Implementations must not write back a
    value computed from an older read, so that executions from different
    owners hitting the same category compose.
    """

    @abstractmethod
    async def increment_category_available(self, category_id: str, delta: int) -> int:
        """Add delta to a category's available amount. Returns the new value."""
        pass

    @abstractmethod
    async def increment_goal_current(self, goal_id: str, delta: int) -> int:
        """Add delta to a goal's saved amount. Returns the new value."""
        pass

    @abstractmethod
    async def increment_account_balance(self, account_id: str, delta: int) -> int:
        """Add delta to an account balance. Returns the new value."""
        pass

    @abstractmethod
    async def record_income(
        self,
        user_id: str,
        account_id: str,
        amount: int,
        on_date: date,
        description: str,
    ) -> None:
        """Record an income transaction for tracking purposes."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Returns True if logged successfully."""
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one flow call, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
