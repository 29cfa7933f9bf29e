"""
In-Memory Storage Implementation

Implements every storage interface on plain dicts. Used as the default
backend when Google Sheets isn't configured, and throughout the tests.

Data lives only as long as the process.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from waterfall.models.audit import AuditEvent
from waterfall.models.rules import CategoryTemplate, CategoryType, Rule, order_rules
from waterfall.models.targets import DueSoonCharge, Target, TargetKind
from waterfall.services.storage.interface import (
    AuditStorageInterface,
    BalanceWriterInterface,
    DuplicateError,
    NotFoundError,
    RuleStoreInterface,
    TargetCatalogInterface,
)


class InMemoryStore(
    RuleStoreInterface,
    TargetCatalogInterface,
    BalanceWriterInterface,
    AuditStorageInterface,
):
    """Rules, targets, balances and audit events in one process-local store."""

    def __init__(self):
        # dicts keep insertion order, which is the creation-order tie-break
        self._rules: dict[str, Rule] = {}
        self._templates: dict[str, CategoryTemplate] = {}
        self._targets: dict[str, Target] = {}
        self._charges: list[DueSoonCharge] = []
        self._transactions: list[dict] = []
        self._events: list[AuditEvent] = []

    # -------------------------------------------------------------------------
    # Seeding (synchronous, for setup code and tests)
    # -------------------------------------------------------------------------

    def add_target(self, target: Target) -> Target:
        if target.id in self._targets:
            raise DuplicateError(f"Target already exists: {target.id}")
        self._targets[target.id] = target
        return target

    def add_charge(self, charge: DueSoonCharge) -> DueSoonCharge:
        self._charges.append(charge)
        return charge

    def add_rule(self, rule: Rule) -> Rule:
        self._rules[rule.id] = rule
        return rule

    def add_template(self, template: CategoryTemplate) -> CategoryTemplate:
        self._templates[template.id] = template
        return template

    def target(self, target_id: str) -> Optional[Target]:
        return self._targets.get(target_id)

    @property
    def transactions(self) -> list[dict]:
        return list(self._transactions)

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    # -------------------------------------------------------------------------
    # RuleStoreInterface
    # -------------------------------------------------------------------------

    async def list_rules(self, owner_id: str) -> list[Rule]:
        return order_rules([r for r in self._rules.values() if r.owner_id == owner_id])

    async def get_rule(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    async def save_rule(self, rule: Rule) -> Rule:
        self._rules[rule.id] = rule
        return rule

    async def delete_rule(self, rule_id: str) -> bool:
        return self._rules.pop(rule_id, None) is not None

    async def reorder_rules(self, ordering: list[tuple[str, int]]) -> None:
        missing = [rule_id for rule_id, _ in ordering if rule_id not in self._rules]
        if missing:
            raise NotFoundError(f"Rules not found: {', '.join(missing)}")
        for rule_id, priority in ordering:
            self._rules[rule_id] = self._rules[rule_id].model_copy(
                update={"priority_order": priority}
            )

    async def list_templates(self, income_source_id: str) -> list[CategoryTemplate]:
        return order_rules([
            t for t in self._templates.values()
            if t.income_source_id == income_source_id
        ])

    async def save_template(self, template: CategoryTemplate) -> CategoryTemplate:
        self._templates[template.id] = template
        return template

    # -------------------------------------------------------------------------
    # TargetCatalogInterface
    # -------------------------------------------------------------------------

    def _get(self, target_id: str, kind: TargetKind) -> Optional[Target]:
        target = self._targets.get(target_id)
        if target is None or target.kind != kind:
            return None
        return target

    async def get_category(self, category_id: str) -> Optional[Target]:
        return self._get(category_id, TargetKind.CATEGORY)

    async def get_goal(self, goal_id: str) -> Optional[Target]:
        return self._get(goal_id, TargetKind.GOAL)

    async def get_account(self, account_id: str) -> Optional[Target]:
        return self._get(account_id, TargetKind.ACCOUNT)

    async def list_categories_for_budget(self, budget_id: str) -> list[Target]:
        return [
            t for t in self._targets.values()
            if t.kind == TargetKind.CATEGORY and t.budget_id == budget_id
        ]

    async def list_goals_for_user(self, user_id: str) -> list[Target]:
        return [
            t for t in self._targets.values()
            if t.kind == TargetKind.GOAL and t.user_id == user_id
        ]

    async def list_due_soon_charges(
        self,
        user_id: str,
        window_end: date,
    ) -> list[DueSoonCharge]:
        return [
            c for c in self._charges
            if c.user_id == user_id and c.due_date <= window_end
        ]

    async def create_category(
        self,
        budget_id: str,
        account_id: str,
        name: str,
        category_type: CategoryType = CategoryType.EXPENSE,
    ) -> Target:
        for t in self._targets.values():
            if (
                t.kind == TargetKind.CATEGORY
                and t.budget_id == budget_id
                and t.account_id == account_id
                and t.name == name
            ):
                raise DuplicateError(f"Category already exists: {name}")

        return self.add_target(Target(
            kind=TargetKind.CATEGORY,
            name=name,
            budget_id=budget_id,
            account_id=account_id,
            category_type=category_type,
        ))

    # -------------------------------------------------------------------------
    # BalanceWriterInterface
    # -------------------------------------------------------------------------

    def _increment(self, target_id: str, kind: TargetKind, delta: int) -> int:
        target = self._get(target_id, kind)
        if target is None:
            raise NotFoundError(f"{kind.value.capitalize()} not found: {target_id}")
        updated = target.model_copy(update={"current_amount": target.current_amount + delta})
        self._targets[target_id] = updated
        return updated.current_amount

    async def increment_category_available(self, category_id: str, delta: int) -> int:
        return self._increment(category_id, TargetKind.CATEGORY, delta)

    async def increment_goal_current(self, goal_id: str, delta: int) -> int:
        return self._increment(goal_id, TargetKind.GOAL, delta)

    async def increment_account_balance(self, account_id: str, delta: int) -> int:
        return self._increment(account_id, TargetKind.ACCOUNT, delta)

    async def record_income(
        self,
        user_id: str,
        account_id: str,
        amount: int,
        on_date: date,
        description: str,
    ) -> None:
        self._transactions.append({
            "user_id": user_id,
            "account_id": account_id,
            "amount": amount,
            "date": on_date,
            "description": description,
            "type": "income",
        })

    # -------------------------------------------------------------------------
    # AuditStorageInterface
    # -------------------------------------------------------------------------

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
