"""
Due-Soon Prioritizer

A rule flagged due_date_aware funds obligations that fall due before the
next paycheck, earliest first, before normal rule processing resumes.

Two sources of obligations are merged:
1. Recurring charges whose next occurrence falls in the window and that
   are linked to a category, needing charge.amount - category.current_amount
2. Categories whose own due_date falls in the window, needing
   planned_amount - current_amount

On equal due dates charges are funded before categories.

Anything already overdue counts as due soon.
"""

from datetime import date, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict

from waterfall.models.results import AllocationResult
from waterfall.models.rules import TargetType
from waterfall.models.targets import CatalogSnapshot

DEFAULT_LOOKAHEAD_DAYS = 14


class DueSoonItem(BaseModel):
    """One obligation competing for due-soon funding."""
    model_config = ConfigDict(frozen=True)

    category_id: str
    name: str
    needed: int
    due_date: date


def lookahead_end(
    as_of_date: date,
    next_pay_date: Optional[date] = None,
    days: int = DEFAULT_LOOKAHEAD_DAYS,
) -> date:
    """End of the due-soon window: the next pay date when known, else as_of + days."""
    if next_pay_date is not None:
        return next_pay_date
    return as_of_date + timedelta(days=days)


def _label(name: str, due: date) -> str:
    return f"{name} (Due {due.month}/{due.day})"


def collect_due_soon(catalog: CatalogSnapshot, window_end: date) -> list[DueSoonItem]:
    """Every obligation due on or before window_end, earliest first."""
    items: list[DueSoonItem] = []

    for charge in catalog.charges:
        if charge.due_date > window_end or not charge.category_id:
            continue
        category = catalog.category(charge.category_id)
        if category is None:
            continue
        items.append(DueSoonItem(
            category_id=category.id,
            name=_label(charge.name, charge.due_date),
            needed=charge.amount - category.current_amount,
            due_date=charge.due_date,
        ))

    for category in catalog.categories:
        if category.due_date and category.due_date <= window_end:
            items.append(DueSoonItem(
                category_id=category.id,
                name=_label(category.name, category.due_date),
                needed=category.shortfall,
                due_date=category.due_date,
            ))

    # Stable: equal dates keep charges ahead of categories
    items.sort(key=lambda item: item.due_date)
    return items


def fund_due_soon(
    catalog: CatalogSnapshot,
    as_of_date: date,
    window_end: Optional[date],
    remaining_pool: int,
    rule_id: str,
) -> list[AllocationResult]:
    """
    Greedily fund due-soon shortfalls until the pool runs out.

    Returns one result per funded item; the caller subtracts their sum
    from its pool.
    """
    end = window_end or lookahead_end(as_of_date)
    results: list[AllocationResult] = []
    remaining = remaining_pool

    for item in collect_due_soon(catalog, end):
        if remaining <= 0:
            break
        to_allocate = min(item.needed, remaining)
        if to_allocate <= 0:
            continue
        results.append(AllocationResult(
            target_type=TargetType.CATEGORY,
            target_id=item.category_id,
            target_name=item.name,
            amount=to_allocate,
            rule_id=rule_id,
        ))
        remaining -= to_allocate

    return results
