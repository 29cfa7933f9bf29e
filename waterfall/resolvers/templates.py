"""
Template Resolver (income -> accounts -> categories)

Two phases composed from the simpler resolvers:

PHASE 1 - the income is split across accounts by the income source's
account-split rules (distribution shape).

PHASE 2 - each account's share is split across that account's category
templates (allocation shape, category targets only). A template that is
not tied to an account split applies to every account.

Templates name categories instead of pointing at them. The resolver
reports whether each named category already exists in the account; the
execute flow creates the missing ones. Preview never creates anything.

Percentages in both phases round half-up to the nearest cent, where the
account-level resolvers floor.
"""

from decimal import ROUND_HALF_UP, Decimal

from waterfall.models.results import (
    AccountShare,
    ConfiguredTotals,
    TemplateCategoryLine,
    TemplateOutcome,
)
from waterfall.models.rules import AllocationType, CategoryTemplate, Rule, order_rules
from waterfall.models.targets import CatalogSnapshot
from waterfall.resolvers.amounts import calculate_rule_amount
from waterfall.resolvers.distribution import DistributionResolver


class TemplateResolver:
    """Applies an income source's splits and templates to an income amount."""

    def __init__(self, catalog: CatalogSnapshot, rounding: str = ROUND_HALF_UP):
        self._catalog = catalog
        self._rounding = rounding

    def resolve(
        self,
        income_source_id: str,
        account_splits: list[Rule],
        templates: list[CategoryTemplate],
        income_amount: int,
    ) -> TemplateOutcome:
        """
        Raises:
            NoRulesConfiguredError: if the income source has no account splits
        """
        phase_one = DistributionResolver(
            self._catalog,
            rounding=self._rounding,
            owner_kind="income_source",
        ).resolve(income_source_id, account_splits, income_amount)

        # Several splits may feed the same account; their shares add up.
        shares: dict[str, AccountShare] = {}
        for result in phase_one.results:
            share = shares.get(result.target_id)
            if share is None:
                shares[result.target_id] = AccountShare(
                    account_id=result.target_id,
                    account_name=result.target_name,
                    rule_id=result.rule_id,
                    amount=result.amount,
                )
            else:
                share.amount += result.amount

        split_accounts = {split.id: split.target_id for split in account_splits}
        ordered_templates = order_rules(templates)

        for share in shares.values():
            applicable = [
                template for template in ordered_templates
                if template.account_split_id is None
                or split_accounts.get(template.account_split_id) == share.account_id
            ]
            self._fill_account(share, applicable)

        return TemplateOutcome(
            income_source_id=income_source_id,
            income_amount=income_amount,
            accounts=list(shares.values()),
            remaining_income=phase_one.remaining,
            skipped_rule_ids=phase_one.skipped_rule_ids,
        )

    def _fill_account(self, share: AccountShare, templates: list[CategoryTemplate]) -> None:
        existing = self._catalog.categories_for_account(share.account_id)
        remaining = share.amount

        for template in templates:
            if remaining <= 0:
                break

            amount = calculate_rule_amount(template, remaining, share.amount, self._rounding)
            if amount <= 0:
                continue

            category = next(
                (c for c in existing if c.name == template.category_name),
                None,
            )
            share.categories.append(TemplateCategoryLine(
                template_id=template.id,
                category_name=template.category_name,
                category_type=template.category_type,
                category_id=category.id if category else None,
                amount=amount,
                exists=category is not None,
            ))
            remaining -= amount

        share.remaining = remaining


def configured_totals(items: list) -> ConfiguredTotals:
    """
    Sum what account splits or category templates are configured to claim.

    Shown next to the template editor so the user can spot a set of
    percentages that adds up to more than 100.
    """
    totals = ConfiguredTotals()
    for item in items:
        if item.allocation_type == AllocationType.PERCENTAGE and item.percentage is not None:
            totals.total_percentage += Decimal(item.percentage)
        elif item.allocation_type == AllocationType.FIXED and item.amount:
            totals.total_fixed += item.amount
        elif item.allocation_type == AllocationType.REMAINDER:
            totals.has_remainder = True
    return totals
