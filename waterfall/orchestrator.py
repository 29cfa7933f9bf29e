"""
Main Orchestrator for Waterfall

This module ties together all the components and defines the
end-to-end flows for:
1. Allocation (money in an account -> categories and goals)
2. Distribution (paycheck -> accounts)
3. Income templates (income -> accounts -> named categories)
4. Full paycheck (distribution, then each account's allocation)
5. Rule setup (validate -> save, reorder)

DESIGN DECISION: Every flow has the same two steps:
- fetch a snapshot, then resolve it into plain results (preview)
- hand those same results to the applier (execute)

Preview never writes. Execute is never retried automatically: a failure
part-way surfaces as ApplyError with what was already applied.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from waterfall.audit import AuditLogger, create_correlation_id
from waterfall.config import AllocationSettings, get_settings
from waterfall.execution import ApplyError, ExecutionApplier
from waterfall.models.results import (
    AccountAllocationPreview,
    AllocationResult,
    AllocationSummary,
    ConfiguredTotals,
    DistributionLine,
    FullAllocationPreview,
    ResolutionOutcome,
    TemplateOutcome,
    percentage_of,
)
from waterfall.models.rules import CategoryTemplate, Rule, TargetType
from waterfall.models.targets import CatalogSnapshot, Target
from waterfall.resolvers import (
    AllocationResolver,
    DistributionResolver,
    NoRulesConfiguredError,
    TemplateResolver,
    configured_totals,
    describe_distribution,
    lookahead_end,
)
from waterfall.services.storage import (
    AuditStorageInterface,
    BalanceWriterInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsCatalog,
    GoogleSheetsClient,
    GoogleSheetsRuleStore,
    InMemoryStore,
    RuleStoreInterface,
    TargetCatalogInterface,
)
from waterfall.validation import RuleValidator


logger = structlog.get_logger(__name__)


class _Flow:
    """Dependencies shared by every flow."""

    def __init__(
        self,
        rule_store: RuleStoreInterface,
        catalog: TargetCatalogInterface,
        balance_writer: Optional[BalanceWriterInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AllocationSettings] = None,
    ):
        self._rules = rule_store
        self._catalog = catalog
        self._writer = balance_writer
        self._audit_logger = audit_logger
        self._settings = settings or AllocationSettings()

    def _applier(self) -> ExecutionApplier:
        if self._writer is None:
            raise RuntimeError("Execute needs a balance writer; this flow is preview-only")
        return ExecutionApplier(self._writer)

    async def _accounts_for(self, rules: list[Rule]) -> tuple[Target, ...]:
        accounts = []
        seen = set()
        for rule in rules:
            if rule.target_type != TargetType.ACCOUNT or rule.target_id in seen:
                continue
            seen.add(rule.target_id)
            account = await self._catalog.get_account(rule.target_id)
            if account is not None:
                accounts.append(account)
        return tuple(accounts)

    async def _apply(
        self,
        owner_id: str,
        results: list[AllocationResult],
        correlation_id: UUID,
    ) -> list[AllocationResult]:
        try:
            return await self._applier().apply(results)
        except ApplyError as e:
            if self._audit_logger:
                await self._audit_logger.log_apply_failed(
                    owner_id=owner_id,
                    applied_count=len(e.applied),
                    error_message=str(e.cause),
                    correlation_id=correlation_id,
                )
            raise

    async def _audit_outcome(
        self,
        flow: str,
        outcome: ResolutionOutcome,
        executed: bool,
        correlation_id: UUID,
    ) -> None:
        if not self._audit_logger:
            return
        await self._audit_logger.log_rules_skipped(
            outcome.skipped_rule_ids, outcome.owner_id, correlation_id
        )
        await self._audit_logger.log_resolved(
            flow=flow,
            owner_id=outcome.owner_id,
            total_amount=outcome.total_amount,
            allocated=outcome.total_allocated,
            result_count=len(outcome.results),
            executed=executed,
            correlation_id=correlation_id,
        )

    async def _audit_no_rules(self, error: NoRulesConfiguredError, correlation_id: UUID) -> None:
        if self._audit_logger:
            await self._audit_logger.log_no_rules(error.owner_kind, error.owner_id, correlation_id)


class AllocationFlow(_Flow):
    """
    Account -> categories and goals.

    The snapshot holds the budget's categories, the user's goals and,
    only when some rule is due-date aware, the user's upcoming charges.
    """

    async def _snapshot(
        self,
        rules: list[Rule],
        budget_id: str,
        user_id: str,
        window_end: date,
    ) -> CatalogSnapshot:
        categories = await self._catalog.list_categories_for_budget(budget_id)
        goals = await self._catalog.list_goals_for_user(user_id)
        charges = []
        if any(rule.due_date_aware for rule in rules):
            charges = await self._catalog.list_due_soon_charges(user_id, window_end)
        return CatalogSnapshot(
            categories=tuple(categories),
            goals=tuple(goals),
            charges=tuple(charges),
        )

    async def _resolve(
        self,
        account_id: str,
        total_amount: int,
        as_of_date: date,
        budget_id: str,
        user_id: str,
        next_pay_date: Optional[date],
        correlation_id: UUID,
    ) -> ResolutionOutcome:
        rules = await self._rules.list_rules(account_id)
        window_end = lookahead_end(
            as_of_date,
            next_pay_date,
            days=self._settings.due_soon_lookahead_days,
        )
        snapshot = await self._snapshot(rules, budget_id, user_id, window_end)
        resolver = AllocationResolver(
            snapshot,
            as_of_date,
            lookahead_end=window_end,
            unallocated_label=self._settings.unallocated_label,
        )
        try:
            return resolver.resolve(account_id, rules, total_amount)
        except NoRulesConfiguredError as e:
            await self._audit_no_rules(e, correlation_id)
            raise

    async def preview(
        self,
        account_id: str,
        total_amount: int,
        as_of_date: date,
        budget_id: str,
        user_id: str,
        next_pay_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ResolutionOutcome:
        """
        Show how an account's money would be split. Writes nothing.

        Raises:
            NoRulesConfiguredError: if the account has no allocation rules
        """
        correlation_id = correlation_id or create_correlation_id()
        outcome = await self._resolve(
            account_id, total_amount, as_of_date, budget_id, user_id,
            next_pay_date, correlation_id,
        )
        await self._audit_outcome("allocation", outcome, False, correlation_id)
        return outcome

    async def execute(
        self,
        account_id: str,
        total_amount: int,
        as_of_date: date,
        budget_id: str,
        user_id: str,
        next_pay_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ResolutionOutcome:
        """
        Resolve and apply. Category and goal balances are incremented;
        the account balance itself is left alone.

        Raises:
            NoRulesConfiguredError: if the account has no allocation rules
            ApplyError: if a balance write fails part-way
        """
        correlation_id = correlation_id or create_correlation_id()
        outcome = await self._resolve(
            account_id, total_amount, as_of_date, budget_id, user_id,
            next_pay_date, correlation_id,
        )
        await self._apply(account_id, outcome.results, correlation_id)
        await self._audit_outcome("allocation", outcome, True, correlation_id)
        return outcome


class DistributionFlow(_Flow):
    """Paycheck -> accounts."""

    async def _resolve(
        self,
        plan_id: str,
        paycheck_amount: int,
        correlation_id: UUID,
    ) -> tuple[ResolutionOutcome, list[Rule]]:
        rules = await self._rules.list_rules(plan_id)
        snapshot = CatalogSnapshot(accounts=await self._accounts_for(rules))
        try:
            outcome = DistributionResolver(snapshot).resolve(plan_id, rules, paycheck_amount)
        except NoRulesConfiguredError as e:
            await self._audit_no_rules(e, correlation_id)
            raise
        return outcome, rules

    async def _warn_unallocated(self, outcome: ResolutionOutcome, correlation_id: UUID) -> None:
        if outcome.has_shortfall and self._settings.warn_on_unallocated and self._audit_logger:
            await self._audit_logger.log_funds_left_unallocated(
                outcome.owner_id, outcome.remaining, correlation_id
            )

    async def preview(
        self,
        plan_id: str,
        paycheck_amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> ResolutionOutcome:
        """
        Show how a paycheck would be split across accounts.

        Money no rule claims is returned as outcome.remaining with an
        advisory, not raised.
        """
        correlation_id = correlation_id or create_correlation_id()
        outcome, _ = await self._resolve(plan_id, paycheck_amount, correlation_id)
        await self._audit_outcome("distribution", outcome, False, correlation_id)
        await self._warn_unallocated(outcome, correlation_id)
        return outcome

    async def preview_lines(
        self,
        plan_id: str,
        paycheck_amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> list[DistributionLine]:
        """Preview enriched with account names, allocation types and percentages."""
        correlation_id = correlation_id or create_correlation_id()
        outcome, rules = await self._resolve(plan_id, paycheck_amount, correlation_id)
        await self._audit_outcome("distribution", outcome, False, correlation_id)
        return describe_distribution(outcome, rules)

    async def execute(
        self,
        plan_id: str,
        paycheck_amount: int,
        user_id: str,
        paycheck_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> ResolutionOutcome:
        """
        Resolve, increment account balances and record one income
        transaction per funded account.

        Raises:
            NoRulesConfiguredError: if the plan has no rules
            ApplyError: if a balance write fails part-way, or if an income
                record fails after every balance was incremented (failed
                is then the result whose income wasn't recorded)
        """
        correlation_id = correlation_id or create_correlation_id()
        outcome, _ = await self._resolve(plan_id, paycheck_amount, correlation_id)
        applied = await self._apply(plan_id, outcome.results, correlation_id)

        for index, result in enumerate(applied):
            try:
                await self._writer.record_income(
                    user_id=user_id,
                    account_id=result.target_id,
                    amount=result.amount,
                    on_date=paycheck_date,
                    description="Paycheck distribution",
                )
            except Exception as e:
                # Every balance landed; only the income records are incomplete
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type="income_record_failed",
                        error_message=str(e),
                        details={
                            "plan_id": plan_id,
                            "account_id": result.target_id,
                            "amount": result.amount,
                            "recorded_count": index,
                        },
                        correlation_id=correlation_id,
                    )
                raise ApplyError(applied, result, applied[index + 1:], e) from e

        await self._audit_outcome("distribution", outcome, True, correlation_id)
        await self._warn_unallocated(outcome, correlation_id)
        return outcome


class TemplateFlow(_Flow):
    """Income -> accounts -> named categories."""

    async def _resolve(
        self,
        income_source_id: str,
        income_amount: int,
        budget_id: str,
        correlation_id: UUID,
    ) -> TemplateOutcome:
        splits = await self._rules.list_rules(income_source_id)
        templates = await self._rules.list_templates(income_source_id)
        snapshot = CatalogSnapshot(
            accounts=await self._accounts_for(splits),
            categories=tuple(await self._catalog.list_categories_for_budget(budget_id)),
        )
        try:
            return TemplateResolver(snapshot).resolve(
                income_source_id, splits, templates, income_amount
            )
        except NoRulesConfiguredError as e:
            await self._audit_no_rules(e, correlation_id)
            raise

    async def _audit(self, outcome: TemplateOutcome, executed: bool, correlation_id: UUID) -> None:
        if not self._audit_logger:
            return
        await self._audit_logger.log_rules_skipped(
            outcome.skipped_rule_ids, outcome.income_source_id, correlation_id
        )
        await self._audit_logger.log_resolved(
            flow="template",
            owner_id=outcome.income_source_id,
            total_amount=outcome.income_amount,
            allocated=outcome.total_allocated,
            result_count=sum(len(share.categories) for share in outcome.accounts),
            executed=executed,
            correlation_id=correlation_id,
        )

    async def preview(
        self,
        income_source_id: str,
        income_amount: int,
        budget_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> TemplateOutcome:
        """Show the two-level split. Missing categories are reported, not created."""
        correlation_id = correlation_id or create_correlation_id()
        outcome = await self._resolve(income_source_id, income_amount, budget_id, correlation_id)
        await self._audit(outcome, False, correlation_id)
        return outcome

    async def execute(
        self,
        income_source_id: str,
        income_amount: int,
        budget_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> TemplateOutcome:
        """
        Create the categories that don't exist yet, then fund every line.

        Returns the outcome with category ids filled in for created
        categories.

        Raises:
            NoRulesConfiguredError: if the income source has no account splits
            ApplyError: if a balance write fails part-way
        """
        correlation_id = correlation_id or create_correlation_id()
        outcome = await self._resolve(income_source_id, income_amount, budget_id, correlation_id)

        created: dict[tuple[str, str], str] = {}
        results: list[AllocationResult] = []

        for share in outcome.accounts:
            for index, line in enumerate(share.categories):
                category_id = line.category_id
                if category_id is None:
                    key = (share.account_id, line.category_name)
                    if key not in created:
                        category = await self._catalog.create_category(
                            budget_id,
                            share.account_id,
                            line.category_name,
                            line.category_type,
                        )
                        created[key] = category.id
                        if self._audit_logger:
                            await self._audit_logger.log_category_created(
                                category.id, category.name, share.account_id, correlation_id
                            )
                    category_id = created[key]
                    share.categories[index] = line.model_copy(
                        update={"category_id": category_id}
                    )

                results.append(AllocationResult(
                    target_type=TargetType.CATEGORY,
                    target_id=category_id,
                    target_name=line.category_name,
                    amount=line.amount,
                    rule_id=line.template_id,
                ))

        await self._apply(income_source_id, results, correlation_id)
        await self._audit(outcome, True, correlation_id)
        return outcome

    async def configured_totals(self, income_source_id: str) -> tuple[ConfiguredTotals, ConfiguredTotals]:
        """(account split totals, category template totals) for an income source."""
        splits = await self._rules.list_rules(income_source_id)
        templates = await self._rules.list_templates(income_source_id)
        return configured_totals(splits), configured_totals(templates)


class PaycheckFlow:
    """
    Full paycheck, both tiers: the paycheck is distributed across
    accounts, then each account's share runs through that account's
    allocation rules.

    An account without allocation rules keeps its share, which is
    reported as unallocated instead of failing the whole preview.
    """

    def __init__(self, distribution: DistributionFlow, allocation: AllocationFlow):
        self._distribution = distribution
        self._allocation = allocation

    async def _second_tier(
        self,
        distributed: ResolutionOutcome,
        paycheck_date: date,
        budget_id: str,
        user_id: str,
        next_pay_date: Optional[date],
        execute: bool,
        correlation_id: UUID,
    ) -> FullAllocationPreview:
        run = self._allocation.execute if execute else self._allocation.preview
        preview = FullAllocationPreview(paycheck_amount=distributed.total_amount)

        for result in distributed.results:
            try:
                outcome = await run(
                    result.target_id,
                    result.amount,
                    paycheck_date,
                    budget_id,
                    user_id,
                    next_pay_date=next_pay_date,
                    correlation_id=correlation_id,
                )
                allocations, configured = outcome.results, True
            except NoRulesConfiguredError:
                allocations, configured = [], False

            account = AccountAllocationPreview(
                account_id=result.target_id,
                account_name=result.target_name,
                amount=result.amount,
                percentage=percentage_of(result.amount, distributed.total_amount),
                allocations=allocations,
                rules_configured=configured,
            )
            preview.distribution.append(account)
            preview.total_allocated += account.total_allocated
            preview.unallocated += account.unallocated

        # Money the distribution itself left behind
        preview.unallocated += distributed.remaining
        return preview

    async def preview_full(
        self,
        plan_id: str,
        paycheck_amount: int,
        paycheck_date: date,
        budget_id: str,
        user_id: str,
        next_pay_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> FullAllocationPreview:
        """Where every cent of the paycheck would go. Writes nothing."""
        correlation_id = correlation_id or create_correlation_id()
        distributed = await self._distribution.preview(plan_id, paycheck_amount, correlation_id)
        return await self._second_tier(
            distributed, paycheck_date, budget_id, user_id, next_pay_date,
            execute=False, correlation_id=correlation_id,
        )

    async def execute_full(
        self,
        plan_id: str,
        paycheck_amount: int,
        paycheck_date: date,
        budget_id: str,
        user_id: str,
        next_pay_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> FullAllocationPreview:
        """
        Execute the distribution, then each funded account's allocation.

        Raises:
            NoRulesConfiguredError: if the paycheck plan has no rules
            ApplyError: if any balance write fails; earlier tiers stay applied
        """
        correlation_id = correlation_id or create_correlation_id()
        distributed = await self._distribution.execute(
            plan_id, paycheck_amount, user_id, paycheck_date, correlation_id
        )
        return await self._second_tier(
            distributed, paycheck_date, budget_id, user_id, next_pay_date,
            execute=True, correlation_id=correlation_id,
        )

    @staticmethod
    def summarize(preview: FullAllocationPreview) -> AllocationSummary:
        """
        Dashboard totals.

        Accounts are bucketed into checking or savings by name; category
        allocations count as bills.
        """
        summary = AllocationSummary(unallocated=preview.unallocated)
        for account in preview.distribution:
            name = account.account_name.lower()
            if "checking" in name:
                summary.total_to_checking += account.amount
            elif "savings" in name:
                summary.total_to_savings += account.amount

            for allocation in account.allocations:
                if allocation.target_type == TargetType.GOAL:
                    summary.total_to_goals += allocation.amount
                elif allocation.target_type == TargetType.CATEGORY:
                    summary.total_to_bills += allocation.amount
        return summary

    async def summary(
        self,
        plan_id: str,
        paycheck_amount: int,
        paycheck_date: date,
        budget_id: str,
        user_id: str,
    ) -> AllocationSummary:
        preview = await self.preview_full(
            plan_id, paycheck_amount, paycheck_date, budget_id, user_id
        )
        return self.summarize(preview)


class RuleSetupFlow:
    """
    Rule and template editing.

    Nothing reaches the rule store without passing RuleValidator first.
    """

    def __init__(
        self,
        rule_store: RuleStoreInterface,
        validator: Optional[RuleValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._rules = rule_store
        self._validator = validator or RuleValidator(rule_store)
        self._audit_logger = audit_logger

    async def _reject(self, entity_id: str, result) -> None:
        if self._audit_logger:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
                if i.severity == "error"
            ]
            await self._audit_logger.log_rule_rejected(entity_id, issues)

    async def add_rule(self, rule: Rule) -> Rule:
        """
        Validate and save a rule (insert or replace).

        Raises:
            InvalidRuleError: if validation finds any error
        """
        result = await self._validator.validate(rule)
        if result.has_errors:
            await self._reject(rule.id, result)
        self._validator.ensure_valid(result)

        saved = await self._rules.save_rule(rule)
        if self._audit_logger:
            await self._audit_logger.log_rule_saved(saved.id, saved.owner_id)
        return saved

    async def reorder_rules(self, owner_id: str, ordering: list[tuple[str, int]]) -> list[Rule]:
        """Set new priorities and return the owner's rules in their new order."""
        await self._rules.reorder_rules(ordering)
        if self._audit_logger:
            await self._audit_logger.log_rules_reordered(
                owner_id, [rule_id for rule_id, _ in ordering]
            )
        return await self._rules.list_rules(owner_id)

    async def add_template(self, template: CategoryTemplate) -> CategoryTemplate:
        """
        Validate and save a category template.

        Raises:
            InvalidRuleError: if validation finds any error
        """
        existing = await self._rules.list_templates(template.income_source_id)
        result = self._validator.validate_template(template, existing)
        if result.has_errors:
            await self._reject(template.id, result)
        self._validator.ensure_valid(result)
        return await self._rules.save_template(template)


class AppComponents:
    """Everything create_app_components wires together."""

    def __init__(
        self,
        allocation: AllocationFlow,
        distribution: DistributionFlow,
        templates: TemplateFlow,
        paycheck: PaycheckFlow,
        rule_setup: RuleSetupFlow,
        sheets_client: Optional[GoogleSheetsClient] = None,
    ):
        self.allocation = allocation
        self.distribution = distribution
        self.templates = templates
        self.paycheck = paycheck
        self.rule_setup = rule_setup
        self.sheets_client = sheets_client


def create_app_components(
    use_storage: bool = True,
    store: Optional[InMemoryStore] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use Google Sheets storage.
                    Set to False to run against an in-memory store.
        store: In-memory store to use when Google Sheets is off
              (a fresh one if omitted).
    """
    sheets_client = None
    audit_storage: Optional[AuditStorageInterface] = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            rule_store: RuleStoreInterface = GoogleSheetsRuleStore(sheets_client)
            catalog = GoogleSheetsCatalog(sheets_client)
            target_catalog: TargetCatalogInterface = catalog
            writer: BalanceWriterInterface = catalog
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            use_storage = False
            sheets_client = None

    if not use_storage:
        memory = store or InMemoryStore()
        rule_store = target_catalog = writer = memory
        audit_storage = memory

    app_settings = get_settings().app
    level = "DEBUG" if app_settings.debug_mode else app_settings.log_level
    logging.getLogger("waterfall").setLevel(level)
    logger.info(
        "components_created",
        environment=app_settings.app_environment,
        storage="google_sheets" if use_storage else "memory",
    )

    audit_logger = AuditLogger(audit_storage)
    settings = get_settings().allocation

    allocation = AllocationFlow(rule_store, target_catalog, writer, audit_logger, settings)
    distribution = DistributionFlow(rule_store, target_catalog, writer, audit_logger, settings)

    return AppComponents(
        allocation=allocation,
        distribution=distribution,
        templates=TemplateFlow(rule_store, target_catalog, writer, audit_logger, settings),
        paycheck=PaycheckFlow(distribution, allocation),
        rule_setup=RuleSetupFlow(rule_store, audit_logger=audit_logger),
        sheets_client=sheets_client,
    )
