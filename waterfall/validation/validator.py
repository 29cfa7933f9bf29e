"""
Write-Time Rule Validation

DESIGN DECISION: Rules are validated when they are SAVED, not when they
are resolved. A resolver has to cope with whatever is in the store, so
it only skips what it cannot use. This module is where bad configuration
gets rejected, loudly, with a message the user can act on.

STAGE 1 - SHAPE:
- target present when the target type needs one
- fixed rules carry a non-negative amount
- percentage rules carry 0 < percentage <= 100
- due-date awareness only on category rules
- overflow settings only on goal rules, and complete

STAGE 2 - SIBLINGS:
- at most one remainder rule per owner

IMPORTANT: Validation NEVER silently fixes issues.
"""

from decimal import Decimal
from typing import Iterable, Optional

from waterfall.models.rules import (
    TARGETLESS_TYPES,
    AllocationType,
    CategoryTemplate,
    Rule,
    TargetType,
    ValidationIssue,
    ValidationResult,
)
from waterfall.services.storage import RuleStoreInterface


class InvalidRuleError(Exception):
    """A rule or template failed validation and was not saved."""

    def __init__(self, result: ValidationResult):
        self.result = result
        self.issues = result.issues
        messages = [i.message for i in result.issues if i.severity == "error"]
        super().__init__("Invalid rule: " + "; ".join(messages))


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _warning(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
        suggested_fix=fix,
    )


def _check_amounts(allocation_type: AllocationType, amount, percentage) -> list[ValidationIssue]:
    """Checks shared by rules and templates."""
    issues = []

    if allocation_type == AllocationType.FIXED:
        if amount is None:
            issues.append(_error(
                "amount", "missing",
                "Fixed allocation requires an amount",
                "Enter the amount in cents",
            ))
        elif amount < 0:
            issues.append(_error(
                "amount", "negative",
                "Fixed allocation must be a positive amount",
            ))
        elif amount == 0:
            issues.append(_warning(
                "amount", "zero",
                "Fixed allocation of 0 will never move any money",
            ))

    if allocation_type == AllocationType.PERCENTAGE:
        if percentage is None:
            issues.append(_error(
                "percentage", "missing",
                "Percentage allocation requires a percentage",
            ))
        elif not (Decimal(0) < Decimal(percentage) <= Decimal(100)):
            issues.append(_error(
                "percentage", "out_of_range",
                "Percentage allocation must be between 0 and 100",
                "Use a value greater than 0 and at most 100",
            ))

    return issues


class RuleValidator:
    """
    Validates rules and templates before they are persisted.

    Stage 1 runs without storage.
    Stage 2 needs the owner's other rules, either passed in or fetched
    from the rule store.
    """

    def __init__(self, rule_store: Optional[RuleStoreInterface] = None):
        self._store = rule_store

    def _validate_shape(self, rule: Rule) -> list[ValidationIssue]:
        issues = _check_amounts(rule.allocation_type, rule.amount, rule.percentage)

        if rule.target_type not in TARGETLESS_TYPES and not rule.target_id:
            issues.append(_error(
                "target_id", "missing",
                f"A {rule.target_type.value} rule needs a target",
                "Pick the target this rule should fund",
            ))

        if rule.allocation_type == AllocationType.SPLIT and rule.target_type != TargetType.SPLIT_REMAINING:
            issues.append(_error(
                "allocation_type", "not_supported",
                "Split allocation is only valid on split-remaining rules",
                "Use fixed, percentage or remainder allocation",
            ))

        # A paycheck split into an account must move money
        if (
            rule.target_type == TargetType.ACCOUNT
            and rule.allocation_type == AllocationType.FIXED
            and rule.amount == 0
        ):
            issues = [i for i in issues if i.issue_type != "zero"]
            issues.append(_error(
                "amount", "not_positive",
                "Fixed account allocation must be greater than 0",
                "Enter the amount in cents",
            ))

        if rule.due_date_aware and rule.target_type != TargetType.CATEGORY:
            issues.append(_error(
                "due_date_aware", "not_supported",
                "Only category rules can prioritize bills that are due soon",
            ))

        has_overflow_id = bool(rule.overflow_target_id)
        has_overflow_type = rule.overflow_target_type is not None
        if has_overflow_id or has_overflow_type:
            if rule.target_type != TargetType.GOAL:
                issues.append(_error(
                    "overflow_target_id", "not_supported",
                    "Only goal rules can send overflow elsewhere",
                ))
            elif has_overflow_id != has_overflow_type:
                issues.append(_error(
                    "overflow_target_type", "incomplete",
                    "Overflow needs both a target and a target type",
                ))
            elif rule.overflow_target_id == rule.target_id:
                issues.append(_error(
                    "overflow_target_id", "self_reference",
                    "A goal cannot overflow into itself",
                ))

        return issues

    def _validate_siblings(
        self,
        rule: Rule,
        existing: Iterable[Rule],
    ) -> list[ValidationIssue]:
        issues = []
        if rule.allocation_type == AllocationType.REMAINDER:
            others = [
                r for r in existing
                if r.id != rule.id
                and r.owner_id == rule.owner_id
                and r.allocation_type == AllocationType.REMAINDER
            ]
            if others:
                issues.append(_error(
                    "allocation_type", "duplicate_remainder",
                    "Only one remainder rule is allowed per owner",
                    "Change the existing remainder rule instead",
                ))
        return issues

    def validate_rule(
        self,
        rule: Rule,
        existing: Iterable[Rule] = (),
    ) -> ValidationResult:
        """Validate a rule against the owner's other rules."""
        issues = self._validate_shape(rule)
        issues.extend(self._validate_siblings(rule, existing))
        return ValidationResult(
            rule_id=rule.id,
            is_valid=not any(i.severity == "error" for i in issues),
            issues=issues,
        )

    async def validate(self, rule: Rule) -> ValidationResult:
        """Validate a rule, fetching its siblings from the rule store if one is configured."""
        existing: list[Rule] = []
        if self._store is not None:
            existing = await self._store.list_rules(rule.owner_id)
        return self.validate_rule(rule, existing)

    def validate_template(
        self,
        template: CategoryTemplate,
        existing: Iterable[CategoryTemplate] = (),
    ) -> ValidationResult:
        """Validate a category template against its income source's other templates."""
        issues = _check_amounts(template.allocation_type, template.amount, template.percentage)

        if template.allocation_type == AllocationType.SPLIT:
            issues.append(_error(
                "allocation_type", "not_supported",
                "Templates use fixed, percentage or remainder allocation",
            ))

        if template.allocation_type == AllocationType.REMAINDER:
            if any(
                t.id != template.id
                and t.income_source_id == template.income_source_id
                and t.allocation_type == AllocationType.REMAINDER
                for t in existing
            ):
                issues.append(_error(
                    "allocation_type", "duplicate_remainder",
                    "Only one remainder template is allowed per income source",
                ))

        return ValidationResult(
            rule_id=template.id,
            is_valid=not any(i.severity == "error" for i in issues),
            issues=issues,
        )

    @staticmethod
    def ensure_valid(result: ValidationResult) -> None:
        """Raise InvalidRuleError if the result has any errors."""
        if result.has_errors:
            raise InvalidRuleError(result)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Summary shown next to the rule editor."""
        if result.is_valid and not result.warnings:
            return "Rule looks good."

        lines = []
        if result.has_errors:
            lines.append("This rule can't be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please double-check:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
