"""
Data Models Package

This package contains all Pydantic models used by Waterfall.
Rules and targets flow in, results flow out.
"""

from waterfall.models.rules import (
    AllocationType,
    CategoryTemplate,
    CategoryType,
    OverflowTargetType,
    Rule,
    TargetType,
    ValidationIssue,
    ValidationResult,
    new_id,
    order_rules,
)
from waterfall.models.targets import (
    CatalogSnapshot,
    DueSoonCharge,
    Target,
    TargetKind,
)
from waterfall.models.results import (
    AccountAllocationPreview,
    AccountShare,
    AllocationResult,
    AllocationSummary,
    ConfiguredTotals,
    DistributionLine,
    FullAllocationPreview,
    ResolutionOutcome,
    TemplateCategoryLine,
    TemplateOutcome,
)
from waterfall.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Rule models
    "AllocationType",
    "CategoryTemplate",
    "CategoryType",
    "OverflowTargetType",
    "Rule",
    "TargetType",
    "ValidationIssue",
    "ValidationResult",
    "new_id",
    "order_rules",
    # Target models
    "CatalogSnapshot",
    "DueSoonCharge",
    "Target",
    "TargetKind",
    # Result models
    "AccountAllocationPreview",
    "AccountShare",
    "AllocationResult",
    "AllocationSummary",
    "ConfiguredTotals",
    "DistributionLine",
    "FullAllocationPreview",
    "ResolutionOutcome",
    "TemplateCategoryLine",
    "TemplateOutcome",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
