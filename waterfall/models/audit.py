"""
Audit Models for Waterfall

Every preview, execution and rule change is logged for audit purposes.
This provides:
1. Traceability of where money was sent and why
2. Debugging information when a rule set behaves unexpectedly
3. A record of executions, which must never be blindly retried

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Account -> categories / goals
    ALLOCATION_PREVIEWED = "allocation_previewed"
    ALLOCATION_EXECUTED = "allocation_executed"

    # Paycheck -> accounts
    DISTRIBUTION_PREVIEWED = "distribution_previewed"
    DISTRIBUTION_EXECUTED = "distribution_executed"
    FUNDS_LEFT_UNALLOCATED = "funds_left_unallocated"

    # Income -> accounts -> categories
    TEMPLATE_PREVIEWED = "template_previewed"
    TEMPLATE_EXECUTED = "template_executed"
    CATEGORY_CREATED = "category_created"

    # Configuration
    RULE_SAVED = "rule_saved"
    RULE_REJECTED = "rule_rejected"
    RULES_REORDERED = "rules_reordered"
    RULE_SKIPPED = "rule_skipped"
    NO_RULES_CONFIGURED = "no_rules_configured"

    # Failures
    APPLY_FAILED = "apply_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about? (rule owner, rule, category)
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'paycheck_plan', 'rule')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one execute call)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.resolved("allocation", account_id, ...)
        event = AuditEventBuilder.rule_skipped(rule_id, owner_id, correlation_id)
    """

    _PREVIEWED = {
        "allocation": AuditEventType.ALLOCATION_PREVIEWED,
        "distribution": AuditEventType.DISTRIBUTION_PREVIEWED,
        "template": AuditEventType.TEMPLATE_PREVIEWED,
    }
    _EXECUTED = {
        "allocation": AuditEventType.ALLOCATION_EXECUTED,
        "distribution": AuditEventType.DISTRIBUTION_EXECUTED,
        "template": AuditEventType.TEMPLATE_EXECUTED,
    }
    _OWNER_KINDS = {
        "allocation": "account",
        "distribution": "paycheck_plan",
        "template": "income_source",
    }

    @staticmethod
    def resolved(
        flow: str,
        owner_id: str,
        total_amount: int,
        allocated: int,
        result_count: int,
        executed: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        table = AuditEventBuilder._EXECUTED if executed else AuditEventBuilder._PREVIEWED
        verb = "executed" if executed else "previewed"
        return AuditEvent(
            event_type=table[flow],
            entity_type=AuditEventBuilder._OWNER_KINDS[flow],
            entity_id=owner_id,
            correlation_id=correlation_id,
            description=(
                f"{flow.capitalize()} {verb}: {allocated} of {total_amount} cents "
                f"across {result_count} results"
            ),
            details={
                "total_amount": total_amount,
                "allocated": allocated,
                "result_count": result_count,
            },
        )

    @staticmethod
    def funds_left_unallocated(
        owner_id: str,
        remaining: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FUNDS_LEFT_UNALLOCATED,
            severity=AuditSeverity.WARNING,
            entity_type="paycheck_plan",
            entity_id=owner_id,
            correlation_id=correlation_id,
            description=f"{remaining} cents left unallocated",
            details={"remaining": remaining},
        )

    @staticmethod
    def rule_skipped(
        rule_id: str,
        owner_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description="Rule skipped: its target no longer exists",
            details={"owner_id": owner_id},
        )

    @staticmethod
    def no_rules_configured(
        owner_kind: str,
        owner_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NO_RULES_CONFIGURED,
            severity=AuditSeverity.WARNING,
            entity_type=owner_kind,
            entity_id=owner_id,
            correlation_id=correlation_id,
            description=f"No rules configured for this {owner_kind.replace('_', ' ')}",
        )

    @staticmethod
    def category_created(
        category_id: str,
        name: str,
        account_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_CREATED,
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
            description=f"Category created from template: {name}",
            details={"name": name, "account_id": account_id},
        )

    @staticmethod
    def rule_saved(rule_id: str, owner_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_SAVED,
            entity_type="rule",
            entity_id=rule_id,
            description="Rule saved",
            details={"owner_id": owner_id},
        )

    @staticmethod
    def rule_rejected(rule_id: str, issues: list[dict]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="rule",
            entity_id=rule_id,
            description=f"Rule rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def rules_reordered(owner_id: str, rule_ids: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULES_REORDERED,
            entity_type="owner",
            entity_id=owner_id,
            description=f"{len(rule_ids)} rules reordered",
            details={"rule_ids": rule_ids},
        )

    @staticmethod
    def apply_failed(
        owner_id: str,
        applied_count: int,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.APPLY_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="owner",
            entity_id=owner_id,
            correlation_id=correlation_id,
            description=f"Apply failed after {applied_count} results were applied",
            error_message=error_message,
            details={"applied_count": applied_count},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
