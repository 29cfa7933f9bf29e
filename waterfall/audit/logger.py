"""
Audit Logger

DESIGN DECISION: Every preview, execution and rule change is logged.
This provides:
1. Traceability of where each cent went
2. Debugging capability when a rule set surprises the user
3. A record of partial executions to reconcile by hand

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the flow if logging fails)
- Supports correlation IDs to trace the events of one flow call
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from waterfall.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from waterfall.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("waterfall.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_resolved(
        self,
        flow: str,
        owner_id: str,
        total_amount: int,
        allocated: int,
        result_count: int,
        executed: bool,
        correlation_id: UUID,
    ) -> None:
        """Log a preview or execution of one of the three flows."""
        event = AuditEventBuilder.resolved(
            flow=flow,
            owner_id=owner_id,
            total_amount=total_amount,
            allocated=allocated,
            result_count=result_count,
            executed=executed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rules_skipped(
        self,
        rule_ids: list[str],
        owner_id: str,
        correlation_id: UUID,
    ) -> None:
        """Log every rule a resolver skipped because its target is gone."""
        for rule_id in rule_ids:
            await self.log(AuditEventBuilder.rule_skipped(rule_id, owner_id, correlation_id))

    async def log_funds_left_unallocated(
        self,
        owner_id: str,
        remaining: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.funds_left_unallocated(
            owner_id=owner_id,
            remaining=remaining,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_no_rules(
        self,
        owner_kind: str,
        owner_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.no_rules_configured(
            owner_kind=owner_kind,
            owner_id=owner_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_category_created(
        self,
        category_id: str,
        name: str,
        account_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.category_created(
            category_id=category_id,
            name=name,
            account_id=account_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rule_saved(self, rule_id: str, owner_id: str) -> None:
        await self.log(AuditEventBuilder.rule_saved(rule_id, owner_id))

    async def log_rule_rejected(self, rule_id: str, issues: list[dict]) -> None:
        await self.log(AuditEventBuilder.rule_rejected(rule_id, issues))

    async def log_rules_reordered(self, owner_id: str, rule_ids: list[str]) -> None:
        await self.log(AuditEventBuilder.rules_reordered(owner_id, rule_ids))

    async def log_apply_failed(
        self,
        owner_id: str,
        applied_count: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a partially applied execution."""
        event = AuditEventBuilder.apply_failed(
            owner_id=owner_id,
            applied_count=applied_count,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a flow call (preview, execute, rule edit).
    Pass it through all subsequent operations.
    """
    return uuid4()
