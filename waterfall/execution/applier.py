"""
Execution Applier

Turns resolver results into durable balance changes.

IMPORTANT: Every write is an INCREMENT on the current stored value,
never an overwrite with a value computed from the snapshot the resolver
saw. Two executions that hit the same category therefore compose.

There is no rollback. If a write fails part-way, ApplyError says
exactly which results landed so the caller can reconcile; an execution
must never be blindly retried.
"""

from typing import Optional

import structlog

from waterfall.models.results import AllocationResult
from waterfall.models.rules import TargetType
from waterfall.services.storage import BalanceWriterInterface


logger = structlog.get_logger(__name__)


class ApplyError(Exception):
    """
    A balance write failed after zero or more results were applied.

    Attributes:
        applied: results whose write succeeded, in order
        failed: the result whose write raised
        pending: results that were never attempted
    """

    def __init__(
        self,
        applied: list[AllocationResult],
        failed: AllocationResult,
        pending: list[AllocationResult],
        cause: Optional[Exception] = None,
    ):
        self.applied = applied
        self.failed = failed
        self.pending = pending
        self.cause = cause
        super().__init__(
            f"Failed to apply {failed.amount} cents to {failed.target_type.value} "
            f"{failed.target_id} after {len(applied)} results were applied: {cause}"
        )


class ExecutionApplier:
    """Applies results to balances through a BalanceWriterInterface."""

    def __init__(self, writer: BalanceWriterInterface):
        self._writer = writer

    async def _apply_one(self, result: AllocationResult) -> Optional[int]:
        if result.target_type == TargetType.CATEGORY:
            return await self._writer.increment_category_available(result.target_id, result.amount)
        if result.target_type == TargetType.GOAL:
            return await self._writer.increment_goal_current(result.target_id, result.amount)
        if result.target_type == TargetType.ACCOUNT:
            return await self._writer.increment_account_balance(result.target_id, result.amount)
        # Unallocated money stays where it is
        return None

    async def apply(self, results: list[AllocationResult]) -> list[AllocationResult]:
        """
        Apply results in order.

        Returns:
            The results that changed a balance

        Raises:
            ApplyError: on the first failed write
        """
        applied: list[AllocationResult] = []
        actionable = [
            r for r in results
            if r.amount > 0 and r.target_type != TargetType.UNALLOCATED and r.target_id
        ]

        for index, result in enumerate(actionable):
            try:
                new_value = await self._apply_one(result)
            except Exception as e:
                logger.error(
                    "apply_failed",
                    target_type=result.target_type.value,
                    target_id=result.target_id,
                    amount=result.amount,
                    applied_count=len(applied),
                    error=str(e),
                )
                raise ApplyError(applied, result, actionable[index + 1:], e) from e

            logger.debug(
                "balance_incremented",
                target_type=result.target_type.value,
                target_id=result.target_id,
                amount=result.amount,
                new_value=new_value,
            )
            applied.append(result)

        return applied
