"""Execution package: applies resolved results to balances."""

from waterfall.execution.applier import ApplyError, ExecutionApplier

__all__ = ["ApplyError", "ExecutionApplier"]
