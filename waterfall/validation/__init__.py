"""Rule validation package."""

from waterfall.validation.validator import InvalidRuleError, RuleValidator

__all__ = ["InvalidRuleError", "RuleValidator"]
