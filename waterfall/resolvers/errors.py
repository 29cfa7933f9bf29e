"""Errors raised by the resolvers."""


class AllocationError(Exception):
    """Base exception for allocation engine errors."""
    pass


class NoRulesConfiguredError(AllocationError):
    """
    The owner has no rules yet.

    Callers showing a preview should treat this as "not set up yet"
    and prompt the user to add rules, not as a failure.
    """

    def __init__(self, owner_id: str, owner_kind: str = "account"):
        self.owner_id = owner_id
        self.owner_kind = owner_kind
        super().__init__(
            f"No rules configured for this {owner_kind.replace('_', ' ')}: {owner_id}"
        )
