class StallError(Exception):
    """Base class for order-engine failures."""


class InvalidInput(StallError, ValueError):
    """A cart item is missing an attribute its drink type requires."""


class InvalidTransition(StallError):
    """The requested status change is not allowed from the order's current status."""


class OrderNotFound(StallError, LookupError):
    pass


class LedgerConflict(StallError):
    """Another writer changed a ledger record between read and write.

    Retried inside ``store.atomic_update``; callers never see it.
    """


class StoreUnavailable(StallError):
    """A store write could not be completed; the operator should repeat the action."""
