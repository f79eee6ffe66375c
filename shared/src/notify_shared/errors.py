"""Request-level error taxonomy shared by services and the HTTP gateway.

Only these errors surface to callers. Delivery faults never do: they are
recorded as failed delivery records instead.
"""


class DispatchError(Exception):
    """Base class for errors surfaced to the caller."""


class NotFoundError(DispatchError):
    """Referenced entity does not exist or is not owned by the caller."""


class PreconditionError(NotFoundError):
    """A dispatch precondition failed (e.g. the recipient does not exist).

    Nothing is persisted when this is raised.
    """


class AddressValidationError(DispatchError):
    """Channel address is malformed for its declared kind."""


class ConflictError(DispatchError):
    """Entity already exists (duplicate owner/kind/address channel)."""


class InvalidTransitionError(DispatchError):
    """Requested status transition is not allowed from the current state."""
