"""
Error taxonomy for the fan-out engine.

Every failure the engine raises derives from FanoutError so callers can catch
the whole family at once. Authorization rejection is deliberately absent: a
rejected recipient or event is dropped silently, it is not an error.

- ValidationError: bad input, raised before any side effect
- NotFoundError: a record the operation depends on does not exist
- ConflictError: unique-index violation (duplicate subscription)
- UpstreamError: the store, transport or access predicate failed
- DeliveryError: the email side channel failed (logged, never propagated)
"""


class FanoutError(Exception):
    """Base class for all engine errors."""


class ValidationError(FanoutError):
    """Input is missing or malformed."""


class NotFoundError(FanoutError):
    """A required record does not exist."""


class ConflictError(FanoutError):
    """A unique index would be violated."""

    def __init__(self, collection: str, key: dict):
        self.collection = collection
        self.key = key
        super().__init__(f"Duplicate key in {collection}: {key}")


class UpstreamError(FanoutError):
    """An external collaborator failed."""


class DeliveryError(FanoutError):
    """An email could not be delivered."""
