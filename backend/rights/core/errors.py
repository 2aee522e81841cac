"""Error types raised by the rights engine.

Every error carries the identifiers an operator needs to retry the call.
"""

from typing import Any, Iterable


class RightsError(Exception):
    """Base class for rights engine errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, **self.context}


class ConfigurationError(RightsError):
    """A permission, page or action key does not resolve to an active catalog entry.

    Only ever logged by the resolver; the guard sees a plain deny.
    """


class NotFoundError(RightsError):
    """A mutation names a role, user, page or permission that does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id
        )
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(RightsError):
    """A mutation payload failed validation; nothing was written."""

    def __init__(self, message: str, invalid_ids: Iterable[Any] = (), **context: Any):
        invalid = sorted(set(invalid_ids), key=str)
        super().__init__(message, invalid_ids=invalid, **context)
        self.invalid_ids = invalid


class StorageError(RightsError):
    """The store failed or timed out during a mutation; the transaction was rolled back."""
