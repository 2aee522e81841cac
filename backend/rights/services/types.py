"""Value types shared by the stores and the resolver."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from rights.core.errors import ValidationError
from rights.core.flags import to_flag


@dataclass(frozen=True)
class PermissionUpdate:
    """One ``{permission_id, is_allowed}`` pair of a grant or override batch."""

    permission_id: int
    is_allowed: bool


def normalize_updates(items: Iterable[Any]) -> list[PermissionUpdate]:
    """Coerce a batch into validated ``PermissionUpdate`` values.

    Accepts ``PermissionUpdate`` instances, objects or mappings exposing
    ``permission_id``/``is_allowed``, and ``(permission_id, is_allowed)``
    pairs. A permission may appear only once per batch.

    Raises:
        ValidationError: on a malformed item, a non-positive id or a duplicate
    """
    updates: list[PermissionUpdate] = []
    bad: list[Any] = []
    for item in items:
        try:
            if isinstance(item, PermissionUpdate):
                update = item
            elif isinstance(item, Mapping):
                update = PermissionUpdate(int(item["permission_id"]), to_flag(item["is_allowed"]))
            elif isinstance(item, tuple):
                permission_id, is_allowed = item
                update = PermissionUpdate(int(permission_id), to_flag(is_allowed))
            else:
                update = PermissionUpdate(int(item.permission_id), to_flag(item.is_allowed))
        except (KeyError, TypeError, ValueError, AttributeError):
            bad.append(item)
            continue
        if update.permission_id <= 0:
            bad.append(update.permission_id)
            continue
        updates.append(update)

    if bad:
        raise ValidationError("Malformed permission updates", invalid_ids=[str(b) for b in bad])

    seen: set[int] = set()
    duplicates: set[int] = set()
    for update in updates:
        if update.permission_id in seen:
            duplicates.add(update.permission_id)
        seen.add(update.permission_id)
    if duplicates:
        raise ValidationError("Permission listed more than once in one batch", invalid_ids=duplicates)
    return updates


@dataclass
class ReplaceResult:
    """Outcome of an atomic bulk replace."""

    success: bool
    rows_affected: int


class ItemStatus(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    REMOVED = "removed"
    ABSENT = "absent"
    INVALID = "invalid"
    NOT_APPLIED = "not_applied"


@dataclass
class OverrideItemResult:
    permission_id: int
    status: ItemStatus
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status not in (ItemStatus.INVALID, ItemStatus.NOT_APPLIED)


@dataclass
class OverrideBatchResult:
    """Per-item report of an override batch. Every requested id appears exactly once."""

    success: bool
    results: list[OverrideItemResult] = field(default_factory=list)

    @property
    def failed(self) -> list[int]:
        return [r.permission_id for r in self.results if not r.success]


class DecisionSource(str, Enum):
    OVERRIDE = "override"
    ROLE = "role"
    DEFAULT = "default"
    CONFIGURATION = "configuration"
    ERROR = "error"


@dataclass(frozen=True)
class AccessDecision:
    """Result of one resolution, with the evidence that produced it."""

    allowed: bool
    source: DecisionSource
    permission_key: str | None = None
    role_ids: tuple[int, ...] = ()

    @classmethod
    def deny(cls, source: DecisionSource, permission_key: str | None = None) -> "AccessDecision":
        return cls(allowed=False, source=source, permission_key=permission_key)
