"""
Reconciliation plan and operation types.

A plan is an immutable snapshot computed once per run from the existing and
desired sets. Every set in it is ordered by identity key (then remote id),
which is also the order the executor dispatches operations in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union

from .errors import ConflictError
from .resources import Resource, freeze, thaw


# =========================
# Operations
# =========================

@dataclass(frozen=True)
class Create:
    resource: Resource
    kind: str = field(default="create", init=False)

    @property
    def key(self) -> str:
        return self.resource.key


@dataclass(frozen=True)
class Update:
    """Changed fields of one matched resource.

    `current` is the remote state seen at planning time (not part of equality).
    """
    key: str
    remote_id: str
    patch: Mapping[str, Any] = field(hash=False)
    current: Mapping[str, Any] = field(default_factory=dict, hash=False, compare=False, repr=False)
    kind: str = field(default="update", init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "patch", freeze(self.patch))
        object.__setattr__(self, "current", freeze(self.current))

    def patch_payload(self) -> Dict[str, Any]:
        return thaw(self.patch)

    def current_payload(self) -> Dict[str, Any]:
        return thaw(self.current)


@dataclass(frozen=True)
class Delete:
    key: str
    remote_id: str
    kind: str = field(default="delete", init=False)


Operation = Union[Create, Update, Delete]


def describe(op: Operation) -> Dict[str, Any]:
    """JSON-friendly view of an operation (for reports and logs)."""
    out: Dict[str, Any] = {"kind": op.kind, "key": op.key}
    if isinstance(op, Update):
        out["remote_id"] = op.remote_id
        out["patch"] = op.patch_payload()
    elif isinstance(op, Delete):
        out["remote_id"] = op.remote_id
    return out


# =========================
# Pairings
# =========================

@dataclass(frozen=True)
class Match:
    """An existing and a desired resource sharing one identity key."""
    existing: Resource
    desired: Resource

    @property
    def key(self) -> str:
        return self.desired.key


@dataclass(frozen=True)
class Conflict:
    """Resources that could not be matched unambiguously.

    `side` is "desired", "existing" or "both": where the key is duplicated.
    """
    key: str
    side: str
    desired: Tuple[Resource, ...] = ()
    existing: Tuple[Resource, ...] = ()

    @property
    def error(self) -> ConflictError:
        return ConflictError(self.key, self.side)

    @property
    def reason(self) -> str:
        return str(self.error)


# =========================
# Plan
# =========================

@dataclass(frozen=True)
class ReconciliationPlan:
    """Disjoint operation sets plus conflicts and unchanged pairs.

    `pending` holds matched pairs that have not been differenced yet; the
    differencer turns each of them into an Update or moves it to `unchanged`.
    """
    creates: Tuple[Create, ...] = ()
    updates: Tuple[Update, ...] = ()
    deletes: Tuple[Delete, ...] = ()
    conflicts: Tuple[Conflict, ...] = ()
    unchanged: Tuple[Match, ...] = ()
    pending: Tuple[Match, ...] = ()
    existing_count: int = 0
    desired_count: int = 0

    @property
    def is_refined(self) -> bool:
        return not self.pending

    @property
    def has_changes(self) -> bool:
        return bool(self.creates or self.updates or self.deletes)

    def operations(self) -> Iterator[Operation]:
        """All operations in execution order: creates, updates, deletes."""
        yield from self.creates
        yield from self.updates
        yield from self.deletes

    def delete_ratio(self, existing_count: Optional[int] = None) -> float:
        total = self.existing_count if existing_count is None else existing_count
        if total <= 0:
            return 0.0
        return len(self.deletes) / total

    def requires_confirmation(self, max_delete_ratio: float = 0.5) -> bool:
        """True when deletes should be confirmed by the caller before executing.

        An empty desired set that would delete anything always requires it.
        """
        if not self.deletes:
            return False
        if self.desired_count == 0:
            return True
        return self.delete_ratio() > max_delete_ratio

    def summary(self) -> Dict[str, int]:
        return {
            "create": len(self.creates),
            "update": len(self.updates),
            "delete": len(self.deletes),
            "unchanged": len(self.unchanged),
            "conflict": len(self.conflicts),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary(),
            "operations": [describe(op) for op in self.operations()],
            "unchanged": [m.key for m in self.unchanged],
            "conflicts": [
                {
                    "key": c.key,
                    "side": c.side,
                    "desired": len(c.desired),
                    "existing": [r.remote_id for r in c.existing],
                    "reason": c.reason,
                }
                for c in self.conflicts
            ],
        }
