"""
In-memory resource model shared by the loader, fetcher, planner and executor.

A Resource is immutable: field values are deep-frozen on construction
(dicts become read-only mappings, lists become tuples) so the same instance
can be read from several executor threads at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


def freeze(value: Any) -> Any:
    """Return a deep read-only copy of a JSON-like value."""
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of :func:`freeze`: plain dicts and lists, ready for JSON."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class Resource:
    """One synchronizable resource of a given kind.

    Attributes:
        key: Identity key (usually the name); matched case-sensitively.
        fields: Field name -> value. Never includes the remote identifier.
        remote_id: Identifier assigned by the remote service; None for desired resources.
    """
    key: str
    fields: Mapping[str, Any] = field(default_factory=dict, hash=False)
    remote_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", freeze(self.fields))

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def to_payload(self) -> Dict[str, Any]:
        return thaw(self.fields)

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.key, self.remote_id or "")

    def __repr__(self) -> str:  # pragma: no cover (debug helper)
        rid = f", remote_id={self.remote_id!r}" if self.remote_id else ""
        return f"Resource(key={self.key!r}{rid}, fields={sorted(self.fields)})"
