"""
Differencer: minimal field-level patch for a matched (existing, desired) pair.

Only fields declared in the desired resource are compared; fields present
only on the existing side are never touched. Values are compared
structurally (nested mappings and lists), not by reference.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from .plan import Match, ReconciliationPlan, Update
from .profiles import ResourceProfile
from .resources import Resource, thaw

__all__ = ["deep_equal", "compute_patch", "refine"]

_MISSING = object()


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality for JSON-like values.

    Unlike ``==``, booleans never equal numbers (``True != 1``), so a type
    change is reported as a difference.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if set(a) != set(b):
            return False
        return all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (Mapping, list, tuple)) or isinstance(b, (Mapping, list, tuple)):
        return False
    return a == b


def compute_patch(
    existing: Resource,
    desired: Resource,
    profile: Optional[ResourceProfile] = None,
) -> Dict[str, Any]:
    """Return {field: new value} for every declared field that differs."""
    ignored = profile.ignore_fields if profile else frozenset()
    patch: Dict[str, Any] = {}
    for name in sorted(desired.fields):
        if name in ignored:
            continue
        want = desired.fields[name]
        have = existing.get(name, _MISSING)
        if have is not _MISSING:
            if profile:
                if deep_equal(profile.comparable(name, want), profile.comparable(name, have)):
                    continue
            elif deep_equal(want, have):
                continue
        patch[name] = thaw(want)
    return patch


def refine(
    plan: ReconciliationPlan,
    profile: Optional[ResourceProfile] = None,
    *,
    logger: Optional[logging.LoggerAdapter] = None,
) -> ReconciliationPlan:
    """Turn pending matches into updates; empty patches become `unchanged`."""
    log = logger or logging.getLogger("ts.differ")
    updates: List[Update] = list(plan.updates)
    unchanged: List[Match] = list(plan.unchanged)

    for match in plan.pending:
        patch = compute_patch(match.existing, match.desired, profile)
        if patch:
            updates.append(
                Update(
                    key=match.key,
                    remote_id=str(match.existing.remote_id),
                    patch=patch,
                    current=match.existing.fields,
                )
            )
            log.debug("Will update '%s': fields=%s", match.key, sorted(patch))
        else:
            unchanged.append(match)

    updates.sort(key=lambda u: (u.key, u.remote_id))
    unchanged.sort(key=lambda m: m.key)
    return dataclasses.replace(plan, updates=tuple(updates), unchanged=tuple(unchanged), pending=())
