"""
Matcher/classifier: pair existing and desired resources by identity key.

Both sides are indexed once (linear time). Keys duplicated on either side are
routed to `conflicts` together with every resource carrying that key on the
other side, and take no part in creates/updates/deletes. Indices are local
to each call. Conflict members are ordered by remote id (existing) and by
content (desired), so input order never shows in the plan.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .plan import Conflict, Create, Delete, Match, ReconciliationPlan
from .resources import Resource

__all__ = ["classify", "index_by_key"]


def index_by_key(resources: Iterable[Resource]) -> Dict[str, List[Resource]]:
    """Map identity key -> every resource with that key (exact, case-sensitive)."""
    index: Dict[str, List[Resource]] = defaultdict(list)
    for res in resources:
        index[res.key].append(res)
    return dict(index)


def _content_order(res: Resource) -> str:
    return json.dumps(res.to_payload(), sort_keys=True, default=str)


def _conflict_side(in_desired: int, in_existing: int) -> str:
    if in_desired > 1 and in_existing > 1:
        return "both"
    return "desired" if in_desired > 1 else "existing"


def classify(
    existing: Iterable[Resource],
    desired: Iterable[Resource],
    *,
    logger: Optional[logging.LoggerAdapter] = None,
) -> ReconciliationPlan:
    """Build an unrefined plan: creates, deletes, conflicts and pending matches."""
    log = logger or logging.getLogger("ts.matcher")
    existing = list(existing)
    desired = list(desired)

    for res in existing:
        if not res.remote_id:
            raise ValueError(f"existing resource '{res.key}' has no remote identifier")

    d_index = index_by_key(desired)
    e_index = index_by_key(existing)

    conflicts: List[Conflict] = []
    creates: List[Create] = []
    deletes: List[Delete] = []
    pending: List[Match] = []

    for key in sorted(set(d_index) | set(e_index)):
        d_items = d_index.get(key, [])
        e_items = e_index.get(key, [])

        if len(d_items) > 1 or len(e_items) > 1:
            side = _conflict_side(len(d_items), len(e_items))
            conflicts.append(
                Conflict(
                    key=key,
                    side=side,
                    desired=tuple(sorted(d_items, key=_content_order)),
                    existing=tuple(sorted(e_items, key=lambda r: r.sort_key)),
                )
            )
            log.warning("Conflict on key '%s' (duplicated in %s state)", key, side)
        elif d_items and not e_items:
            creates.append(Create(d_items[0]))
        elif e_items and not d_items:
            deletes.append(Delete(key=key, remote_id=str(e_items[0].remote_id)))
        else:
            pending.append(Match(existing=e_items[0], desired=d_items[0]))

    plan = ReconciliationPlan(
        creates=tuple(creates),
        deletes=tuple(deletes),
        conflicts=tuple(conflicts),
        pending=tuple(pending),
        existing_count=len(existing),
        desired_count=len(desired),
    )
    log.debug(
        "Classified: create=%d match=%d delete=%d conflict=%d",
        len(creates), len(pending), len(deletes), len(conflicts),
    )
    return plan
