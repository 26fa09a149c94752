"""
Reporting helpers (table or JSON) for plans and reconciliation results.

`print_rows` auto-selects the columns that carry data and produces a compact
table that fits CLI usage. JSON output is also supported for machine
consumption.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from ..core.plan import ReconciliationPlan, describe
from ..core.report import ReconciliationReport

log = logging.getLogger(__name__)

_CANDIDATES = ["key", "action", "remote_id", "changes", "status", "error"]
_MANDATORY = {"key", "action"}


def _normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    r = dict(row)
    err = r.get("error")
    r["error"] = str(err).strip()[:160] if err else ""
    changes = r.get("changes")
    if isinstance(changes, (list, tuple)):
        r["changes"] = ",".join(str(c) for c in changes)
    return r


def plan_rows(plan: ReconciliationPlan) -> List[Dict[str, Any]]:
    """One row per planned operation, conflict and unchanged key."""
    rows: List[Dict[str, Any]] = []
    for op in plan.operations():
        d = describe(op)
        rows.append(
            {
                "key": d["key"],
                "action": d["kind"].upper(),
                "remote_id": d.get("remote_id", ""),
                "changes": sorted(d.get("patch", {})),
                "status": "planned",
            }
        )
    for c in plan.conflicts:
        rows.append({"key": c.key, "action": "CONFLICT", "status": "skipped", "error": c.reason})
    for m in plan.unchanged:
        rows.append({"key": m.key, "action": "NOOP", "remote_id": m.existing.remote_id, "status": "unchanged"})
    return rows


def report_rows(plan: ReconciliationPlan, report: ReconciliationReport) -> List[Dict[str, Any]]:
    """Plan rows with the outcome of every executed operation filled in."""
    failed = {(f.operation.kind, f.key): f for f in report.failures}
    cancelled = {(op.kind, op.key) for op in report.cancelled}
    created_ids = report.created_ids
    done = {(op.kind, op.key) for k in ("create", "update", "delete") for op in report.succeeded(k)}

    rows = plan_rows(plan)
    for row in rows:
        ident = (row["action"].lower(), row["key"])
        if ident in failed:
            row["status"] = "failed"
            row["error"] = failed[ident].to_dict()["error"]
        elif ident in cancelled:
            row["status"] = "cancelled"
        elif ident in done:
            row["status"] = "ok"
            if ident[0] == "create":
                row["remote_id"] = created_ids.get(row["key"]) or ""
    return rows


def print_rows(rows: List[Dict[str, Any]], fmt: str = "table") -> None:
    """Render result rows as a table or JSON.

    Args:
        rows: List of dict rows (key, action, remote_id, changes, status, error).
        fmt: Either ``"table"`` (default) or ``"json"``.
    """
    if fmt == "json":
        print(json.dumps(rows, indent=2, default=str))
        return

    norm_rows = [_normalize_row(r) for r in rows]
    if not norm_rows:
        print("(no resources)")
        return

    def _present(v: Any) -> bool:
        return not (v is None or v == "" or v == [])

    cols = [c for c in _CANDIDATES if c in _MANDATORY or any(_present(r.get(c)) for r in norm_rows)]

    def _fmt(v: Any) -> str:
        s = "" if v is None else str(v)
        return s if s else "—"

    widths = {c: len(c) for c in cols}
    for r in norm_rows:
        for c in cols:
            widths[c] = max(widths[c], len(_fmt(r.get(c))))

    print("| " + " | ".join(c.ljust(widths[c]) for c in cols) + " |")
    print("| " + " | ".join("-" * widths[c] for c in cols) + " |")
    for r in norm_rows:
        print("| " + " | ".join(_fmt(r.get(c)).ljust(widths[c]) for c in cols) + " |")


def print_plan(plan: ReconciliationPlan, fmt: str = "table") -> None:
    if fmt == "json":
        print(json.dumps(plan.to_dict(), indent=2, default=str))
        return
    print_rows(plan_rows(plan), fmt)
    print(" | ".join(f"{k.upper()}={v}" for k, v in plan.summary().items()))


def print_report(
    plan: ReconciliationPlan,
    report: ReconciliationReport,
    fmt: str = "table",
    *,
    aborted: Optional[str] = None,
) -> None:
    if fmt == "json":
        out = {"plan": plan.to_dict(), "report": report.to_dict()}
        if aborted:
            out["aborted"] = aborted
        print(json.dumps(out, indent=2, default=str))
        return
    print_rows(report_rows(plan, report), fmt)
    if aborted:
        log.debug("reporting: run aborted (%s)", aborted)
        print(f"ABORTED: {aborted}")
    print(report.summary())
