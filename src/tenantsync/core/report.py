"""
Reconciliation report: what actually happened during one run.

Executor workers record into the same report concurrently, so every mutation
goes through one lock. Each operation is recorded exactly once, as a
success, a failure or (on cancellation) as not attempted.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from .errors import OperationError
from .plan import Create, Operation, describe


@dataclass(frozen=True)
class Failure:
    operation: Operation
    error: OperationError

    @property
    def key(self) -> str:
        return self.operation.key

    def to_dict(self) -> Dict[str, Any]:
        out = describe(self.operation)
        out["error"] = str(self.error.cause) if self.error.cause is not None else str(self.error)
        out["error_type"] = self.error.to_dict()["error_type"]
        return out


def _identity(op: Operation) -> Tuple[str, str, str]:
    return (op.kind, op.key, "" if isinstance(op, Create) else op.remote_id)


class ReconciliationReport:
    """Synchronized accumulator of operation outcomes."""

    def __init__(self, *, unchanged: int = 0, conflicts: int = 0) -> None:
        self._lock = threading.Lock()
        self._succeeded: Dict[str, List[Operation]] = {"create": [], "update": [], "delete": []}
        self._failures: List[Failure] = []
        self._cancelled: List[Operation] = []
        self._created_ids: Dict[str, Optional[str]] = {}
        self._seen: Set[Tuple[str, str, str]] = set()
        self.unchanged = unchanged
        self.conflicts = conflicts

    # ----- recording -----
    def _mark(self, op: Operation) -> None:
        ident = _identity(op)
        if ident in self._seen:
            raise ValueError(f"operation already recorded: {op.kind} '{op.key}'")
        self._seen.add(ident)

    def record_success(self, op: Operation, remote_id: Optional[str] = None) -> None:
        with self._lock:
            self._mark(op)
            self._succeeded[op.kind].append(op)
            if isinstance(op, Create):
                self._created_ids[op.key] = remote_id

    def record_failure(self, op: Operation, error: BaseException) -> OperationError:
        err = error if isinstance(error, OperationError) else OperationError(op.kind, op.key, error)
        with self._lock:
            self._mark(op)
            self._failures.append(Failure(operation=op, error=err))
        return err

    def record_cancelled(self, op: Operation) -> None:
        with self._lock:
            self._mark(op)
            self._cancelled.append(op)

    # ----- views -----
    def recorded(self, op: Operation) -> bool:
        with self._lock:
            return _identity(op) in self._seen

    @property
    def creates_succeeded(self) -> int:
        with self._lock:
            return len(self._succeeded["create"])

    @property
    def updates_succeeded(self) -> int:
        with self._lock:
            return len(self._succeeded["update"])

    @property
    def deletes_succeeded(self) -> int:
        with self._lock:
            return len(self._succeeded["delete"])

    @property
    def failures(self) -> List[Failure]:
        with self._lock:
            return list(self._failures)

    @property
    def cancelled(self) -> List[Operation]:
        with self._lock:
            return list(self._cancelled)

    @property
    def created_ids(self) -> Dict[str, Optional[str]]:
        with self._lock:
            return dict(self._created_ids)

    @property
    def has_failures(self) -> bool:
        with self._lock:
            return bool(self._failures)

    @property
    def attempted(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._succeeded.values()) + len(self._failures)

    def succeeded(self, kind: str) -> List[Operation]:
        with self._lock:
            return list(self._succeeded[kind])

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return {
                "created": len(self._succeeded["create"]),
                "updated": len(self._succeeded["update"]),
                "deleted": len(self._succeeded["delete"]),
                "unchanged": self.unchanged,
                "conflicts": self.conflicts,
                "failed": len(self._failures),
                "cancelled": len(self._cancelled),
            }

    def summary(self) -> str:
        return " | ".join(f"{k.upper()}={v}" for k, v in self.counts().items())

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            failures = [f.to_dict() for f in sorted(self._failures, key=lambda f: _identity(f.operation))]
            cancelled = [describe(op) for op in self._cancelled]
        return {"counts": self.counts(), "failures": failures, "cancelled": cancelled}
