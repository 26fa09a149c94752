"""
Executor: apply a refined plan against a ResourceApi.

- Classes run in order: creates, then updates, then deletes (a barrier
  between classes).
- Within a class, operations are submitted in identity-key order to a
  bounded thread pool; at most `max_workers` are in flight.
- Every operation is attempted independently; a failure never blocks the
  others. No retries here (the HTTP client owns retry policy).
- Cancellation (cancel event or Ctrl-C anywhere in the dispatch loop):
  nothing new is submitted, in-flight operations finish and are recorded,
  the rest are recorded as cancelled.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, Optional, Sequence

from .plan import Create, Delete, Operation, ReconciliationPlan, Update
from .report import ReconciliationReport
from .resource_api import ResourceApi

__all__ = ["Executor"]


class Executor:
    """Runs plan operations with bounded per-class concurrency."""

    def __init__(
        self,
        api: ResourceApi,
        *,
        max_workers: int = 4,
        cancel_event: Optional[threading.Event] = None,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.api = api
        self.max_workers = max_workers
        self.cancel_event = cancel_event or threading.Event()
        self.log = logger or logging.getLogger("ts.executor")

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def execute(self, plan: ReconciliationPlan, report: Optional[ReconciliationReport] = None) -> ReconciliationReport:
        if not plan.is_refined:
            raise ValueError("plan has matches that were not differenced; call refine() first")
        report = report or ReconciliationReport(unchanged=len(plan.unchanged), conflicts=len(plan.conflicts))

        for label, batch in (("create", plan.creates), ("update", plan.updates), ("delete", plan.deletes)):
            if not batch:
                continue
            self.log.info("Executing %d %s operation(s)", len(batch), label)
            self._run_batch(batch, report)

        if self.cancelled:
            self.log.warning("Run cancelled: %d operation(s) not attempted", len(report.cancelled))
        self.log.info("Execution summary (%d attempted): %s", report.attempted, report.summary())
        return report

    # ------------- Internal -------------

    def _apply(self, op: Operation) -> Optional[str]:
        if isinstance(op, Create):
            return self.api.create(op.resource)
        if isinstance(op, Update):
            self.api.update(op.remote_id, op.patch_payload(), op.current_payload())
            return None
        if isinstance(op, Delete):
            self.api.delete(op.remote_id)
            return None
        raise TypeError(f"unknown operation type: {type(op).__name__}")

    def _collect(self, op: Operation, fut: Future, report: ReconciliationReport) -> None:
        exc = fut.exception()
        if exc is None:
            report.record_success(op, fut.result())
            self.log.debug("%s '%s' succeeded", op.kind.upper(), op.key)
        else:
            err = report.record_failure(op, exc)
            self.log.error("%s failed: %s", op.kind.upper(), err)

    def _run_batch(self, ops: Sequence[Operation], report: ReconciliationReport) -> None:
        workers = min(self.max_workers, len(ops))
        in_flight: Dict[Future, Operation] = {}
        submitted = 0

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ts-exec") as pool:
            try:
                while submitted < len(ops) or in_flight:
                    while submitted < len(ops) and len(in_flight) < workers and not self.cancelled:
                        in_flight[pool.submit(self._apply, ops[submitted])] = ops[submitted]
                        submitted += 1
                    if not in_flight:
                        break
                    done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                    for fut in done:
                        self._collect(in_flight[fut], fut, report)
                        del in_flight[fut]
            except KeyboardInterrupt:
                self.log.warning("Interrupted: waiting for %d in-flight operation(s)", len(in_flight))
                self.cancel_event.set()
            finally:
                # submitted operations may have reached the remote side
                for fut, op in in_flight.items():
                    if not report.recorded(op):
                        wait([fut])
                        self._collect(op, fut, report)
                for op in ops[submitted:]:
                    if not report.recorded(op):
                        report.record_cancelled(op)
