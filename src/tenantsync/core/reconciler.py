"""
Reconciler: load → fetch (concurrently) → classify → diff → gate → execute.

Lifecycle:
  gather_states(fetch, load)          both readers run in parallel, join point
  plan_reconciliation(existing, desired)  classify + refine, no I/O
  reconcile(existing, desired, api)   plan, ask the caller's gate, execute

Structural errors (ConfigError, FetchError) propagate and stop the run before
any write. Per-operation errors end up in the report.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, Union

from .differ import refine
from .executor import Executor
from .fetcher import fetch_existing
from .loader import load_desired_state
from .matcher import classify
from .plan import ReconciliationPlan
from .profiles import ResourceProfile
from .report import ReconciliationReport
from .resource_api import HttpResourceApi, ResourceApi
from .resources import Resource

__all__ = ["gather_states", "plan_reconciliation", "reconcile", "Reconciler"]

ConfirmFunc = Callable[[ReconciliationPlan], bool]


def gather_states(
    fetch: Callable[[], List[Resource]],
    load: Callable[[], List[Resource]],
) -> Tuple[List[Resource], List[Resource]]:
    """Run the existing-state fetch and the desired-state load concurrently.

    Both must finish before this returns. A desired-state error is raised in
    preference to a fetch error when both fail.
    """
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="ts-read") as pool:
        f_existing = pool.submit(fetch)
        f_desired = pool.submit(load)
        desired_exc = f_desired.exception()
        existing_exc = f_existing.exception()
    if desired_exc is not None:
        raise desired_exc
    if existing_exc is not None:
        raise existing_exc
    return f_existing.result(), f_desired.result()


def plan_reconciliation(
    existing: Iterable[Resource],
    desired: Iterable[Resource],
    profile: Optional[ResourceProfile] = None,
    *,
    logger: Optional[logging.LoggerAdapter] = None,
) -> ReconciliationPlan:
    plan = classify(existing, desired, logger=logger)
    return refine(plan, profile, logger=logger)


def reconcile(
    existing: Iterable[Resource],
    desired: Iterable[Resource],
    api: ResourceApi,
    *,
    profile: Optional[ResourceProfile] = None,
    max_workers: int = 4,
    cancel_event: Optional[threading.Event] = None,
    confirm: Optional[ConfirmFunc] = None,
    dry_run: bool = False,
    logger: Optional[logging.LoggerAdapter] = None,
) -> Tuple[ReconciliationPlan, ReconciliationReport]:
    """Plan and apply. Returns the plan and what happened.

    `confirm(plan)` is the caller's safety gate; when it returns False (or in
    dry-run) nothing is executed and the report only carries plan counts.
    """
    log = logger or logging.getLogger("ts.reconciler")
    plan = plan_reconciliation(existing, desired, profile, logger=logger)
    log.info("Plan: %s", plan.summary())

    empty = ReconciliationReport(unchanged=len(plan.unchanged), conflicts=len(plan.conflicts))
    if dry_run:
        log.info("Dry-run: no operations executed")
        return plan, empty
    if not plan.has_changes:
        log.info("Nothing to do: existing state already matches")
        return plan, empty
    if confirm is not None and not confirm(plan):
        log.warning("Plan not confirmed: no operations executed")
        return plan, empty

    executor = Executor(api, max_workers=max_workers, cancel_event=cancel_event, logger=logger)
    return plan, executor.execute(plan, empty)


class Reconciler:
    """Wires one resource kind end to end over HTTP."""

    def __init__(
        self,
        api: HttpResourceApi,
        *,
        strict: bool = False,
        max_workers: int = 4,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.api = api
        self.profile = api.profile
        self.strict = strict
        self.max_workers = max_workers
        self.log = logger or logging.getLogger("ts.reconciler")

    def read_states(self, source: Union[str, Path, Mapping[str, Any]]) -> Tuple[List[Resource], List[Resource]]:
        return gather_states(
            lambda: fetch_existing(self.api, kind=self.profile.kind, logger=self.log),
            lambda: load_desired_state(source, self.profile, strict=self.strict, logger=self.log),
        )

    def plan(self, source: Union[str, Path, Mapping[str, Any]]) -> ReconciliationPlan:
        existing, desired = self.read_states(source)
        return plan_reconciliation(existing, desired, self.profile, logger=self.log)

    def run(
        self,
        source: Union[str, Path, Mapping[str, Any]],
        *,
        confirm: Optional[ConfirmFunc] = None,
        cancel_event: Optional[threading.Event] = None,
        dry_run: bool = False,
    ) -> Tuple[ReconciliationPlan, ReconciliationReport]:
        existing, desired = self.read_states(source)
        return reconcile(
            existing,
            desired,
            self.api,
            profile=self.profile,
            max_workers=self.max_workers,
            cancel_event=cancel_event,
            confirm=confirm,
            dry_run=dry_run,
            logger=self.log,
        )
