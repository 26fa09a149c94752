"""
Command-line interface for tenantsync.

Usage (examples):
  - Show what would change (reads only):
      tsync plan --kind applications --desired ./tenant.yml \
        --base-url https://tenant.example --token "$TOKEN"

  - Reconcile the remote tenant with the desired file:
      tsync apply --kind roles --desired ./tenant.yml \
        --base-url https://tenant.example --token "$TOKEN" --yes
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import Any, Dict, Iterable, Optional

from .core.api_client import ApiClient, HttpError
from .core.config import AppConfig, load_config
from .core.errors import ConfigError, FetchError
from .core.logging_setup import build_logger, shutdown_logging
from .core.plan import ReconciliationPlan
from .core.profiles import ProfileLoader
from .core.reconciler import Reconciler
from .core.resource_api import HttpResourceApi
from .utils.reporting import print_plan, print_report

EXIT_OK = 0
EXIT_GENERIC_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_NETWORK_ERROR = 4
EXIT_OPERATIONS_FAILED = 5
EXIT_ABORTED = 6

log = logging.getLogger("ts.cli")


class SafetyGate:
    """Confirmation asked before a destructive plan executes."""

    def __init__(self, max_delete_ratio: float, *, assume_yes: bool = False, logger: Any = None) -> None:
        self.max_delete_ratio = max_delete_ratio
        self.assume_yes = assume_yes
        self.declined = False
        self.log = logger or log

    def __call__(self, plan: ReconciliationPlan) -> bool:
        if not plan.requires_confirmation(self.max_delete_ratio):
            return True
        self.log.warning(
            "Plan deletes %d of %d existing resource(s) (desired=%d)",
            len(plan.deletes), plan.existing_count, plan.desired_count,
        )
        if self.assume_yes:
            return True
        if sys.stdin is None or not sys.stdin.isatty():
            self.log.error("Confirmation required but stdin is not interactive; use --yes")
            self.declined = True
            return False
        try:
            answer = input(f"Delete {len(plan.deletes)} resource(s)? [y/N] ")
        except EOFError:
            answer = ""
        self.declined = answer.strip().lower() not in {"y", "yes"}
        return not self.declined


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tsync", description="Reconcile tenant resources with a desired-state file")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--kind", help="Resource kind (profile name, e.g. applications, roles)")
    common.add_argument("--desired", help="Desired state YAML file")
    common.add_argument("--profiles-path", action="append", help="Extra profiles directory (repeatable)")
    common.add_argument("--strict", action="store_true", default=None, help="Duplicate desired keys are an error")
    common.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    # API / HTTP
    common.add_argument("--base-url", help="Management API base URL")
    common.add_argument("--token", help="Management API bearer token")
    common.add_argument("--verify-tls", choices=["true", "false"], help="Verify TLS (https)")
    common.add_argument("--timeout-sec", type=float, help="HTTP timeout seconds")
    common.add_argument("--retries", type=int, help="HTTP retries (5xx/network)")

    # Context
    common.add_argument("--tenant", help="Tenant label used in logs")
    common.add_argument("--run-id", help="Run identifier (generated when omitted)")

    # Logging
    common.add_argument("--logs-dir", help="Logs base directory")
    common.add_argument("--console-level", help="Console log level (INFO..CRITICAL)")
    common.add_argument("--file-level", help="File log level (DEBUG..CRITICAL)")

    sub = p.add_subparsers(dest="cmd", required=True)
    sub.add_parser("plan", parents=[common], help="Show the reconciliation plan, change nothing")

    a = sub.add_parser("apply", parents=[common], help="Apply the reconciliation plan")
    a.add_argument("--concurrency", type=int, help="Operations in flight per class")
    a.add_argument("--max-delete-ratio", type=float, help="Deleted/existing ratio that needs confirmation")
    a.add_argument("--yes", action="store_true", help="Skip the delete confirmation prompt")
    a.add_argument("--dry-run", action="store_true", default=None, help="Plan only, no writes")

    return p


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Map parsed arguments onto config sections, keeping only values that were set."""
    mapping = {
        "app": {
            "run_id": args.run_id,
            "strict": args.strict,
            "concurrency": getattr(args, "concurrency", None),
            "max_delete_ratio": getattr(args, "max_delete_ratio", None),
            "dry_run": getattr(args, "dry_run", None),
        },
        "api": {
            "base_url": args.base_url,
            "token": args.token,
            "verify_tls": args.verify_tls,
            "timeout_sec": args.timeout_sec,
            "retries": args.retries,
        },
        "profiles": {"search_paths": args.profiles_path},
        "logging": {
            "base_dir": args.logs_dir,
            "console_level": args.console_level,
            "file_level": args.file_level,
        },
        "inputs": {"desired_path": args.desired},
        "context": {"tenant": args.tenant, "kind": args.kind},
    }
    out: Dict[str, Any] = {}
    for section, values in mapping.items():
        kept = {k: v for k, v in values.items() if v is not None}
        if kept:
            out[section] = kept
    return out


def _build_reconciler(cfg: AppConfig, logger: logging.LoggerAdapter) -> Reconciler:
    if not cfg.api.base_url:
        raise ConfigError("api.base_url is required (use --base-url or TSYNC_API__BASE_URL)")
    profile = ProfileLoader(search_paths=cfg.profiles.search_paths).load(cfg.context.kind)
    client = ApiClient(
        cfg.api.base_url,
        cfg.api.token,
        verify_tls=bool(cfg.api.verify_tls),
        timeout_sec=float(cfg.api.timeout_sec),
        retries=int(cfg.api.retries),
        logger=logger,
    )
    api = HttpResourceApi(client, profile, logger=logger)
    return Reconciler(api, strict=cfg.app.strict, max_workers=cfg.app.concurrency, logger=logger)


def _plan_cmd(args: argparse.Namespace, cfg: AppConfig, reconciler: Reconciler) -> int:
    plan = reconciler.plan(cfg.inputs.desired_path)
    print_plan(plan, args.format)
    return EXIT_OK


def _apply_cmd(args: argparse.Namespace, cfg: AppConfig, reconciler: Reconciler) -> int:
    gate = SafetyGate(cfg.app.max_delete_ratio, assume_yes=bool(args.yes), logger=reconciler.log)
    cancel = threading.Event()

    def _on_sigint(signum: int, frame: Any) -> None:
        reconciler.log.warning("Interrupt received: finishing in-flight operations")
        cancel.set()

    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        plan, report = reconciler.run(
            cfg.inputs.desired_path,
            confirm=gate,
            cancel_event=cancel,
            dry_run=bool(cfg.app.dry_run),
        )
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

    if gate.declined:
        print_report(plan, report, args.format, aborted="delete confirmation declined")
        return EXIT_ABORTED
    print_report(plan, report, args.format, aborted="interrupted" if report.cancelled else None)
    reconciler.log.info("Apply summary: %s", report.summary())
    if report.has_failures:
        return EXIT_OPERATIONS_FAILED
    if report.cancelled:
        return EXIT_ABORTED
    return EXIT_OK


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        cfg = load_config(_cli_overrides(args))
    except ConfigError as exc:
        log.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    logger = build_logger(
        run_id=cfg.run_id,
        action=args.cmd,
        base_dir=cfg.logging.base_dir,
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
        tenant=cfg.context.tenant,
        kind=cfg.context.kind,
    )
    logger.info("Starting tsync %s (kind=%s, desired=%s)", args.cmd, cfg.context.kind, cfg.inputs.desired_path)

    reconciler: Optional[Reconciler] = None
    try:
        reconciler = _build_reconciler(cfg, logger)
        if args.cmd == "plan":
            return _plan_cmd(args, cfg, reconciler)
        return _apply_cmd(args, cfg, reconciler)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR
    except (FetchError, HttpError) as exc:
        logger.error("Network/HTTP error: %s", exc)
        return EXIT_NETWORK_ERROR
    except Exception as exc:  # pragma: no cover (safety net)
        logger.error("Unexpected error: %s", exc, exc_info=True)
        return EXIT_GENERIC_ERROR
    finally:
        if reconciler is not None:
            reconciler.api.client.close()
        shutdown_logging()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
