"""
Logging for tenantsync runs.

`build_logger` configures the `ts` logger tree once per run:

- stderr console handler (INFO by default)
- logs/app.log, rotated at UTC midnight, 14 files kept (DEBUG by default)
- logs/YYYY-MM-DD/<action>_<run_id>.log holding this run only

Every record reaching these handlers is stamped with the run context
(run_id, action, tenant, kind). Records from the plain `ts.<component>`
loggers used by the core modules get the same stamp, so they format like
adapter records. Bearer tokens, client secrets, passwords and API keys are
masked in messages, in %-args and in logged payload mappings.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

REDACTED = "***REDACTED***"
CONTEXT_FIELDS = ("run_id", "action", "tenant", "kind")

_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "run=%(run_id)s action=%(action)s tenant=%(tenant)s kind=%(kind)s | %(message)s"
)

_SECRET_KEYS = {"client_secret", "access_token", "token", "password", "api_key", "apikey", "authorization"}
_BEARER = re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE)
_KEY_VALUE = re.compile(
    r"""(["']?\b(?:client_secret|access_token|token|password|api[_-]?key)["']?\s*[=:]\s*["']?)([^"',\s|}]+)""",
    re.IGNORECASE,
)


def mask_secrets(value: Any, key: Optional[str] = None) -> Any:
    """Mask secrets in a string, or in the values of a (nested) mapping/list."""
    if key is not None and key.lower() in _SECRET_KEYS and isinstance(value, str):
        return REDACTED
    if isinstance(value, str):
        return _KEY_VALUE.sub(rf"\1{REDACTED}", _BEARER.sub(rf"\1{REDACTED}", value))
    if isinstance(value, dict):
        return {k: mask_secrets(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(mask_secrets(v) for v in value)
    return value


class MaskSecretsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = mask_secrets(record.msg)
        if isinstance(record.args, dict):
            record.args = mask_secrets(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(mask_secrets(a) for a in record.args)
        return True


class RunContextFilter(logging.Filter):
    """Stamp run_id/action/tenant/kind on records that do not carry them."""

    def __init__(self, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__()
        self.context = {f: (context or {}).get(f) or "-" for f in CONTEXT_FIELDS}

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in self.context.items():
            if getattr(record, name, None) is None:
                setattr(record, name, value)
        return True


def _level(name: str, default: int) -> int:
    value = logging.getLevelName(str(name).upper())
    return value if isinstance(value, int) else default


def _handler(h: logging.Handler, level: int, context: Dict[str, Any]) -> logging.Handler:
    formatter = logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%dT%H:%M:%SZ")
    formatter.converter = time.gmtime  # type: ignore[attr-defined]
    h.setLevel(level)
    h.setFormatter(formatter)
    h.addFilter(RunContextFilter(context))
    h.addFilter(MaskSecretsFilter())
    return h


def shutdown_logging(name: str = "ts") -> None:
    """Flush and detach every handler `build_logger` put on `name`."""
    base = logging.getLogger(name)
    for h in list(base.handlers):
        base.removeHandler(h)
        h.close()


def build_logger(
    *,
    run_id: str,
    action: str,
    tenant: Optional[str] = None,
    kind: Optional[str] = None,
    name: str = "ts",
    base_dir: str = "logs",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
) -> logging.LoggerAdapter:
    """Configure the `name` logger tree for one run and return its adapter.

    Handlers from a previous run in the same process are replaced.
    """
    context = {"run_id": run_id, "action": action, "tenant": tenant, "kind": kind}
    shutdown_logging(name)

    run_dir = os.path.join(base_dir, datetime.now(timezone.utc).strftime("%Y-%m-%d"))
    os.makedirs(run_dir, exist_ok=True)
    file_lvl = _level(file_level, logging.DEBUG)

    handlers: List[logging.Handler] = [
        _handler(logging.StreamHandler(stream=sys.stderr), _level(console_level, logging.INFO), context),
        _handler(
            logging.handlers.TimedRotatingFileHandler(
                os.path.join(base_dir, "app.log"), when="midnight", backupCount=14, encoding="utf-8", utc=True
            ),
            file_lvl,
            context,
        ),
        _handler(logging.FileHandler(os.path.join(run_dir, f"{action}_{run_id}.log"), encoding="utf-8"), file_lvl, context),
    ]

    base = logging.getLogger(name)
    base.setLevel(logging.DEBUG)
    base.propagate = False
    for h in handlers:
        base.addHandler(h)

    adapter = logging.LoggerAdapter(logging.getLogger(f"{name}.{action}"), dict(context))
    adapter.debug("Logger initialised (logs in %s)", os.path.abspath(base_dir))
    return adapter
