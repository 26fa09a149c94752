"""
Error types for tenantsync.

Structural errors (config, fetch) abort a run before any remote write.
Per-resource errors (conflict, operation) are isolated and reported.
"""

from __future__ import annotations

from typing import Any, Optional


class TenantSyncError(Exception):
    """Base error for tenantsync."""


class ConfigError(TenantSyncError):
    """Malformed settings or desired-state definitions."""


class FetchError(TenantSyncError):
    """The current state could not be read from the remote service."""


class ConflictError(TenantSyncError):
    """Ambiguous identity match (duplicate key on one or both sides)."""

    def __init__(self, key: str, side: str, message: str = "") -> None:
        self.key = key
        self.side = side
        super().__init__(message or f"duplicate identity key '{key}' in {side} state")


class OperationError(TenantSyncError):
    """A single create/update/delete failed."""

    def __init__(self, kind: str, key: str, cause: Optional[BaseException] = None, message: str = "") -> None:
        self.kind = kind
        self.key = key
        self.cause = cause
        detail = message or (str(cause) if cause is not None else "failed")
        super().__init__(f"{kind} '{key}': {detail}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "key": self.key,
            "error": str(self.cause) if self.cause is not None else str(self),
            "error_type": type(self.cause).__name__ if self.cause is not None else type(self).__name__,
        }
