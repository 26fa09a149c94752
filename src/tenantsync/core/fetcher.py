"""
State fetcher: read the existing resources of one kind from the remote service.

Any failure here is structural: without the current state no plan is safe,
so errors are converted to FetchError and the run stops before planning.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from .api_client import HttpError
from .errors import FetchError
from .resources import Resource

__all__ = ["ResourceLister", "fetch_existing"]


class ResourceLister(Protocol):
    def list_resources(self) -> List[Resource]: ...


def fetch_existing(
    api: ResourceLister,
    *,
    kind: str = "resources",
    logger: Optional[logging.LoggerAdapter] = None,
) -> List[Resource]:
    """Return every existing resource, each with its remote identifier."""
    log = logger or logging.getLogger("ts.fetch")
    try:
        resources = api.list_resources()
    except HttpError as e:
        log.warning("Existing state fetch failed: kind=%s status=%s url=%s", kind, e.status, e.url)
        raise FetchError(f"Failed to list existing {kind}: {e}") from e
    except ValueError as e:
        raise FetchError(f"Unexpected {kind} list response: {e}") from e

    missing = [r.key for r in resources if not r.remote_id]
    if missing:
        raise FetchError(f"Existing {kind} without remote identifier: {', '.join(sorted(missing))}")

    log.debug("Existing state loaded: kind=%s count=%d", kind, len(resources))
    return resources
