"""
Remote resource API for one resource kind.

`ResourceApi` is the contract the executor relies on; `HttpResourceApi`
implements it (plus listing) over the management API using the endpoints
declared in a ResourceProfile.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

from .api_client import ApiClient, HttpError
from .profiles import ResourceProfile
from .resources import Resource

__all__ = ["ResourceApi", "HttpResourceApi", "extract_items"]


class ResourceApi(Protocol):
    """Operations the executor needs. Failures are raised, never returned."""

    def create(self, resource: Resource) -> Optional[str]: ...

    def update(self, remote_id: str, patch: Dict[str, Any], current: Optional[Dict[str, Any]] = None) -> None: ...

    def delete(self, remote_id: str) -> None: ...


def extract_items(payload: Any, items_key: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Accept either:
      - [...]
      - {"<items_key>": [...]} (or {"items": [...]})
    Raise ValueError on any other shape.
    """
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        items = payload.get(items_key or "items")
        if items is None and items_key:
            items = payload.get("items")
        if not isinstance(items, list):
            raise ValueError(f"list response has no '{items_key or 'items'}' list")
    else:
        raise ValueError(f"unexpected list response type: {type(payload).__name__}")
    return [it for it in items if isinstance(it, dict)]


class HttpResourceApi:
    """ResourceApi backed by ApiClient and a ResourceProfile."""

    def __init__(
        self,
        client: ApiClient,
        profile: ResourceProfile,
        *,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.client = client
        self.profile = profile
        self.log = logger or logging.getLogger("ts.api")

    @staticmethod
    def _format_url(template: str, sources: Dict[str, Any]) -> str:
        def repl(m: re.Match[str]) -> str:
            v = sources.get(m.group(1), "")
            return quote(str(v if v is not None else ""), safe="")
        return re.sub(r"\{([A-Za-z_][A-Za-z0-9_]*)\}", repl, template)

    # ----- Listing -----
    def list_raw(self) -> List[Dict[str, Any]]:
        """Return every item of the list endpoint, following pagination."""
        path = self.profile.endpoint("list")
        if not self.profile.paginate:
            return extract_items(self.client.get_json(path), self.profile.items_key)

        per_page = self.profile.per_page
        out: List[Dict[str, Any]] = []
        page = 0
        while True:
            payload = self.client.get_json(
                path, params={"page": page, "per_page": per_page, "include_totals": "true"}
            )
            items = extract_items(payload, self.profile.items_key)
            out.extend(items)
            total = payload.get("total") if isinstance(payload, dict) else None
            if not items or len(items) < per_page:
                break
            if isinstance(total, int) and len(out) >= total:
                break
            page += 1
        self.log.debug("Listed %s %s item(s) in %d page(s)", len(out), self.profile.kind, page + 1)
        return out

    def to_resource(self, item: Dict[str, Any]) -> Resource:
        key = item.get(self.profile.key_field)
        rid = item.get(self.profile.id_field)
        if not isinstance(key, str) or not key:
            raise ValueError(f"remote {self.profile.kind} item has no '{self.profile.key_field}'")
        if rid in (None, ""):
            raise ValueError(f"remote {self.profile.kind} '{key}' has no '{self.profile.id_field}'")
        fields = {k: v for k, v in item.items() if k != self.profile.id_field}
        return Resource(key=key, fields=fields, remote_id=str(rid))

    def list_resources(self) -> List[Resource]:
        return [self.to_resource(it) for it in self.list_raw()]

    # ----- Writes -----
    def create(self, resource: Resource) -> Optional[str]:
        url = self.profile.endpoint("create")
        resp = self.client.post_json(url, resource.to_payload())
        rid = resp.get(self.profile.id_field) if isinstance(resp, dict) else None
        self.log.info("CREATE %s '%s' -> id=%s", self.profile.kind, resource.key, rid)
        return str(rid) if rid not in (None, "") else None

    def replacement_body(self, patch: Dict[str, Any], current: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Full resource body for a PUT: current remote fields overlaid with the patch.

        Read-only fields (id field and diff.ignore_fields) are not sent back.
        """
        skip = self.profile.ignore_fields | {self.profile.id_field}
        body = {k: v for k, v in (current or {}).items() if k not in skip}
        body.update(patch)
        return body

    def update(self, remote_id: str, patch: Dict[str, Any], current: Optional[Dict[str, Any]] = None) -> None:
        url = self._format_url(self.profile.endpoint("update"), {"id": remote_id})
        if self.profile.update_method == "PUT":
            self.client.put_json(url, self.replacement_body(patch, current))
        else:
            self.client.patch_json(url, patch)
        self.log.info("UPDATE %s id=%s fields=%s", self.profile.kind, remote_id, sorted(patch))

    def delete(self, remote_id: str) -> None:
        url = self._format_url(self.profile.endpoint("delete"), {"id": remote_id})
        try:
            self.client.delete_json(url)
        except HttpError as e:
            # already gone: the desired outcome holds
            if e.status == 404:
                self.log.warning("DELETE %s id=%s: not found, treating as deleted", self.profile.kind, remote_id)
                return
            raise
        self.log.info("DELETE %s id=%s", self.profile.kind, remote_id)
