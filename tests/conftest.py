import threading
from typing import Any, Dict, List, Optional, Set

import pytest

from tenantsync.core.profiles import ResourceProfile
from tenantsync.core.resources import Resource

class FakeResourceApi:
    """In-memory ResourceApi: a dict of remote_id -> fields, plus a call log."""

    def __init__(self, existing: Optional[List[Resource]] = None, fail_keys: Optional[Set[str]] = None):
        self._lock = threading.Lock()
        self._next = 1000
        self.store: Dict[str, Dict[str, Any]] = {}
        self.names: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.fail_keys = set(fail_keys or ())
        for r in existing or []:
            self.store[r.remote_id] = r.to_payload()
            self.names[r.remote_id] = r.key

    def list_resources(self) -> List[Resource]:
        with self._lock:
            return [Resource(key=self.names[rid], fields=dict(f), remote_id=rid) for rid, f in self.store.items()]

    def _maybe_fail(self, key: str) -> None:
        if key in self.fail_keys:
            raise RuntimeError(f"simulated remote error for {key}")

    def create(self, resource: Resource) -> Optional[str]:
        with self._lock:
            self.calls.append(("create", resource.key))
        self._maybe_fail(resource.key)
        with self._lock:
            self._next += 1
            rid = str(self._next)
            self.store[rid] = resource.to_payload()
            self.names[rid] = resource.key
        return rid

    def update(self, remote_id: str, patch: Dict[str, Any], current: Optional[Dict[str, Any]] = None) -> None:
        key = self.names.get(remote_id, remote_id)
        with self._lock:
            self.calls.append(("update", key))
        self._maybe_fail(key)
        with self._lock:
            self.store[remote_id].update(patch)

    def delete(self, remote_id: str) -> None:
        key = self.names.get(remote_id, remote_id)
        with self._lock:
            self.calls.append(("delete", key))
        self._maybe_fail(key)
        with self._lock:
            self.store.pop(remote_id, None)
            self.names.pop(remote_id, None)


@pytest.fixture()
def fake_api_cls():
    return FakeResourceApi


@pytest.fixture()
def apps_profile() -> ResourceProfile:
    return ResourceProfile(
        name="applications",
        cfg={
            "kind": "applications",
            "endpoint": {
                "list": "/api/v2/clients",
                "create": "/api/v2/clients",
                "update": "/api/v2/clients/{id}",
                "delete": "/api/v2/clients/{id}",
            },
            "identity": {"id_field": "client_id", "key_field": "name"},
            "listing": {"items_key": "clients", "paginate": False},
            "diff": {"list_as_sets": ["callbacks"], "ignore_fields": ["client_id", "client_secret"]},
        },
    )
