"""
Resource profiles: one YAML file per resource kind.

A profile tells the reconciler how a kind is addressed on the remote API
and how its values are compared:

    kind: "applications"
    endpoint:
      list:   "/api/v2/clients"
      create: "/api/v2/clients"
      update: "/api/v2/clients/{id}"
      delete: "/api/v2/clients/{id}"
      update_method: "PATCH"
    identity:
      id_field: "client_id"
      key_field: "name"
    listing:
      items_key: "clients"      # list endpoint may wrap items
      paginate: true
      per_page: 50
    diff:
      list_as_sets: ["callbacks"]
      ignore_fields: ["client_secret"]

Profiles support inheritance via `extends: "<parent>"`. The built-in
profiles ship in the `tenantsync/profiles` directory.
"""

from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError
from .resources import thaw

BUILTIN_PROFILES_DIR = str(Path(__file__).resolve().parent.parent / "profiles")


class ProfileError(ConfigError):
    """Base error for profile-related issues."""


class ProfileValidationError(ProfileError):
    """Raised when a profile is structurally invalid."""


def _sort_token(value: Any) -> str:
    return json.dumps(thaw(value), sort_keys=True, default=str)


@dataclass
class ResourceProfile:
    """Typed wrapper around a validated profile configuration."""

    name: str
    cfg: Dict[str, Any]

    # ----- Identity -----
    @property
    def kind(self) -> str:
        return str(self.cfg.get("kind") or self.name)

    @property
    def id_field(self) -> str:
        return self.cfg.get("identity", {}).get("id_field", "id")

    @property
    def key_field(self) -> str:
        return self.cfg.get("identity", {}).get("key_field", "name")

    # ----- Endpoints -----
    def endpoint(self, op: str) -> str:
        tpl = (self.cfg.get("endpoint") or {}).get(op)
        if not tpl:
            raise ProfileValidationError(f"Profile '{self.name}' missing endpoint.{op}")
        return str(tpl)

    @property
    def update_method(self) -> str:
        return str((self.cfg.get("endpoint") or {}).get("update_method", "PATCH")).upper()

    # ----- Listing -----
    @property
    def items_key(self) -> Optional[str]:
        return (self.cfg.get("listing") or {}).get("items_key")

    @property
    def paginate(self) -> bool:
        return bool((self.cfg.get("listing") or {}).get("paginate", False))

    @property
    def per_page(self) -> int:
        return int((self.cfg.get("listing") or {}).get("per_page", 50))

    # ----- Diff normalization -----
    @property
    def list_as_sets(self) -> frozenset[str]:
        return frozenset((self.cfg.get("diff") or {}).get("list_as_sets") or [])

    @property
    def ignore_fields(self) -> frozenset[str]:
        return frozenset((self.cfg.get("diff") or {}).get("ignore_fields") or [])

    def comparable(self, name: str, value: Any) -> Any:
        """Normalize one top-level field value before equality checks.

        Lists named in `diff.list_as_sets` are compared as sorted sequences.
        """
        if name in self.list_as_sets and isinstance(value, (list, tuple)):
            return tuple(sorted(value, key=_sort_token))
        return value


# =========================
# Loader with inheritance
# =========================

def _deep_merge(base: Dict[str, Any], ext: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge: dicts merge recursively; lists/scalars override."""
    result = copy.deepcopy(base)
    for k, v in ext.items():
        if isinstance(v, dict) and isinstance(result.get(k), dict):
            result[k] = _deep_merge(result[k], v)  # type: ignore[index]
        else:
            result[k] = copy.deepcopy(v)
    return result


class ProfileLoader:
    """
    Load profiles from disk, supporting `extends: "<parent>"` inheritance.

    Search order: the provided `search_paths` first, then the built-in profiles.
    """

    def __init__(self, search_paths: Optional[List[str]] = None) -> None:
        self.search_paths = list(search_paths or []) + [BUILTIN_PROFILES_DIR]

    def _find_path(self, name: str) -> str:
        """Return the first existing '<search_path>/<name>.yml' or raise."""
        filename = f"{name}.yml"
        for base in self.search_paths:
            candidate = os.path.join(base, filename)
            if os.path.exists(candidate):
                return candidate
        raise ProfileError(f"Profile '{name}' not found in {self.search_paths}")

    def _read_yaml(self, path: str) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ProfileValidationError(f"Invalid YAML in profile {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ProfileValidationError(f"Top-level YAML must be a mapping: {path}")
        return data

    def _load_recursive(self, name: str, stack: Optional[List[str]] = None) -> Dict[str, Any]:
        stack = stack or []
        if name in stack:
            cycle = " -> ".join(stack + [name])
            raise ProfileValidationError(f"Inheritance cycle detected: {cycle}")
        path = self._find_path(name)
        data = self._read_yaml(path)
        parent = data.get("extends")
        if parent:
            merged_parent = self._load_recursive(parent, stack + [name])
            data = _deep_merge(merged_parent, data)
        return data

    def load(self, name: str) -> ResourceProfile:
        """Load and validate a profile by name (without extension)."""
        data = self._load_recursive(name)

        for section in ("endpoint", "identity"):
            if not isinstance(data.get(section), dict):
                raise ProfileValidationError(f"Profile '{name}' missing required section: {section}")
        for op in ("list", "create", "update", "delete"):
            if not data["endpoint"].get(op):
                raise ProfileValidationError(f"Profile '{name}' missing endpoint.{op}")

        profile = ResourceProfile(name=name, cfg=data)
        if profile.update_method not in ("PATCH", "PUT"):
            raise ProfileValidationError(
                f"Profile '{name}' endpoint.update_method must be PATCH or PUT, got {profile.update_method}"
            )
        return profile
