"""
Desired-state loader: parse a tenant YAML file into Resources.

Expected layout (one top-level section per resource kind):

    applications:
      - name: "app-a"
        app_type: "spa"
        callbacks: ["https://a.example/cb"]
    roles:
      - name: "admin"
        description: "Administrators"

- A missing section is an error; an explicit empty list means "no resources".
- String values of the form "${VAR}" are replaced from the environment.
- Duplicate identity keys are kept (the matcher routes them to conflicts)
  unless `strict=True`, in which case they are a ConfigError.
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from .errors import ConfigError
from .profiles import ResourceProfile
from .resources import Resource

__all__ = ["load_desired_state", "read_document"]

Source = Union[str, Path, Mapping[str, Any]]


def read_document(path: Union[str, Path]) -> Dict[str, Any]:
    p = Path(path)
    if not p.is_file():
        raise ConfigError(f"Desired state file not found: {path}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {path}")
    return data


def _interpolate_env(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        name = value[2:-1]
        if name not in os.environ:
            raise ConfigError(f"Environment variable '{name}' referenced but not set")
        return os.environ[name]
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(v) for v in value]
    return value


def load_desired_state(
    source: Source,
    profile: ResourceProfile,
    *,
    strict: bool = False,
    logger: Optional[logging.LoggerAdapter] = None,
) -> List[Resource]:
    """Return the desired resources of `profile.kind` declared in `source`."""
    log = logger or logging.getLogger("ts.loader")
    doc = dict(source) if isinstance(source, Mapping) else read_document(source)
    kind = profile.kind

    if kind not in doc:
        raise ConfigError(f"Desired state has no '{kind}' section (use '{kind}: []' to declare none)")
    items = doc[kind] if doc[kind] is not None else []
    if not isinstance(items, list):
        raise ConfigError(f"Section '{kind}' must be a list, got {type(items).__name__}")

    resources: List[Resource] = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ConfigError(f"{kind}[{idx}] must be a mapping, got {type(raw).__name__}")
        item = _interpolate_env(raw)
        key = item.get(profile.key_field)
        if not isinstance(key, str) or not key.strip():
            raise ConfigError(f"{kind}[{idx}] has no usable '{profile.key_field}'")
        if profile.id_field in item:
            log.debug("Ignoring '%s' declared on %s '%s'", profile.id_field, kind, key)
            item = {k: v for k, v in item.items() if k != profile.id_field}
        resources.append(Resource(key=key, fields=item))

    dupes = sorted(k for k, n in Counter(r.key for r in resources).items() if n > 1)
    if dupes:
        if strict:
            raise ConfigError(f"Duplicate {kind} {profile.key_field}(s) in desired state: {', '.join(dupes)}")
        log.warning("Duplicate %s keys in desired state (will be reported as conflicts): %s", kind, dupes)

    log.info("Loaded %d desired %s", len(resources), kind)
    return resources
