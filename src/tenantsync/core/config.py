from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError


# ---------- Typed sections ----------

@dataclass
class AppSection:
    run_id: Optional[str] = None
    dry_run: bool = False
    concurrency: int = 4
    max_delete_ratio: float = 0.5
    strict: bool = False


@dataclass
class ApiSection:
    base_url: str = ""
    token: str = ""          # secret – never log in clear text
    verify_tls: bool = True
    timeout_sec: float = 30
    retries: int = 3


@dataclass
class ProfilesSection:
    search_paths: list[str] = field(default_factory=lambda: ["resources/profiles"])


@dataclass
class LoggingSection:
    base_dir: str = "logs"
    console_level: str = "INFO"   # INFO..CRITICAL
    file_level: str = "DEBUG"     # DEBUG..CRITICAL


@dataclass
class InputsSection:
    desired_path: str = "./tenant.yml"


@dataclass
class ContextSection:
    tenant: str = ""
    kind: str = "applications"


@dataclass
class AppConfig:
    """Typed configuration object built by `load_config`."""
    app: AppSection
    api: ApiSection
    profiles: ProfilesSection
    logging: LoggingSection
    inputs: InputsSection
    context: ContextSection

    @property
    def run_id(self) -> str:
        """
        Return a stable run identifier for this process.
        Generated lazily when first accessed if not provided.
        """
        if not self.app.run_id:
            self.app.run_id = uuid.uuid4().hex[:12]
        return self.app.run_id


# ---------- Defaults ----------

_DEFAULT_FILES: Tuple[str, ...] = (
    "./tenantsync.yml",
    os.path.expanduser("~/.config/tenantsync/config.yml"),
    "/etc/tenantsync/config.yml",
)

_DEFAULTS: Dict[str, Any] = {
    "app": {"run_id": None, "dry_run": False, "concurrency": 4, "max_delete_ratio": 0.5, "strict": False},
    "api": {
        "base_url": "",
        "token": "",
        "verify_tls": True,
        "timeout_sec": 30,
        "retries": 3,
    },
    "profiles": {"search_paths": ["resources/profiles"]},
    "logging": {"base_dir": "logs", "console_level": "INFO", "file_level": "DEBUG"},
    "inputs": {"desired_path": "./tenant.yml"},
    "context": {"tenant": "", "kind": "applications"},
}

_BOOL_KEYS = {"verify_tls", "dry_run", "strict"}
_INT_KEYS = {"retries", "concurrency"}
_FLOAT_KEYS = {"timeout_sec", "max_delete_ratio"}


# ---------- Utilities ----------

def _deep_merge(base: Dict[str, Any], ext: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merge for dicts: maps merge recursively, lists/scalars override.
    `ext` wins over `base`. Returns a new dict.
    """
    if not ext:
        return dict(base)
    out: Dict[str, Any] = dict(base)
    for k, v in ext.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _read_yaml_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {path}")
    return data


def _load_first_existing(files: Tuple[str, ...]) -> Dict[str, Any]:
    for p in files:
        if os.path.exists(p):
            return _read_yaml_file(p)
    return {}


def _env_to_dict(prefix: str = "TSYNC_") -> Dict[str, Any]:
    """
    Convert TSYNC_FOO__BAR=val to {"foo": {"bar": "val"}} (lowercased keys).
    """
    out: Dict[str, Any] = {}
    plen = len(prefix)
    for key, val in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[plen:].lower().split("__")
        cursor = out
        for part in path[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[path[-1]] = val
    return out


def _interpolate_env(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values like "${VAR}" with os.environ["VAR"] when present.
    """
    def repl(v: Any) -> Any:
        if isinstance(v, str) and v.startswith("${") and v.endswith("}"):
            return os.environ.get(v[2:-1], "")
        return v

    def walk(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: walk(repl(v)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(x) for x in obj]
        return repl(obj)

    return walk(cfg)


def _coerce_types(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Minimal type coercion for booleans, integers and floats in known keys.
    """
    def to_bool(x: Any) -> bool:
        return str(x).strip().lower() in {"1", "true", "yes", "y", "on"}

    def walk(obj: Any, key_path: Tuple[str, ...] = ()) -> Any:
        if isinstance(obj, dict):
            return {k: walk(v, key_path + (k,)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(v, key_path) for v in obj]
        key = key_path[-1] if key_path else ""
        try:
            if key in _BOOL_KEYS:
                return to_bool(obj)
            if key in _INT_KEYS:
                return int(obj)
            if key in _FLOAT_KEYS:
                return float(obj)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value for {'.'.join(key_path)}: {obj!r}") from exc
        return obj

    return walk(cfg)


def _validate(cfg: Dict[str, Any]) -> None:
    """
    Validate ranges, and required fields when not in dry_run.
    """
    app = cfg.get("app", {})
    if int(app.get("concurrency", 1)) < 1:
        raise ConfigError("app.concurrency must be >= 1")
    ratio = float(app.get("max_delete_ratio", 0.5))
    if not 0.0 <= ratio <= 1.0:
        raise ConfigError("app.max_delete_ratio must be between 0 and 1")

    if bool(app.get("dry_run", False)):
        return
    missing = []
    if not cfg.get("api", {}).get("base_url"):
        missing.append("api.base_url")
    if not cfg.get("context", {}).get("kind"):
        missing.append("context.kind")
    if missing:
        raise ConfigError(
            "Missing required configuration for non-dry run: " + ", ".join(missing)
        )


def _build_section(cls: Any, name: str, data: Dict[str, Any]) -> Any:
    try:
        return cls(**data.get(name, {}))
    except TypeError as exc:
        raise ConfigError(f"Unknown key in '{name}' section: {exc}") from exc


# ---------- Public API ----------

def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = _DEFAULT_FILES,
    env_prefix: str = "TSYNC_",
    use_dotenv: bool = True,
) -> AppConfig:
    """
    Build an AppConfig from (in precedence order):
      1) CLI overrides
      2) Environment variables (prefix TSYNC_, nested via __), .env included
      3) YAML file (first existing)
      4) Built-in defaults

    Also performs:
      - ${ENV_VAR} interpolation
      - basic type coercion (bool/int/float)
      - validation of required fields when not in dry_run
    """
    if use_dotenv:
        env_path = find_dotenv(usecwd=True)
        if env_path:
            load_dotenv(env_path, override=False)

    # Load file first (low precedence)
    file_cfg = _load_first_existing(files)

    # Env overlay
    env_cfg = _env_to_dict(env_prefix)

    # Combine: defaults <- file <- env <- cli
    merged = _deep_merge(_DEFAULTS, file_cfg)
    merged = _deep_merge(merged, env_cfg)
    merged = _deep_merge(merged, cli_overrides or {})

    # Interpolate and coerce
    merged = _interpolate_env(merged)
    merged = _coerce_types(merged)

    _validate(merged)

    return AppConfig(
        app=_build_section(AppSection, "app", merged),
        api=_build_section(ApiSection, "api", merged),
        profiles=_build_section(ProfilesSection, "profiles", merged),
        logging=_build_section(LoggingSection, "logging", merged),
        inputs=_build_section(InputsSection, "inputs", merged),
        context=_build_section(ContextSection, "context", merged),
    )
