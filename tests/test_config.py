import os
import textwrap

import pytest

from tenantsync.core.config import load_config
from tenantsync.core.errors import ConfigError


def test_file_then_env_then_cli_precedence(tmp_path, monkeypatch):
    (tmp_path / "tenantsync.yml").write_text(textwrap.dedent("""
      api:
        base_url: "https://file.example"
        token: "FILE"
      app:
        concurrency: 2
      logging:
        console_level: "WARNING"
      context:
        tenant: "file_tenant"
    """), encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    monkeypatch.setenv("TSYNC_API__BASE_URL", "https://env.example")
    monkeypatch.setenv("TSYNC_API__VERIFY_TLS", "false")
    monkeypatch.setenv("TSYNC_APP__MAX_DELETE_RATIO", "0.25")

    cfg = load_config(
        {"api": {"base_url": "https://cli.example"}, "context": {"kind": "roles"}},
        files=(str(tmp_path / "tenantsync.yml"),),
        use_dotenv=False,
    )

    assert cfg.api.base_url == "https://cli.example"   # CLI wins
    assert cfg.api.verify_tls is False                   # env coerced to bool
    assert cfg.app.max_delete_ratio == 0.25              # env coerced to float
    assert cfg.app.concurrency == 2                      # from file
    assert cfg.api.token == "FILE"
    assert cfg.logging.console_level == "WARNING"
    assert cfg.context.tenant == "file_tenant"
    assert cfg.context.kind == "roles"
    assert cfg.inputs.desired_path == "./tenant.yml"     # default


def test_env_interpolation_and_run_id(tmp_path, monkeypatch):
    (tmp_path / "tenantsync.yml").write_text('api:\n  token: "${MY_TOKEN}"\n', encoding="utf-8")
    monkeypatch.setenv("MY_TOKEN", "SECRET_123")
    cfg = load_config({"app": {"dry_run": True}}, files=(str(tmp_path / "tenantsync.yml"),), use_dotenv=False)
    assert cfg.api.token == "SECRET_123"
    rid = cfg.run_id
    assert rid and cfg.run_id == rid


def test_dotenv_is_loaded(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("TSYNC_API__TOKEN=from-dotenv\n", encoding="utf-8")
    monkeypatch.delenv("TSYNC_API__TOKEN", raising=False)
    try:
        cfg = load_config({"app": {"dry_run": True}}, files=())
        assert cfg.api.token == "from-dotenv"
    finally:
        os.environ.pop("TSYNC_API__TOKEN", None)


def test_required_fields_validation_non_dry_run(tmp_path):
    with pytest.raises(ConfigError) as ei:
        load_config({"app": {"dry_run": False}}, files=(), use_dotenv=False)
    assert "api.base_url" in str(ei.value)


@pytest.mark.parametrize(
    "overrides",
    [
        {"app": {"concurrency": 0}},
        {"app": {"max_delete_ratio": 1.5}},
        {"app": {"concurrency": "many"}},
        {"api": {"unknown_key": 1}},
    ],
)
def test_invalid_values(overrides):
    overrides = {**overrides, "app": {"dry_run": True, **overrides.get("app", {})}}
    with pytest.raises(ConfigError):
        load_config(overrides, files=(), use_dotenv=False)
