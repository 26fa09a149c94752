import json
import logging
from pathlib import Path

import pytest

from tenantsync.core.logging_setup import REDACTED, build_logger, mask_secrets, shutdown_logging
from tenantsync.core.matcher import classify
from tenantsync.core.resources import Resource


@pytest.fixture(autouse=True)
def _release_handlers(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    yield
    shutdown_logging()


def _run_log(action, run_id):
    files = list(Path("logs").glob(f"20*/{action}_{run_id}.log"))
    assert files, f"{action}_{run_id}.log not created"
    return files[0].read_text(encoding="utf-8")


def test_run_context_stamped_on_app_and_run_files():
    logger = build_logger(run_id="r-7", action="apply", tenant="acme-prod", kind="roles")
    logger.info("applying 3 operation(s)")

    line = "run=r-7 action=apply tenant=acme-prod kind=roles | applying 3 operation(s)"
    assert line in Path("logs/app.log").read_text(encoding="utf-8")
    assert line in _run_log("apply", "r-7")


def test_component_loggers_format_with_run_context(capsys):
    build_logger(run_id="r-8", action="plan", kind="applications")

    # core modules log through plain ts.<component> loggers
    plan = classify([], [Resource(key="a"), Resource(key="a")])
    assert plan.conflicts

    err = capsys.readouterr().err
    assert "Logging error" not in err
    assert "KeyError" not in err
    assert "Conflict on key 'a'" in err
    content = Path("logs/app.log").read_text(encoding="utf-8")
    assert "| ts.matcher | run=r-8 action=plan tenant=- kind=applications | Conflict on key 'a'" in content


def test_missing_context_renders_as_dash():
    logger = build_logger(run_id="r-9", action="plan")
    logger.debug("debug-line-9")
    logging.getLogger("ts.differ").debug("from differ")

    content = Path("logs/app.log").read_text(encoding="utf-8")
    assert "tenant=- kind=- | debug-line-9" in content
    assert "run=r-9 action=plan tenant=- kind=- | from differ" in content


def test_client_secrets_masked_in_messages_and_payload_args():
    logger = build_logger(run_id="r-10", action="apply", kind="applications")
    logger.info("PATCH /api/v2/clients/c1 with Authorization: Bearer eyJhbGciOi.xyz")
    logger.info("POST payload %s", json.dumps({"name": "web", "client_secret": "cs-777"}))
    logger.warning("create failed: %(body)s", {"body": {"name": "web", "client_secret": "cs-888"}})
    logging.getLogger("ts.api").error("retry with token=tkn999, password=hunter2")

    for content in (Path("logs/app.log").read_text(encoding="utf-8"), _run_log("apply", "r-10")):
        assert REDACTED in content
        for secret in ("eyJhbGciOi", "cs-777", "cs-888", "tkn999", "hunter2"):
            assert secret not in content
        assert '"name": "web"' in content


def test_mask_secrets_walks_nested_payloads():
    payload = {"name": "web", "settings": {"client_secret": "s1", "callbacks": ["https://x/cb"]}}
    assert mask_secrets(payload) == {
        "name": "web",
        "settings": {"client_secret": REDACTED, "callbacks": ["https://x/cb"]},
    }


def test_second_run_replaces_handlers():
    build_logger(run_id="first", action="plan")
    logger = build_logger(run_id="second", action="plan")
    logger.info("emitted-once")

    assert len(logging.getLogger("ts").handlers) == 3
    assert Path("logs/app.log").read_text(encoding="utf-8").count("emitted-once") == 1
    assert "emitted-once" in _run_log("plan", "second")
    assert "emitted-once" not in _run_log("plan", "first")


def test_console_level_filters_stderr(capsys):
    logger = build_logger(run_id="r-11", action="plan", console_level="WARNING")
    logger.info("quiet-info")
    logger.warning("loud-warning")

    err = capsys.readouterr().err
    assert "loud-warning" in err and "quiet-info" not in err
    assert "quiet-info" in Path("logs/app.log").read_text(encoding="utf-8")
