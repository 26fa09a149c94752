import time

import pytest

from tenantsync.core.errors import ConfigError, FetchError
from tenantsync.core.reconciler import gather_states, plan_reconciliation, reconcile
from tenantsync.core.resources import Resource


def _desired():
    return [
        Resource(key="app-a", fields={"name": "app-a", "app_type": "spa", "callbacks": ["https://a/cb"]}),
        Resource(key="app-b", fields={"name": "app-b", "app_type": "regular_web"}),
        Resource(key="app-c", fields={"name": "app-c", "app_type": "native"}),
    ]


def _existing():
    return [
        Resource(key="app-a", fields={"name": "app-a", "app_type": "native", "description": "x"}, remote_id="1"),
        Resource(key="stale", fields={"name": "stale"}, remote_id="2"),
    ]


def test_second_run_is_a_no_op(fake_api_cls):
    api = fake_api_cls(_existing())

    plan1, report1 = reconcile(api.list_resources(), _desired(), api)
    assert plan1.summary()["create"] == 2 and plan1.summary()["update"] == 1 and plan1.summary()["delete"] == 1
    assert not report1.has_failures

    calls_before = len(api.calls)
    plan2, report2 = reconcile(api.list_resources(), _desired(), api)
    assert not plan2.has_changes
    assert len(plan2.unchanged) == 3
    assert len(api.calls) == calls_before
    assert report2.counts()["unchanged"] == 3


def test_plan_is_deterministic():
    plans = [plan_reconciliation(_existing(), _desired()) for _ in range(3)]
    orders = [[(op.kind, op.key) for op in p.operations()] for p in plans]
    assert orders[0] == orders[1] == orders[2]
    assert orders[0] == [("create", "app-b"), ("create", "app-c"), ("update", "app-a"), ("delete", "stale")]


def test_identical_sets_execute_nothing(fake_api_cls):
    existing = [Resource(key=r.key, fields=r.to_payload(), remote_id=str(i)) for i, r in enumerate(_desired())]
    api = fake_api_cls(existing)
    plan, report = reconcile(existing, _desired(), api)
    assert plan.updates == () and not plan.has_changes
    assert api.calls == []
    assert report.attempted == 0


def test_dry_run_and_declined_confirmation_do_not_write(fake_api_cls):
    api = fake_api_cls(_existing())
    plan, report = reconcile(api.list_resources(), _desired(), api, dry_run=True)
    assert plan.has_changes and api.calls == [] and report.attempted == 0

    seen = []

    def deny(p):
        seen.append(p)
        return False

    plan, report = reconcile(api.list_resources(), [], api, confirm=deny)
    assert seen == [plan]
    assert api.calls == [] and report.attempted == 0


def test_gather_states_runs_both_and_prefers_desired_error():
    def slow_fetch():
        time.sleep(0.05)
        raise FetchError("remote down")

    def bad_load():
        raise ConfigError("bad desired file")

    with pytest.raises(ConfigError):
        gather_states(slow_fetch, bad_load)

    with pytest.raises(FetchError):
        gather_states(slow_fetch, lambda: [])

    existing, desired = gather_states(lambda: _existing(), lambda: _desired())
    assert len(existing) == 2 and len(desired) == 3
