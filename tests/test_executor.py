import threading

import pytest

from tenantsync.core.differ import refine
from tenantsync.core.executor import Executor
from tenantsync.core.matcher import classify
from tenantsync.core.plan import ReconciliationPlan
from tenantsync.core.resources import Resource


def _existing(*specs):
    return [Resource(key=k, fields={"name": k, "v": v}, remote_id=rid) for k, rid, v in specs]


def _desired(*specs):
    return [Resource(key=k, fields={"name": k, "v": v}) for k, v in specs]


def test_partial_failure_does_not_abort_the_run(fake_api_cls):
    existing = _existing(("a", "1", 1), ("b", "2", 1), ("c", "3", 1), ("old1", "4", 0), ("old2", "5", 0))
    desired = _desired(("a", 2), ("b", 2), ("c", 2))
    api = fake_api_cls(existing, fail_keys={"b"})
    plan = refine(classify(existing, desired))

    report = Executor(api, max_workers=3).execute(plan)

    assert report.updates_succeeded == 2
    assert len(report.failures) == 1
    failure = report.failures[0]
    assert failure.key == "b" and failure.operation.kind == "update"
    assert "simulated remote error" in str(failure.error)
    # deletes still ran after the failed update
    assert report.deletes_succeeded == 2
    assert sorted(api.names.values()) == ["a", "b", "c"]


def test_classes_run_in_order_and_keys_in_order(fake_api_cls):
    existing = _existing(("u2", "1", 0), ("u1", "2", 0), ("gone-b", "3", 0), ("gone-a", "4", 0))
    desired = _desired(("u1", 1), ("u2", 1), ("new-b", 0), ("new-a", 0))
    api = fake_api_cls(existing)
    plan = refine(classify(existing, desired))

    report = Executor(api, max_workers=1).execute(plan)

    assert api.calls == [
        ("create", "new-a"), ("create", "new-b"),
        ("update", "u1"), ("update", "u2"),
        ("delete", "gone-a"), ("delete", "gone-b"),
    ]
    assert set(report.created_ids) == {"new-a", "new-b"}
    assert all(report.created_ids.values())
    assert not report.has_failures


def test_creates_finish_before_updates_start(fake_api_cls):
    existing = _existing(("u", "1", 0))
    desired = _desired(("u", 1)) + _desired(*[(f"n{i}", 0) for i in range(8)])
    api = fake_api_cls(existing)
    plan = refine(classify(existing, desired))

    Executor(api, max_workers=4).execute(plan)

    kinds = [k for k, _ in api.calls]
    assert kinds.index("update") == 8
    assert kinds.count("create") == 8


def test_cancelled_before_start_records_everything_as_cancelled(fake_api_cls):
    existing = _existing(("a", "1", 0))
    desired = _desired(("a", 1), ("b", 0))
    api = fake_api_cls(existing)
    plan = refine(classify(existing, desired))
    cancel = threading.Event()
    cancel.set()

    report = Executor(api, cancel_event=cancel).execute(plan)

    assert api.calls == []
    assert [op.key for op in report.cancelled] == ["b", "a"]
    assert report.counts()["cancelled"] == 2
    assert report.attempted == 0


def test_cancel_mid_batch_drains_in_flight(fake_api_cls):
    cancel = threading.Event()

    class CancellingApi(fake_api_cls):
        def create(self, resource):
            rid = super().create(resource)
            cancel.set()
            return rid

    desired = _desired(*[(f"n{i}", 0) for i in range(5)])
    api = CancellingApi([])
    plan = refine(classify([], desired))

    report = Executor(api, max_workers=1, cancel_event=cancel).execute(plan)

    assert report.creates_succeeded == 1
    assert [op.key for op in report.cancelled] == ["n1", "n2", "n3", "n4"]


def test_ctrl_c_while_recording_keeps_every_operation_in_the_report(fake_api_cls):
    class InterruptedOnce(Executor):
        interrupted = False

        def _collect(self, op, fut, report):
            if not self.interrupted:
                self.interrupted = True
                raise KeyboardInterrupt
            super()._collect(op, fut, report)

    existing = _existing(("u", "1", 0))
    desired = _desired(("u", 1), ("n0", 0), ("n1", 0), ("n2", 0))
    api = fake_api_cls(existing)
    plan = refine(classify(existing, desired))

    executor = InterruptedOnce(api, max_workers=1)
    report = executor.execute(plan)

    assert executor.cancelled
    assert api.calls == [("create", "n0")]
    # the create that reached the remote side is reported with its id
    remote_n0 = [rid for rid, key in api.names.items() if key == "n0"]
    assert report.created_ids == {"n0": remote_n0[0]}
    assert [op.key for op in report.cancelled] == ["n1", "n2", "u"]
    assert report.attempted + len(report.cancelled) == len(list(plan.operations()))


def test_unrefined_plan_is_rejected(fake_api_cls):
    existing = _existing(("a", "1", 0))
    plan = classify(existing, _desired(("a", 1)))
    with pytest.raises(ValueError):
        Executor(fake_api_cls(existing)).execute(plan)


def test_empty_plan_and_bad_workers(fake_api_cls):
    report = Executor(fake_api_cls()).execute(ReconciliationPlan())
    assert report.attempted == 0
    with pytest.raises(ValueError):
        Executor(fake_api_cls(), max_workers=0)
