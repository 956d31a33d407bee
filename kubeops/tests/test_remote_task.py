import threading

import pytest

from kubeops.errors import CommandError, TaskError
from kubeops.models import ALL, K8S, MASTER, WORKER
from kubeops.pipeline import Cache, RemoteTask


class Echo(RemoteTask):
    def __init__(self, fail_on=(), **kwargs):
        super().__init__(**kwargs)
        self.fail_on = set(fail_on)
        self.visited = []
        self.lock = threading.Lock()

    def run_on(self, host):
        with self.lock:
            self.visited.append(host.name)
        if host.name in self.fail_on:
            raise CommandError(f"failed on {host.name}", exit_code=2)
        return host.internal_address


def execute(task, runtime):
    task.init(runtime, Cache())
    task.execute()
    return task


def test_runs_on_every_host(runtime):
    task = execute(Echo(name="Echo", roles=[ALL]), runtime)
    assert task.results == {"master1": "10.0.0.1", "worker1": "10.0.0.2", "worker2": "10.0.0.3"}


def test_role_selection_deduplicates(runtime):
    task = execute(Echo(name="Echo", roles=[MASTER, K8S], parallel=False), runtime)
    assert task.visited == ["master1", "worker1", "worker2"]


def test_one_failure_does_not_cancel_siblings(runtime):
    task = Echo(name="Echo", roles=[ALL], fail_on={"worker1"})
    with pytest.raises(CommandError) as excinfo:
        execute(task, runtime)
    assert sorted(task.visited) == ["master1", "worker1", "worker2"]
    assert set(task.results) == {"master1", "worker2"}
    assert excinfo.value.host == "worker1"
    assert excinfo.value.task == "Echo"


def test_multiple_failures_are_aggregated(runtime):
    task = Echo(name="Echo", roles=[ALL], fail_on={"worker1", "worker2"})
    with pytest.raises(TaskError) as excinfo:
        execute(task, runtime)
    assert set(excinfo.value.failures) == {"worker1", "worker2"}


def test_min_success_tolerates_failures(runtime):
    task = execute(Echo(name="Echo", roles=[WORKER], fail_on={"worker2"}, min_success=1), runtime)
    assert list(task.results) == ["worker1"]
    assert list(task.failures) == ["worker2"]


def test_quorum(runtime):
    task = execute(Echo(name="Echo", roles=[ALL], fail_on={"worker2"}, quorum=True), runtime)
    assert len(task.results) == 2

    task = Echo(name="Echo", roles=[ALL], fail_on={"worker1", "worker2"}, quorum=True)
    with pytest.raises(TaskError):
        execute(task, runtime)


def test_sequential_stops_at_first_failure(runtime):
    task = Echo(name="Echo", roles=[ALL], fail_on={"worker1"}, parallel=False)
    with pytest.raises(CommandError):
        execute(task, runtime)
    assert task.visited == ["master1", "worker1"]


def test_foreign_errors_carry_host(runtime):
    class Broken(RemoteTask):
        roles = (MASTER,)

        def run_on(self, host):
            raise ValueError("bad value")

    with pytest.raises(TaskError) as excinfo:
        execute(Broken(), runtime)
    assert excinfo.value.host == "master1"
    assert excinfo.value.task == "Broken"


def test_unknown_role_fails(runtime):
    with pytest.raises(TaskError):
        execute(Echo(name="Echo", roles=["nope"]), runtime)
