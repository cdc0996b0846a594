import threading

import pytest

import entandoupgrader.services.poller as poller_module
from entandoupgrader.errors import MutationError
from entandoupgrader.models import Workload
from entandoupgrader.services.poller import ReadinessPoller
from entandoupgrader.services.scaling import ScaleService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def error(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def __init__(self):
        self.messages = []

    def print(self, message="", *_args, **_kwargs):
        self.messages.append(str(message))


class FakeCluster:
    """Deployments whose status walks through a scripted list of readyReplicas values."""

    def __init__(self, statuses, failing=()):
        self.statuses = {name: list(values) for name, values in statuses.items()}
        self.failing = set(failing)
        self.replaced = {}
        self.status_reads = {name: 0 for name in statuses}
        self.lock = threading.Lock()

    def read_deployment(self, name, namespace):
        return {"metadata": {"name": name, "namespace": namespace}, "spec": {"replicas": 1}}

    def replace_deployment(self, name, namespace, body):
        with self.lock:
            self.replaced[name] = body["spec"]["replicas"]
        if name in self.failing:
            raise RuntimeError("conflict")
        return body

    def read_deployment_status(self, name, namespace):
        with self.lock:
            self.status_reads[name] += 1
            values = self.statuses[name]
            ready = values.pop(0) if len(values) > 1 else values[0]
        status = {} if ready is None else {"readyReplicas": ready}
        return {"metadata": {"name": name}, "status": status}


def workload(name):
    return Workload({"metadata": {"name": name}, "spec": {}})


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(poller_module.time, "sleep", lambda _seconds: None)


def build_service(cluster, console=None):
    poller = ReadinessPoller(DummyLogger(), interval=0.01, timeout=None)
    return ScaleService(cluster, poller, DummyLogger(), console or DummyConsole())


@pytest.mark.parametrize(
    "ready, replicas, expected",
    [
        (None, 0, True),
        (1, 0, False),
        (1, 1, True),
        (None, 1, False),
        (0, 1, False),
    ],
)
def test_is_converged(ready, replicas, expected):
    status = {"status": {} if ready is None else {"readyReplicas": ready}}

    assert ScaleService.is_converged(status, replicas) is expected


def test_scale_up_waits_until_ready_replicas_match():
    cluster = FakeCluster({"app": [None, 0, 1]})
    console = DummyConsole()

    converged = build_service(cluster, console).scale_to([workload("app")], "entando", 1)

    assert converged == ["app"]
    assert cluster.replaced == {"app": 1}
    assert cluster.status_reads["app"] == 3
    assert "Scaled up all your deployments!" in console.messages[-1]


def test_scale_down_waits_until_ready_replicas_disappear():
    cluster = FakeCluster({"app": [1, 1, None], "db": [None]})

    converged = build_service(cluster).scale_to([workload("app"), workload("db")], "entando", 0)

    assert converged == ["app", "db"]
    assert cluster.replaced == {"app": 0, "db": 0}
    assert cluster.status_reads["app"] == 3


def test_failures_are_collected_after_every_workload_finished():
    cluster = FakeCluster({"app": [None], "db": [None], "cache": [None]}, failing={"db"})

    with pytest.raises(MutationError) as excinfo:
        build_service(cluster).scale_to([workload("app"), workload("db"), workload("cache")], "entando", 0)

    assert excinfo.value.identity == "db"
    assert "db" in str(excinfo.value)
    assert set(cluster.replaced) == {"app", "db", "cache"}
    assert cluster.status_reads["app"] == 1
    assert cluster.status_reads["cache"] == 1


def test_empty_workload_list_is_a_no_op():
    cluster = FakeCluster({})

    assert build_service(cluster).scale_to([], "entando", 1) == []
