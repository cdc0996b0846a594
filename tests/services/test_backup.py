import pytest
import yaml

from entandoupgrader.errors import AmbiguousInstallation, PreconditionError
from entandoupgrader.services.backup import BackupService, normalize_image, strip_volatile_fields


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


def deployment(name, image):
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": name,
            "namespace": "entando",
            "resourceVersion": "42",
            "managedFields": [{"manager": "kubectl"}],
        },
        "spec": {"template": {"spec": {"containers": [{"name": name, "image": image}]}}},
    }


class FakeCluster:
    def __init__(self, deployments=(), objects=None):
        self.deployments = {item["metadata"]["name"]: item for item in deployments}
        self.objects = objects or {}
        self.reads = []

    def list_deployments(self, namespace):
        return [{"metadata": {"name": name}} for name in self.deployments]

    def read_deployment(self, name, namespace):
        self.reads.append(name)
        return self.deployments[name]

    def list_objects(self, api_version, kind, namespace):
        return self.objects.get(kind, [])

    def read_object(self, manifest):
        return dict(manifest, status={"phase": "Succeeded"})


def build_service(cluster):
    return BackupService(cluster, DummyLogger(), DummyConsole())


@pytest.mark.parametrize(
    "image, expected",
    [
        ("docker.io/foo:1.0", "registry.hub.docker.com/foo:1.0"),
        ("entando/app-builder:7.1", "registry.hub.docker.com/entando/app-builder:7.1"),
        ("quay.io/entando/operator@sha256:abc", "quay.io/entando/operator@sha256:abc"),
        (None, None),
    ],
)
def test_normalize_image(image, expected):
    assert normalize_image(image) == expected


def test_capture_normalizes_copy_and_leaves_live_object_untouched():
    live = deployment("foo", "docker.io/foo:1.0")
    cluster = FakeCluster([live])

    workloads = build_service(cluster).capture_workloads("entando")

    assert [item.image for item in workloads] == ["registry.hub.docker.com/foo:1.0"]
    assert live["spec"]["template"]["spec"]["containers"][0]["image"] == "docker.io/foo:1.0"
    assert cluster.reads == ["foo"]


def test_capture_operator_state_requires_exactly_one_object():
    subscription = {"apiVersion": "operators.coreos.com/v1alpha1", "kind": "Subscription", "metadata": {"name": "sub"}}
    csv = {"apiVersion": "operators.coreos.com/v1alpha1", "kind": "ClusterServiceVersion", "metadata": {"name": "csv"}}

    service = build_service(FakeCluster(objects={"Subscription": [subscription], "ClusterServiceVersion": [csv]}))
    handle = service.capture_operator_state("entando")

    assert handle.subscription_name == "sub"
    assert handle.csv_name == "csv"
    assert handle.cluster_service_version["status"] == {"phase": "Succeeded"}

    with pytest.raises(PreconditionError, match="No Subscription found"):
        build_service(FakeCluster(objects={"ClusterServiceVersion": [csv]})).capture_operator_state("entando")

    with pytest.raises(AmbiguousInstallation, match="Found 2 ClusterServiceVersion"):
        build_service(
            FakeCluster(objects={"Subscription": [subscription], "ClusterServiceVersion": [csv, csv]})
        ).capture_operator_state("entando")


def test_persist_strips_volatile_fields_and_keeps_write_order(tmp_path):
    objects = [deployment("b-app", "b:1"), deployment("a-app", "a:1")]

    snapshot = build_service(FakeCluster()).persist(objects, tmp_path / "base")

    assert snapshot.file_names == ["b-app.yaml", "a-app.yaml"]
    written = yaml.safe_load((tmp_path / "base" / "b-app.yaml").read_text(encoding="utf-8"))
    assert "resourceVersion" not in written["metadata"]
    assert "managedFields" not in written["metadata"]
    assert objects[0]["metadata"]["resourceVersion"] == "42"


def test_strip_volatile_fields_returns_a_copy():
    original = deployment("app", "app:1")

    cleaned = strip_volatile_fields(original)

    assert cleaned["metadata"] == {"name": "app", "namespace": "entando"}
    assert "managedFields" in original["metadata"]


def test_write_kustomization_lists_resources(tmp_path):
    path = build_service(FakeCluster()).write_kustomization(
        tmp_path,
        ["../base"],
        extra="\nnamespace: entando\n",
    )

    assert path.read_text(encoding="utf-8") == (
        "apiVersion: kustomize.config.k8s.io/v1beta1\n"
        "kind: Kustomization\n\n"
        "resources:\n"
        "  - ../base\n"
        "\nnamespace: entando\n"
    )
