import pytest
from kubernetes.client import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from entandoupgrader.errors import InputValidationError, UpgraderError
from entandoupgrader.models import ClusterFlavor
from entandoupgrader.services.validation import ValidationService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


class FakeCluster:
    def __init__(self, namespaces=(), apps=None, read_error=None, object_error=None, list_error=None):
        self.namespaces = set(namespaces)
        self.apps = apps or {}
        self.read_error = read_error
        self.object_error = object_error
        self.list_error = list_error

    def read_namespace(self, name):
        if self.read_error is not None:
            raise self.read_error
        if name not in self.namespaces:
            raise ApiException(status=404, reason="Not Found")
        return {"metadata": {"name": name}}

    def list_objects(self, api_version, kind, namespace):
        assert (api_version, kind) == ("entando.org/v1", "EntandoApp")
        if self.list_error is not None:
            raise self.list_error
        return self.apps.get(namespace, [])

    def read_object(self, manifest):
        if self.object_error is not None:
            raise self.object_error
        return manifest


def build_service(cluster):
    return ValidationService(cluster=cluster, logger=DummyLogger())


def test_readable_openshift_namespace_means_operator_managed():
    flavor = build_service(FakeCluster(namespaces={"openshift"})).detect_cluster_flavor()

    assert flavor is ClusterFlavor.OPERATOR_MANAGED


def test_missing_openshift_namespace_means_standard_kubernetes():
    assert build_service(FakeCluster()).detect_cluster_flavor() is ClusterFlavor.STANDARD_K8S


def test_unauthorized_cluster_asks_to_log_in():
    cluster = FakeCluster(read_error=ApiException(status=401, reason="Unauthorized"))

    with pytest.raises(UpgraderError, match="Log in to your cluster"):
        build_service(cluster).detect_cluster_flavor()


def test_validate_namespace_requires_existing_namespace():
    with pytest.raises(InputValidationError, match="does not exist"):
        build_service(FakeCluster()).validate_namespace("missing")


def test_validate_namespace_requires_entando_app():
    with pytest.raises(InputValidationError, match="does not seem to have Entando installed"):
        build_service(FakeCluster(namespaces={"empty"})).validate_namespace("empty")


def test_validate_namespace_accepts_entando_namespace():
    cluster = FakeCluster(namespaces={"entando"}, apps={"entando": [{"metadata": {"name": "quickstart"}}]})

    build_service(cluster).validate_namespace("entando")


def test_catalog_source_lookup():
    catalog = {"kind": "CatalogSource", "metadata": {"name": "entando-catalog"}}

    assert build_service(FakeCluster()).catalog_source_exists(catalog) is True
    assert build_service(FakeCluster(object_error=ApiException(status=404))).catalog_source_exists(catalog) is False

    with pytest.raises(ApiException):
        build_service(FakeCluster(object_error=ApiException(status=403))).catalog_source_exists(catalog)


def test_validate_namespace_without_entando_crd_reports_missing_installation():
    cluster = FakeCluster(
        namespaces={"default"},
        list_error=ResourceNotFoundError("No matches found for EntandoApp"),
    )

    with pytest.raises(InputValidationError, match="does not seem to have Entando installed"):
        build_service(cluster).validate_namespace("default")


def test_validate_namespace_propagates_forbidden_app_listing():
    cluster = FakeCluster(namespaces={"entando"}, list_error=ApiException(status=403, reason="Forbidden"))

    with pytest.raises(ApiException):
        build_service(cluster).validate_namespace("entando")
