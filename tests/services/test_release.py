import pytest

from entandoupgrader.errors import UpgraderError
from entandoupgrader.models import ClusterFlavor
from entandoupgrader.services.release import ReleaseService, resolve_version, sorted_tags


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeResponse:
    def __init__(self, payload=None, text="", status_code=200):
        self.payload = payload
        self.text = text
        self.status_code = status_code
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise FakeRequestsModule.RequestException(f"HTTP {self.status_code}")

    def json(self):
        return self.payload

    def close(self):
        self.closed = True


class FakeRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self, responses=None, probe_statuses=None):
        self.responses = responses or {}
        self.probe_statuses = probe_statuses or {}
        self.requested = []

    def get(self, url, **_kwargs):
        self.requested.append(("GET", url))
        response = self.responses.get(url)
        if response is None:
            raise self.RequestException("connection refused")
        return response

    def request(self, method, url, **_kwargs):
        self.requested.append((method, url))
        return FakeResponse(status_code=self.probe_statuses.get(method, 404))


def build_service(requests_module):
    return ReleaseService(logger=DummyLogger(), console=DummyConsole(), requests_module=requests_module)


def test_sorted_tags_puts_newest_release_first():
    tags = ["v7.0.2", "v7.2.0-rc1", "latest", "v7.10.0", "v7.2.0"]

    assert sorted_tags(tags) == ["v7.10.0", "v7.2.0", "v7.2.0-rc1", "v7.0.2", "latest"]


def test_resolve_version_accepts_missing_v_prefix():
    tags = ["v7.2.0", "v7.1.0"]

    assert resolve_version("v7.2.0", tags) == "v7.2.0"
    assert resolve_version("7.1.0", tags) == "v7.1.0"
    assert resolve_version("6.0.0", tags) is None
    assert resolve_version(None, tags) is None


def test_fetch_tags_returns_sorted_names():
    fake_requests = FakeRequestsModule(
        responses={
            "https://api.github.com/repos/entando/entando-releases/tags?per_page=200": FakeResponse(
                payload=[{"name": "v7.1.0"}, {"name": "v7.2.0"}]
            )
        }
    )

    assert build_service(fake_requests).fetch_tags() == ["v7.2.0", "v7.1.0"]


def test_fetch_tags_failure_is_fatal():
    with pytest.raises(UpgraderError, match="Error fetching Entando tags"):
        build_service(FakeRequestsModule()).fetch_tags()


def test_patch_manifest_url_depends_on_flavor():
    url = ReleaseService.patch_manifest_url("v7.2.0", ClusterFlavor.OPERATOR_MANAGED)

    assert url == (
        "https://raw.githubusercontent.com/entando/entando-releases/v7.2.0/dist/ge-1-1-6/"
        "plain-templates/misc/kustomization-OCP.yaml"
    )
    assert ReleaseService.catalog_source_url("v7.2.0").endswith(
        "/v7.2.0/dist/ge-1-1-6/samples/openshift-catalog-source.yaml"
    )


def test_patch_manifest_exists_falls_back_to_get():
    fake_requests = FakeRequestsModule(probe_statuses={"HEAD": 405, "GET": 200})

    assert build_service(fake_requests).patch_manifest_exists("v7.2.0", ClusterFlavor.STANDARD_K8S) is True
    assert [method for method, _ in fake_requests.requested] == ["HEAD", "GET"]


def test_patch_manifest_missing_for_flavor():
    fake_requests = FakeRequestsModule(probe_statuses={"HEAD": 404, "GET": 404})

    assert build_service(fake_requests).patch_manifest_exists("v7.2.0", ClusterFlavor.STANDARD_K8S) is False


def test_fetch_catalog_source_parses_manifest():
    url = ReleaseService.catalog_source_url("v7.2.0")
    fake_requests = FakeRequestsModule(
        responses={
            url: FakeResponse(
                text=(
                    "apiVersion: operators.coreos.com/v1alpha1\n"
                    "kind: CatalogSource\n"
                    "metadata:\n  name: entando-catalog-v7.2.0\n  namespace: openshift-marketplace\n"
                )
            )
        }
    )

    catalog = build_service(fake_requests).fetch_catalog_source("v7.2.0")

    assert catalog["metadata"]["name"] == "entando-catalog-v7.2.0"


def test_fetch_patch_manifest_reports_failures():
    with pytest.raises(UpgraderError, match="kustomization-K8S.yaml for Entando v7.2.0"):
        build_service(FakeRequestsModule()).fetch_patch_manifest("v7.2.0", ClusterFlavor.STANDARD_K8S)
