"""Kubernetes client facade used by every EntandoUpgrader service."""

from typing import Any, Dict, List, Optional, Tuple

import urllib3
from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ResourceNotFoundError

MERGE_PATCH = "application/merge-patch+json"


class ClusterService:
    """Typed and dynamic object operations on the selected kube context.

    Every method returns plain dictionaries (camelCase keys, as the API serves
    them) so backups, rewrites and applies share a single representation.
    """

    def __init__(self, api_client: client.ApiClient, context_name: str):
        self.api_client = api_client
        self.context_name = context_name
        self._core_v1 = client.CoreV1Api(api_client)
        self._apps_v1 = client.AppsV1Api(api_client)
        self._dynamic: Optional[DynamicClient] = None

    @classmethod
    def from_kube_config(cls, context: Optional[str] = None) -> "ClusterService":
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        _, active = config.list_kube_config_contexts()
        context_name = context or (active or {}).get("name", "")
        api_client = config.new_client_from_config(context=context_name or None)
        return cls(api_client, context_name)

    @staticmethod
    def list_contexts() -> Tuple[List[str], str]:
        contexts, active = config.list_kube_config_contexts()
        return [item["name"] for item in contexts], (active or {}).get("name", "")

    @property
    def current_context(self) -> str:
        return self.context_name

    def use_context(self, context: str) -> "ClusterService":
        return ClusterService.from_kube_config(context)

    @property
    def host(self) -> str:
        return self.api_client.configuration.host

    @property
    def dynamic(self) -> DynamicClient:
        if self._dynamic is None:
            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    def _to_dict(self, obj) -> Dict[str, Any]:
        return self.api_client.sanitize_for_serialization(obj)

    def _resource(self, api_version: str, kind: str):
        return self.dynamic.resources.get(api_version=api_version, kind=kind)

    def _resource_for(self, manifest: Dict[str, Any]):
        return self._resource(manifest["apiVersion"], manifest["kind"])

    def read_namespace(self, name: str) -> Dict[str, Any]:
        return self._to_dict(self._core_v1.read_namespace(name=name))

    def list_objects(self, api_version: str, kind: str, namespace: str) -> List[Dict[str, Any]]:
        result = self._resource(api_version, kind).get(namespace=namespace)
        return result.to_dict().get("items") or []

    def read_object(self, manifest: Dict[str, Any]) -> Dict[str, Any]:
        metadata = manifest["metadata"]
        result = self._resource_for(manifest).get(
            name=metadata["name"],
            namespace=metadata.get("namespace"),
        )
        return result.to_dict()

    def create_object(self, manifest: Dict[str, Any]) -> Dict[str, Any]:
        result = self._resource_for(manifest).create(
            body=manifest,
            namespace=manifest["metadata"].get("namespace"),
        )
        return result.to_dict()

    def patch_object(self, manifest: Dict[str, Any]) -> Dict[str, Any]:
        metadata = manifest["metadata"]
        result = self._resource_for(manifest).patch(
            body=manifest,
            name=metadata["name"],
            namespace=metadata.get("namespace"),
            content_type=MERGE_PATCH,
        )
        return result.to_dict()

    def replace_object(self, manifest: Dict[str, Any]) -> Dict[str, Any]:
        result = self._resource_for(manifest).replace(
            body=manifest,
            namespace=manifest["metadata"].get("namespace"),
        )
        return result.to_dict()

    def delete_object(self, manifest: Dict[str, Any]):
        metadata = manifest["metadata"]
        self._resource_for(manifest).delete(name=metadata["name"], namespace=metadata.get("namespace"))

    def list_deployments(self, namespace: str) -> List[Dict[str, Any]]:
        response = self._apps_v1.list_namespaced_deployment(namespace=namespace)
        return [self._to_dict(item) for item in response.items]

    def read_deployment(self, name: str, namespace: str) -> Dict[str, Any]:
        return self._to_dict(self._apps_v1.read_namespaced_deployment(name, namespace))

    def replace_deployment(self, name: str, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._to_dict(self._apps_v1.replace_namespaced_deployment(name, namespace, body))

    def read_deployment_status(self, name: str, namespace: str) -> Dict[str, Any]:
        return self._to_dict(self._apps_v1.read_namespaced_deployment_status(name, namespace))


def is_transient(exc: Exception) -> bool:
    """Lookup failures that mean "not there yet" rather than "broken"."""
    if not isinstance(exc, ApiException):
        return False
    status = exc.status or 0
    return status in (0, 404, 409, 429) or status >= 500


def is_missing_kind(exc: Exception) -> bool:
    """The API server has no resource for the requested kind (its CRD is not installed)."""
    return isinstance(exc, ResourceNotFoundError)


def is_unauthorized(exc: Exception) -> bool:
    return isinstance(exc, ApiException) and exc.status == 401
