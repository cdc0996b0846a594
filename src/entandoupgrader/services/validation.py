"""Cluster and input validation helpers for EntandoUpgrader."""

from typing import Any, Dict

from entandoupgrader.constants import ENTANDO_APP_API_VERSION, ENTANDO_APP_KIND, OPENSHIFT_NAMESPACE
from entandoupgrader.errors import InputValidationError, UpgraderError
from entandoupgrader.errors_catalog import actionable_error
from entandoupgrader.models import ClusterFlavor
from entandoupgrader.services.cluster import is_missing_kind, is_transient, is_unauthorized


class ValidationService:
    """Checks the cluster and the operator's answers before anything is written."""

    def __init__(self, cluster, logger):
        self.cluster = cluster
        self.logger = logger

    def detect_cluster_flavor(self) -> ClusterFlavor:
        try:
            self.cluster.read_namespace(OPENSHIFT_NAMESPACE)
        except Exception as exc:
            if is_unauthorized(exc):
                raise UpgraderError(actionable_error("not_logged_in")) from exc
            self.logger.debug("Namespace '%s' not readable: %s", OPENSHIFT_NAMESPACE, exc)
            return ClusterFlavor.STANDARD_K8S
        return ClusterFlavor.OPERATOR_MANAGED

    def validate_namespace(self, namespace: str):
        if not namespace:
            raise InputValidationError("The namespace must not be empty.")

        try:
            self.cluster.read_namespace(namespace)
        except Exception as exc:
            if is_unauthorized(exc):
                raise UpgraderError(actionable_error("not_logged_in")) from exc
            raise InputValidationError(
                actionable_error("namespace_not_found", namespace=namespace)
            ) from exc

        try:
            apps = self.cluster.list_objects(ENTANDO_APP_API_VERSION, ENTANDO_APP_KIND, namespace)
        except Exception as exc:
            if not (is_transient(exc) or is_missing_kind(exc)):
                raise
            self.logger.debug("No %s found in '%s': %s", ENTANDO_APP_KIND, namespace, exc)
            apps = []

        if not apps:
            raise InputValidationError(actionable_error("entando_not_installed", namespace=namespace))

    def catalog_source_exists(self, manifest: Dict[str, Any]) -> bool:
        try:
            self.cluster.read_object(manifest)
        except Exception as exc:
            if not is_transient(exc):
                raise
            return False
        return True
