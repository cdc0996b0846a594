"""Static values shared across EntandoUpgrader services."""

RELEASES_REPOSITORY = "entando/entando-releases"
RELEASE_TAGS_URL = f"https://api.github.com/repos/{RELEASES_REPOSITORY}/tags?per_page=200"
RELEASE_FILES_URL = f"https://raw.githubusercontent.com/{RELEASES_REPOSITORY}/{{version}}/dist/ge-1-1-6"
PATCH_MANIFEST_PATH = "plain-templates/misc/kustomization-{flavor}.yaml"
CATALOG_SOURCE_PATH = "samples/openshift-catalog-source.yaml"

DEFAULT_CONFIG_FILE = ".entandoupgrader.yml"
RUN_DIRECTORY_PREFIX = "entando-upgrade"
RUN_REPORT_FILE = "run-report.json"
KUSTOMIZATION_FILE = "kustomization.yaml"
KUSTOMIZATION_HEADER = "apiVersion: kustomize.config.k8s.io/v1beta1\nkind: Kustomization\n\n"

DEFAULT_POLL_INTERVAL_SECONDS = 3.0
DEFAULT_WAIT_TIMEOUT_SECONDS = 1800.0
HTTP_TIMEOUT_SECONDS = 30

OPENSHIFT_NAMESPACE = "openshift"
DEFAULT_KUBE_CONTEXT = "loaded-context"

ENTANDO_APP_API_VERSION = "entando.org/v1"
ENTANDO_APP_KIND = "EntandoApp"

OLM_API_VERSION = "operators.coreos.com/v1alpha1"
SUBSCRIPTION_KIND = "Subscription"
CSV_KIND = "ClusterServiceVersion"
CSV_SUCCEEDED_PHASE = "Succeeded"

OPERATOR_PACKAGE = "entando-k8s-operator"
OPERATOR_CHANNEL = "final"
MARKETPLACE_NAMESPACE = "openshift-marketplace"

OPERATOR_DEPLOYMENT = "entando-operator"
K8S_SERVICE_DEPLOYMENT = "entando-k8s-service"
OPERATOR_MANAGED_DEPLOYMENTS = (OPERATOR_DEPLOYMENT, K8S_SERVICE_DEPLOYMENT)

OPERATOR_ENV_DENYLIST = ("ENTANDO_K8S_OPERATOR_VERSION", "OPERATOR_CONDITION_NAME", "OPERATOR_NAME")
OPERATOR_ENV_DENY_MARKERS = ("RELATED_IMAGE_",)
SERVICE_ENV_DENYLIST = ("OPERATOR_CONDITION_NAME", "OPERATOR_NAME")

# Ordered: the first matching prefix wins.
REGISTRY_MIRRORS = (
    ("docker.io", "registry.hub.docker.com"),
    ("entando", "registry.hub.docker.com/entando"),
)

VOLATILE_METADATA_FIELDS = ("resourceVersion", "managedFields")
CONTAINER_IMAGE_ANNOTATION = "containerImage"
CONNECTION_STATE_KINDS = ("CatalogSource",)
CONNECTION_READY_STATE = "READY"
