"""OLM operator replacement: uninstall, subscribe to the new catalog, wait for the CSV."""

import copy
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from entandoupgrader.constants import (
    CSV_KIND,
    CSV_SUCCEEDED_PHASE,
    K8S_SERVICE_DEPLOYMENT,
    MARKETPLACE_NAMESPACE,
    OLM_API_VERSION,
    OPERATOR_CHANNEL,
    OPERATOR_DEPLOYMENT,
    OPERATOR_ENV_DENY_MARKERS,
    OPERATOR_ENV_DENYLIST,
    OPERATOR_PACKAGE,
    SERVICE_ENV_DENYLIST,
    SUBSCRIPTION_KIND,
)
from entandoupgrader.errors import MutationError, PreconditionError
from entandoupgrader.models import (
    EnvDenylist,
    EnvLiteral,
    EnvReference,
    EnvSource,
    EnvVar,
    ManagingOperatorHandle,
    Workload,
)

OPERATOR_ENV_RULES = EnvDenylist(
    names=frozenset(OPERATOR_ENV_DENYLIST),
    markers=OPERATOR_ENV_DENY_MARKERS,
)
SERVICE_ENV_RULES = EnvDenylist(names=frozenset(SERVICE_ENV_DENYLIST))


class OperatorReplacementPhase(str, Enum):
    UNINSTALLING = "Uninstalling"
    INSTALLING = "Installing"
    AWAITING_READY = "AwaitingReady"
    READY = "Ready"


def merge_env(
    target: List[Dict[str, Any]],
    previous: Iterable[Dict[str, Any]],
    denylist: EnvDenylist,
) -> List[Dict[str, Any]]:
    """Carries previous variables into ``target`` without changing its field kinds."""
    merged = copy.deepcopy(target)
    by_name = {item.get("name"): item for item in merged}

    for raw in previous:
        variable = EnvVar.from_dict(raw)
        if denylist.blocks(variable.name):
            continue

        existing = by_name.get(variable.name)
        if existing is None:
            added = variable.to_dict()
            merged.append(added)
            by_name[variable.name] = added
            continue

        _overwrite_existing_fields(existing, variable.source)

    return merged


def _overwrite_existing_fields(existing: Dict[str, Any], source: Optional[EnvSource]):
    if "value" in existing:
        if isinstance(source, EnvLiteral):
            existing["value"] = source.value
        else:
            del existing["value"]
    if "valueFrom" in existing:
        if isinstance(source, EnvReference):
            existing["valueFrom"] = copy.deepcopy(source.value_from)
        else:
            del existing["valueFrom"]


class OperatorReplacementService:
    """Swaps the OLM-managed Entando operator for the target release's one."""

    def __init__(self, cluster, poller, logger, console):
        self.cluster = cluster
        self.poller = poller
        self.logger = logger
        self.console = console
        self.phase: Optional[OperatorReplacementPhase] = None
        self.history: List[OperatorReplacementPhase] = []
        self.retired_csvs: Set[str] = set()

    def _enter(self, phase: OperatorReplacementPhase):
        self.logger.debug("Operator replacement: %s", phase.value)
        self.phase = phase
        self.history.append(phase)

    @staticmethod
    def starting_csv(version: str) -> str:
        return f"{OPERATOR_PACKAGE}.{version}"

    @classmethod
    def build_subscription(cls, namespace: str, catalog_source: str, version: str) -> Dict[str, Any]:
        return {
            "apiVersion": OLM_API_VERSION,
            "kind": SUBSCRIPTION_KIND,
            "metadata": {"name": OPERATOR_PACKAGE, "namespace": namespace},
            "spec": {
                "channel": OPERATOR_CHANNEL,
                "installPlanApproval": "Automatic",
                "name": OPERATOR_PACKAGE,
                "source": catalog_source,
                "sourceNamespace": MARKETPLACE_NAMESPACE,
                "startingCSV": cls.starting_csv(version),
            },
        }

    def replace(
        self,
        handle: ManagingOperatorHandle,
        namespace: str,
        catalog_source: str,
        version: str,
    ) -> ManagingOperatorHandle:
        self._enter(OperatorReplacementPhase.UNINSTALLING)
        self.console.print(f"Uninstalling operator {handle.csv_name}")
        self.uninstall(handle)

        self._enter(OperatorReplacementPhase.INSTALLING)
        self.console.print(f"Installing the new operator for {catalog_source}")
        subscription = self.install(namespace, catalog_source, version)

        self._enter(OperatorReplacementPhase.AWAITING_READY)
        csv = self.await_ready(namespace, version)

        self._enter(OperatorReplacementPhase.READY)
        self.console.print(f"[green]Operator {csv['metadata']['name']} is ready.[/green]")
        return ManagingOperatorHandle(subscription=subscription, cluster_service_version=csv)

    def uninstall(self, handle: ManagingOperatorHandle):
        for manifest in (handle.subscription, handle.cluster_service_version):
            name = manifest["metadata"]["name"]
            try:
                self.cluster.delete_object(manifest)
            except Exception as exc:
                raise MutationError(f"Error while uninstalling {name}: {exc}", identity=name) from exc
            self.logger.info("Deleted %s %s", manifest.get("kind"), name)
        self.retired_csvs.add(handle.csv_name)

    def install(self, namespace: str, catalog_source: str, version: str) -> Dict[str, Any]:
        subscription = self.build_subscription(namespace, catalog_source, version)
        try:
            return self.cluster.create_object(subscription)
        except Exception as exc:
            raise MutationError(
                f"Error while installing the operator: {exc}",
                identity=OPERATOR_PACKAGE,
            ) from exc

    def find_csv(self, namespace: str, version: str) -> Optional[Dict[str, Any]]:
        """The starting CSV, else the only live CSV that was not just uninstalled."""
        live = [
            item
            for item in self.cluster.list_objects(OLM_API_VERSION, CSV_KIND, namespace)
            if not item["metadata"].get("deletionTimestamp")
        ]
        expected = self.starting_csv(version)
        matching = [item for item in live if item["metadata"]["name"] == expected]
        if not matching:
            others = [item for item in live if item["metadata"]["name"] not in self.retired_csvs]
            if len(others) == 1:
                matching = others
        if not matching:
            return None
        return self.cluster.read_object(matching[0])

    def await_ready(self, namespace: str, version: str) -> Dict[str, Any]:
        observed: Dict[str, Any] = {}

        def csv_succeeded() -> bool:
            csv = self.find_csv(namespace, version)
            if csv is None:
                return False
            observed["csv"] = csv
            return (csv.get("status") or {}).get("phase") == CSV_SUCCEEDED_PHASE

        self.poller.wait_until(
            csv_succeeded,
            description=f"ClusterServiceVersion '{self.starting_csv(version)}' to succeed",
        )
        return observed["csv"]

    def forward_environment(
        self,
        previous_workloads: Sequence[Workload],
        namespace: str,
        version: str,
    ) -> Dict[str, Any]:
        csv = self.find_csv(namespace, version)
        if csv is None:
            raise PreconditionError(f"No ClusterServiceVersion found in '{namespace}'.")

        install_deployments = csv["spec"]["install"]["spec"]["deployments"]
        previous = {workload.name: workload for workload in previous_workloads}
        rules = ((OPERATOR_DEPLOYMENT, OPERATOR_ENV_RULES), (K8S_SERVICE_DEPLOYMENT, SERVICE_ENV_RULES))

        for position, (deployment_name, denylist) in enumerate(rules):
            source = previous.get(deployment_name)
            target = self._install_deployment(install_deployments, deployment_name, position)
            if source is None or target is None:
                self.logger.warning("Skipping environment of %s: not found", deployment_name)
                continue
            container = target["spec"]["template"]["spec"]["containers"][0]
            container["env"] = merge_env(container.get("env") or [], source.env, denylist)

        csv["metadata"].pop("managedFields", None)
        name = csv["metadata"]["name"]
        self.console.print(f"Updating {name} in {csv['metadata'].get('namespace', namespace)}")
        try:
            return self.cluster.replace_object(csv)
        except Exception as exc:
            raise MutationError(f"Error while updating {name}: {exc}", identity=name) from exc

    @staticmethod
    def _install_deployment(
        deployments: List[Dict[str, Any]],
        name: str,
        position: int,
    ) -> Optional[Dict[str, Any]]:
        for deployment in deployments:
            if deployment.get("name") == name:
                return deployment
        if position < len(deployments):
            return deployments[position]
        return None
