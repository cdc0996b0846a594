"""Backup capture and persistence for workloads and operator objects."""

import copy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import yaml

from entandoupgrader.constants import (
    CSV_KIND,
    KUSTOMIZATION_FILE,
    KUSTOMIZATION_HEADER,
    OLM_API_VERSION,
    REGISTRY_MIRRORS,
    SUBSCRIPTION_KIND,
    VOLATILE_METADATA_FIELDS,
)
from entandoupgrader.errors import AmbiguousInstallation, PreconditionError, UpgraderError
from entandoupgrader.errors_catalog import actionable_error
from entandoupgrader.models import BackupSnapshot, ManagingOperatorHandle, Workload


def strip_volatile_fields(manifest: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = copy.deepcopy(manifest)
    metadata = cleaned.get("metadata") or {}
    for field_name in VOLATILE_METADATA_FIELDS:
        metadata.pop(field_name, None)
    return cleaned


def normalize_image(image: Optional[str]) -> Optional[str]:
    """Expands a public registry shorthand to its fully qualified mirror host."""
    if not image:
        return image
    for shorthand, mirror in REGISTRY_MIRRORS:
        if image.startswith(shorthand):
            return mirror + image[len(shorthand):]
    return image


class BackupService:
    """Snapshots cluster objects to disk before anything is mutated."""

    def __init__(self, cluster, logger, console):
        self.cluster = cluster
        self.logger = logger
        self.console = console

    def capture_workloads(self, namespace: str) -> List[Workload]:
        workloads = []
        for summary in self.cluster.list_deployments(namespace):
            name = summary["metadata"]["name"]
            workload = Workload(copy.deepcopy(self.cluster.read_deployment(name, namespace)))
            if workload.image:
                normalized = normalize_image(workload.image)
                if normalized != workload.image:
                    self.logger.debug("Backup of %s: %s -> %s", name, workload.image, normalized)
                    workload.image = normalized
            workloads.append(workload)
        return workloads

    def capture_operator_state(self, namespace: str) -> ManagingOperatorHandle:
        return ManagingOperatorHandle(
            subscription=self.read_singleton(SUBSCRIPTION_KIND, namespace),
            cluster_service_version=self.read_singleton(CSV_KIND, namespace),
        )

    def read_singleton(self, kind: str, namespace: str) -> Dict[str, Any]:
        items = self.cluster.list_objects(OLM_API_VERSION, kind, namespace)
        if not items:
            raise PreconditionError(
                actionable_error("operator_not_installed", kind=kind, namespace=namespace)
            )
        if len(items) > 1:
            raise AmbiguousInstallation(
                actionable_error(
                    "ambiguous_installation",
                    count=str(len(items)),
                    kind=kind,
                    namespace=namespace,
                )
            )
        return self.cluster.read_object(items[0])

    def persist(self, objects: Iterable[Dict[str, Any]], directory: Path) -> BackupSnapshot:
        directory = Path(directory)
        written = []
        try:
            directory.mkdir(parents=True, exist_ok=True)
            for manifest in objects:
                cleaned = strip_volatile_fields(manifest)
                target = directory / f"{cleaned['metadata']['name']}.yaml"
                target.write_text(
                    yaml.safe_dump(cleaned, sort_keys=False, default_flow_style=False),
                    encoding="utf-8",
                )
                self.console.print(f"[green]Created file '{target.name}'[/green]")
                written.append(target)
        except OSError as exc:
            raise UpgraderError(f"Could not write backup files to '{directory}': {exc}") from exc

        self.logger.info("Stored %s object(s) in %s", len(written), directory)
        return BackupSnapshot(directory=directory, files=tuple(written))

    def write_kustomization(self, directory: Path, resources: Sequence[str], extra: str = "") -> Path:
        content = KUSTOMIZATION_HEADER + "resources:\n"
        for resource in resources:
            content += f"  - {resource}\n"
        content += extra

        target = Path(directory) / KUSTOMIZATION_FILE
        try:
            target.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise UpgraderError(f"Could not write '{target}': {exc}") from exc

        self.console.print(f"[green]Created '{KUSTOMIZATION_FILE}' in {directory}[/green]")
        return target
