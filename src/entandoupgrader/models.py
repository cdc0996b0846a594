"""Shared domain models for EntandoUpgrader."""

import copy
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union


class ClusterFlavor(str, Enum):
    STANDARD_K8S = "K8S"
    OPERATOR_MANAGED = "OCP"

    @property
    def image_separator(self) -> str:
        return "@" if self is ClusterFlavor.OPERATOR_MANAGED else ":"

    @property
    def kube_command(self) -> str:
        return "oc" if self is ClusterFlavor.OPERATOR_MANAGED else "kubectl"


class TagPrecedence(str, Enum):
    """Which reference wins when a mapping entry carries both a tag and a digest."""

    DIGEST_FIRST = "digest"
    TAG_FIRST = "tag"


@dataclass(frozen=True)
class ClusterContext:
    """The kube context confirmed by the operator for this run."""

    name: str
    host: str
    flavor: ClusterFlavor


@dataclass
class Workload:
    """A Deployment manifest plus accessors for the fields the upgrade touches."""

    manifest: Dict[str, Any]

    @property
    def name(self) -> str:
        return self.manifest["metadata"]["name"]

    @property
    def namespace(self) -> Optional[str]:
        return self.manifest.get("metadata", {}).get("namespace")

    def _containers(self) -> List[Dict[str, Any]]:
        pod_spec = self.manifest.get("spec", {}).get("template", {}).get("spec") or {}
        return pod_spec.get("containers") or []

    @property
    def image(self) -> Optional[str]:
        containers = self._containers()
        return containers[0].get("image") if containers else None

    @image.setter
    def image(self, value: str):
        self._containers()[0]["image"] = value

    @property
    def env(self) -> List[Dict[str, Any]]:
        containers = self._containers()
        return (containers[0].get("env") or []) if containers else []

    @property
    def container_image_annotation(self) -> Optional[str]:
        template_meta = self.manifest.get("spec", {}).get("template", {}).get("metadata") or {}
        return (template_meta.get("annotations") or {}).get("containerImage")

    @container_image_annotation.setter
    def container_image_annotation(self, value: str):
        self.manifest["spec"]["template"]["metadata"]["annotations"]["containerImage"] = value

    @property
    def replicas(self) -> Optional[int]:
        return self.manifest.get("spec", {}).get("replicas")

    @property
    def ready_replicas(self) -> Optional[int]:
        return (self.manifest.get("status") or {}).get("readyReplicas")

    def copy(self) -> "Workload":
        return Workload(copy.deepcopy(self.manifest))


@dataclass(frozen=True)
class ImageMappingEntry:
    name: str
    new_name: str
    new_tag: Optional[str] = None
    digest: Optional[str] = None

    def reference(self, precedence: TagPrecedence = TagPrecedence.DIGEST_FIRST) -> Optional[str]:
        if precedence is TagPrecedence.TAG_FIRST:
            return self.new_tag or self.digest
        return self.digest or self.new_tag


@dataclass(frozen=True)
class ImageMapping:
    entries: Tuple[ImageMappingEntry, ...] = ()

    def find(self, name: str) -> Optional[ImageMappingEntry]:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class BackupSnapshot:
    """Files written once into a backup directory, in write order."""

    directory: Path
    files: Tuple[Path, ...] = ()

    @property
    def file_names(self) -> List[str]:
        return [path.name for path in self.files]


@dataclass(frozen=True)
class ManagingOperatorHandle:
    """OLM objects that describe the installed Entando operator."""

    subscription: Dict[str, Any]
    cluster_service_version: Dict[str, Any]

    @property
    def subscription_name(self) -> str:
        return self.subscription["metadata"]["name"]

    @property
    def csv_name(self) -> str:
        return self.cluster_service_version["metadata"]["name"]


@dataclass(frozen=True)
class EnvLiteral:
    value: str


@dataclass(frozen=True)
class EnvReference:
    value_from: Dict[str, Any]


EnvSource = Union[EnvLiteral, EnvReference]


@dataclass(frozen=True)
class EnvVar:
    name: str
    source: Optional[EnvSource] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnvVar":
        if "valueFrom" in data and data["valueFrom"] is not None:
            return cls(data["name"], EnvReference(copy.deepcopy(data["valueFrom"])))
        if "value" in data and data["value"] is not None:
            return cls(data["name"], EnvLiteral(data["value"]))
        return cls(data["name"])

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if isinstance(self.source, EnvLiteral):
            data["value"] = self.source.value
        elif isinstance(self.source, EnvReference):
            data["valueFrom"] = copy.deepcopy(self.source.value_from)
        return data


@dataclass(frozen=True)
class EnvDenylist:
    names: FrozenSet[str] = frozenset()
    markers: Tuple[str, ...] = ()

    def blocks(self, name: str) -> bool:
        return name in self.names or any(marker in name for marker in self.markers)


@dataclass(frozen=True)
class UpgradeRun:
    """State fixed for the whole run once the backup has been captured."""

    namespace: str
    target_version: str
    flavor: ClusterFlavor
    run_dir: Path
    catalog_source: Optional[str] = None
    workloads: Tuple[Workload, ...] = field(default_factory=tuple)
    operator: Optional[ManagingOperatorHandle] = None

    @property
    def base_dir(self) -> Path:
        return self.run_dir / "base"

    @property
    def operator_backup_dir(self) -> Path:
        return self.base_dir / "operator"

    @property
    def overlay_dir(self) -> Path:
        return self.run_dir / "overlay"

    @property
    def new_deployments_dir(self) -> Path:
        return self.overlay_dir / "new-deployments"

    @property
    def is_operator_managed(self) -> bool:
        return self.flavor is ClusterFlavor.OPERATOR_MANAGED

    def with_backup(
        self,
        workloads: List[Workload],
        operator: Optional[ManagingOperatorHandle] = None,
    ) -> "UpgradeRun":
        return replace(self, workloads=tuple(workloads), operator=operator)
