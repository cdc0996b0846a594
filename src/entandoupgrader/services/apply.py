"""Sequential create-or-patch of manifests against the cluster."""

from typing import Any, Dict, Iterable, List, Tuple

from entandoupgrader.constants import CONNECTION_READY_STATE, CONNECTION_STATE_KINDS
from entandoupgrader.errors import MutationError
from entandoupgrader.services.backup import strip_volatile_fields

CREATED = "created"
PATCHED = "patched"


def connection_state(manifest: Dict[str, Any]):
    status = manifest.get("status") or {}
    return (status.get("connectionState") or {}).get("lastObservedState")


class ApplyService:
    def __init__(self, cluster, poller, logger, console):
        self.cluster = cluster
        self.poller = poller
        self.logger = logger
        self.console = console

    def apply(self, objects: Iterable[Dict[str, Any]], namespace: str) -> List[Tuple[str, str]]:
        """Patches objects that exist and creates the others, one at a time.

        Objects lacking ``kind`` or ``metadata`` are skipped. The first failed
        write raises ``MutationError`` and leaves the remaining objects alone.
        """
        results = []
        for manifest in objects:
            if not manifest or not manifest.get("kind") or not manifest.get("metadata"):
                self.logger.debug("Skipping manifest without kind/metadata")
                continue

            manifest = strip_volatile_fields(manifest)
            metadata = manifest["metadata"]
            metadata.setdefault("namespace", namespace)
            name = metadata["name"]

            if self._exists(manifest):
                self._patch(manifest)
                results.append((name, PATCHED))
            else:
                self._create(manifest)
                results.append((name, CREATED))
        return results

    def _exists(self, manifest: Dict[str, Any]) -> bool:
        try:
            self.cluster.read_object(manifest)
        except Exception as exc:
            self.logger.debug("%s not found: %s", manifest["metadata"]["name"], exc)
            return False
        return True

    def _patch(self, manifest: Dict[str, Any]):
        metadata = manifest["metadata"]
        self.console.print(f"Updating {metadata['name']} in {metadata['namespace']}")
        try:
            self.cluster.patch_object(manifest)
        except Exception as exc:
            raise MutationError(
                f"Error while updating {metadata['name']}: {exc}",
                identity=metadata["name"],
            ) from exc

    def _create(self, manifest: Dict[str, Any]):
        metadata = manifest["metadata"]
        self.console.print(f"Creating {metadata['name']} in {metadata['namespace']}")
        try:
            created = self.cluster.create_object(manifest)
        except Exception as exc:
            raise MutationError(
                f"Error while creating {metadata['name']}: {exc}",
                identity=metadata["name"],
            ) from exc

        if manifest["kind"] in CONNECTION_STATE_KINDS or connection_state(created or {}) is not None:
            self.poller.wait_until(
                lambda: connection_state(self.cluster.read_object(manifest)) == CONNECTION_READY_STATE,
                description=f"{manifest['kind']} '{metadata['name']}' to be {CONNECTION_READY_STATE}",
            )
