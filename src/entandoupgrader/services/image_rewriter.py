"""Image reference rewriting driven by a release's kustomize image mapping."""

from typing import List, Optional, Tuple

import yaml

from entandoupgrader.constants import OPERATOR_MANAGED_DEPLOYMENTS
from entandoupgrader.errors import UpgraderError
from entandoupgrader.models import (
    ClusterFlavor,
    ImageMapping,
    ImageMappingEntry,
    TagPrecedence,
    Workload,
)


def parse_image_mapping(document: str) -> ImageMapping:
    """Reads the ``images:`` list of a kustomization document."""
    try:
        data = yaml.safe_load(document)
    except yaml.YAMLError as exc:
        raise UpgraderError(f"Invalid kustomization document: {exc}") from exc

    if not isinstance(data, dict):
        return ImageMapping()

    entries = []
    for item in data.get("images") or []:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        name = str(item["name"])
        entries.append(
            ImageMappingEntry(
                name=name,
                new_name=str(item.get("newName") or name),
                new_tag=_optional_str(item.get("newTag")),
                digest=_optional_str(item.get("digest")),
            )
        )
    return ImageMapping(entries=tuple(entries))


def _optional_str(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def split_image(image: str, separator: str) -> Tuple[str, Optional[str]]:
    if separator == "@":
        repository, _, reference = image.partition("@")
        return repository, reference or None

    colon = image.rfind(":")
    if colon > image.rfind("/"):
        return image[:colon], image[colon + 1:] or None
    return image, None


def strip_registry_host(repository: str) -> str:
    first, slash, rest = repository.partition("/")
    if slash and ("." in first or ":" in first or first == "localhost"):
        return rest
    return repository


class ImageRewriteService:
    """Points workload images at the registry/tag/digest of the target release."""

    def __init__(self, logger, precedence: TagPrecedence = TagPrecedence.DIGEST_FIRST):
        self.logger = logger
        self.precedence = precedence

    def lookup(self, mapping: ImageMapping, repository: str) -> Optional[ImageMappingEntry]:
        for candidate in self._candidate_names(repository):
            entry = mapping.find(candidate)
            if entry:
                return entry
        return None

    @staticmethod
    def _candidate_names(repository: str) -> List[str]:
        names = [repository]
        stripped = strip_registry_host(repository)
        if stripped != repository:
            names.append(stripped)
        return names

    def rewrite_reference(self, image: str, mapping: ImageMapping, separator: str) -> Optional[str]:
        repository, reference = split_image(image, separator)
        entry = self.lookup(mapping, repository)
        if entry is None:
            return None

        new_reference = entry.reference(self.precedence)
        if new_reference is None:
            if reference is None:
                return entry.new_name
            return f"{entry.new_name}{separator}{reference}"

        joiner = "@" if new_reference == entry.digest else ":"
        return f"{entry.new_name}{joiner}{new_reference}"

    def rewrite(
        self,
        workload: Workload,
        mapping: ImageMapping,
        flavor: ClusterFlavor,
    ) -> Tuple[Workload, bool]:
        if flavor is ClusterFlavor.OPERATOR_MANAGED and workload.name in OPERATOR_MANAGED_DEPLOYMENTS:
            return workload, False
        if not workload.image:
            return workload, False

        separator = flavor.image_separator
        new_image = self.rewrite_reference(workload.image, mapping, separator)
        if new_image is None:
            self.logger.debug("No image mapping for %s (%s)", workload.name, workload.image)
            return workload, False

        updated = workload.copy()
        updated.image = new_image
        self.logger.info("%s: %s -> %s", workload.name, workload.image, new_image)

        annotation = updated.container_image_annotation
        if annotation:
            new_annotation = self.rewrite_reference(annotation, mapping, separator)
            if new_annotation is not None:
                updated.container_image_annotation = new_annotation

        return updated, True
