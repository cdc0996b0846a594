"""Entando release lookup against the public entando-releases repository."""

from typing import Any, Dict, List, Optional

import requests
import yaml
from packaging.version import InvalidVersion, Version

from entandoupgrader.constants import (
    CATALOG_SOURCE_PATH,
    HTTP_TIMEOUT_SECONDS,
    PATCH_MANIFEST_PATH,
    RELEASE_FILES_URL,
    RELEASE_TAGS_URL,
)
from entandoupgrader.errors import UpgraderError
from entandoupgrader.errors_catalog import actionable_error
from entandoupgrader.models import ClusterFlavor


def _tag_sort_key(tag: str):
    try:
        return (1, Version(tag.lstrip("vV")))
    except InvalidVersion:
        return (0, Version("0"))


def sorted_tags(tags: List[str]) -> List[str]:
    """Newest release first; tags that are not versions go last in their original order."""
    return sorted(tags, key=_tag_sort_key, reverse=True)


def resolve_version(requested: Optional[str], tags: List[str]) -> Optional[str]:
    if not requested:
        return None
    if requested in tags:
        return requested
    if f"v{requested}" in tags:
        return f"v{requested}"
    return None


class ReleaseService:
    """Fetches tags, patch manifests and catalog sources for a release."""

    def __init__(self, logger, console, requests_module=requests):
        self.logger = logger
        self.console = console
        self.requests = requests_module

    def fetch_tags(self) -> List[str]:
        self.logger.debug("Fetching release tags from %s", RELEASE_TAGS_URL)
        try:
            response = self.requests.get(RELEASE_TAGS_URL, timeout=HTTP_TIMEOUT_SECONDS)
            response.raise_for_status()
            payload = response.json()
        except (self.requests.RequestException, ValueError) as exc:
            raise UpgraderError(actionable_error("tags_unavailable", error=exc)) from exc

        return sorted_tags([item["name"] for item in payload if isinstance(item, dict) and item.get("name")])

    @staticmethod
    def patch_manifest_url(version: str, flavor: ClusterFlavor) -> str:
        base = RELEASE_FILES_URL.format(version=version)
        return f"{base}/{PATCH_MANIFEST_PATH.format(flavor=flavor.value)}"

    @staticmethod
    def catalog_source_url(version: str) -> str:
        return f"{RELEASE_FILES_URL.format(version=version)}/{CATALOG_SOURCE_PATH}"

    def patch_manifest_exists(self, version: str, flavor: ClusterFlavor) -> bool:
        url = self.patch_manifest_url(version, flavor)
        for method in ("HEAD", "GET"):
            try:
                response = self.requests.request(
                    method,
                    url,
                    allow_redirects=True,
                    timeout=HTTP_TIMEOUT_SECONDS,
                    stream=(method == "GET"),
                )
                response.raise_for_status()
                response.close()
                return True
            except self.requests.RequestException as exc:
                self.logger.debug("%s %s failed: %s", method, url, exc)
        return False

    def _get_text(self, url: str, label: str) -> str:
        try:
            response = self.requests.get(url, timeout=HTTP_TIMEOUT_SECONDS)
            response.raise_for_status()
        except self.requests.RequestException as exc:
            raise UpgraderError(f"Failed fetching {label}: {exc}") from exc
        return response.text

    def fetch_patch_manifest(self, version: str, flavor: ClusterFlavor) -> str:
        return self._get_text(
            self.patch_manifest_url(version, flavor),
            f"kustomization-{flavor.value}.yaml for Entando {version}",
        )

    def fetch_catalog_source(self, version: str) -> Dict[str, Any]:
        document = self._get_text(self.catalog_source_url(version), f"catalog source for Entando {version}")
        try:
            manifest = yaml.safe_load(document)
        except yaml.YAMLError as exc:
            raise UpgraderError(f"Invalid catalog source for Entando {version}: {exc}") from exc
        if not isinstance(manifest, dict) or not (manifest.get("metadata") or {}).get("name"):
            raise UpgraderError(f"Catalog source for Entando {version} has no name.")
        return manifest
