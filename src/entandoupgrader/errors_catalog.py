"""Actionable error catalog for EntandoUpgrader."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "not_logged_in": {
        "what": "The cluster rejected the request as unauthorized.",
        "next": "Log in to your cluster (e.g. `oc login`) and rerun the tool.",
    },
    "namespace_not_found": {
        "what": "The namespace '{namespace}' does not exist.",
        "next": "Check the name with `kubectl get namespaces` and try again.",
    },
    "entando_not_installed": {
        "what": "The namespace '{namespace}' does not seem to have Entando installed.",
        "next": "Pick the namespace that contains your EntandoApp.",
    },
    "release_not_found": {
        "what": "The Entando version you specified ({version}) could not be found.",
        "next": "Choose one of the published entando-releases tags.",
    },
    "patch_manifest_missing": {
        "what": "Kustomization for selected version {version} is not available.",
        "next": "Pick a different version.",
    },
    "catalog_missing": {
        "what": "Catalog for Entando {version} not found.",
        "next": "Add the catalog source to the marketplace or choose another version.",
    },
    "ambiguous_installation": {
        "what": "Found {count} {kind} objects in '{namespace}', expected exactly one.",
        "next": "Remove the stale {kind} objects so a single operator installation remains.",
    },
    "operator_not_installed": {
        "what": "No {kind} found in '{namespace}'.",
        "next": "Make sure the Entando operator was installed through OperatorHub.",
    },
    "deadline_exceeded": {
        "what": "Timed out after {timeout}s waiting for {description}.",
        "next": "Inspect the cluster events, then rerun with a larger `--wait-timeout`.",
    },
    "tags_unavailable": {
        "what": "Error fetching Entando tags: {error}",
        "next": "Check your network access to api.github.com and retry.",
    },
}


def actionable_error(code: str, **kwargs) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
