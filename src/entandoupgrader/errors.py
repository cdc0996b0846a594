"""Domain errors for EntandoUpgrader."""

from typing import Optional


class UpgraderError(RuntimeError):
    """Raised when the upgrade cannot continue safely."""


class InputValidationError(UpgraderError):
    """A user-supplied value (namespace, release, path) was rejected."""


class PreconditionError(UpgraderError):
    """The cluster is not in the state the upgrade expects."""


class AmbiguousInstallation(PreconditionError):
    """More than one candidate exists where exactly one is required."""


class MutationError(UpgraderError):
    """A create/patch/replace/delete call against the cluster failed."""

    def __init__(self, message: str, identity: Optional[str] = None):
        super().__init__(message)
        self.identity = identity


class DeadlineExceeded(UpgraderError):
    """A readiness wait did not converge before its deadline."""


class RunAborted(UpgraderError):
    """The operator chose to stop, or the run was interrupted."""
