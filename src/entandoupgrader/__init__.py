"""
EntandoUpgrader - Guided Entando upgrades on Kubernetes and OpenShift
"""

__version__ = "0.1.0"

from .core import EntandoUpgrader, UpgraderError

__all__ = ["EntandoUpgrader", "UpgraderError"]
