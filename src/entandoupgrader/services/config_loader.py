"""Configuration loader for EntandoUpgrader."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from entandoupgrader.constants import DEFAULT_CONFIG_FILE
from entandoupgrader.errors import UpgraderError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "namespace",
        "version",
        "context",
        "path",
        "verbose",
        "log_file",
        "poll_interval_seconds",
        "wait_timeout_seconds",
        "tag_precedence",
    }

    def __init__(self, default_file: str = DEFAULT_CONFIG_FILE):
        self.default_file = default_file

    def resolve_path(self, config_path: Optional[str]) -> Optional[str]:
        """An explicit path wins; otherwise the default file is used when present."""
        if config_path:
            return config_path
        if Path(self.default_file).is_file():
            return self.default_file
        return None

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise UpgraderError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise UpgraderError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise UpgraderError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            raise UpgraderError(f"Unknown configuration keys: {', '.join(unknown)}")

        for key in ("poll_interval_seconds", "wait_timeout_seconds"):
            value = parsed.get(key)
            if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0):
                raise UpgraderError(f"Configuration key '{key}' must be a positive number.")

        return parsed
