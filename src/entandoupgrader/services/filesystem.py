"""Output layout helpers for EntandoUpgrader."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from rich.console import Console

from entandoupgrader.constants import RUN_DIRECTORY_PREFIX
from entandoupgrader.errors import UpgraderError


class FileSystemService:
    """Encapsulates directory side effects of a run."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    @staticmethod
    def run_directory_name(namespace: str, now: Optional[datetime] = None) -> str:
        stamp = (now or datetime.now()).strftime("%Y-%m-%d_%H_%M_%S")
        return f"{RUN_DIRECTORY_PREFIX}-{namespace}-{stamp}"

    @staticmethod
    def normalize_base_path(path: str) -> Path:
        return Path(path.rstrip("/\\") or "/").expanduser()

    def run_directory(self, base_path: str, namespace: str, now: Optional[datetime] = None) -> Path:
        return self.normalize_base_path(base_path) / self.run_directory_name(namespace, now)

    def create_directories(self, directories: Iterable[Path]) -> List[Path]:
        created = []
        for directory in directories:
            try:
                Path(directory).mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise UpgraderError(f"Could not create directory '{directory}': {exc}") from exc
            self.console.print(f"[green]Created directory {directory}[/green]")
            self.logger.debug("Created directory: %s", directory)
            created.append(Path(directory))
        return created
