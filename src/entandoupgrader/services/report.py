"""Run report: a JSON journal of the steps of an upgrade run."""

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from entandoupgrader.constants import RUN_REPORT_FILE


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed(started_at: Optional[str], finished_at: str) -> Optional[float]:
    if not started_at:
        return None
    return (datetime.fromisoformat(finished_at) - datetime.fromisoformat(started_at)).total_seconds()


class RunReportService:
    """Kept in memory until ``attach`` points it at the run directory."""

    def __init__(self, logger):
        self.logger = logger
        self.report_file: Optional[Path] = None
        self.report: Dict[str, Any] = {
            "run_id": None,
            "status": "running",
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "context": None,
            "target": {"namespace": None, "version": None, "flavor": None},
            "steps": [],
            "artifacts": {},
            "error": None,
        }

    def start_run(self, run_id: str, context: Optional[str] = None):
        self.report.update(run_id=run_id, status="running", started_at=_now(), context=context)

    def attach(self, run_dir: Path):
        self.report_file = Path(run_dir) / RUN_REPORT_FILE
        self.write()

    def set_target(self, namespace: Optional[str], version: Optional[str], flavor: Optional[str]):
        self.report["target"] = {"namespace": namespace, "version": version, "flavor": flavor}
        self.write()

    def step_started(self, step_name: str):
        self.report["steps"].append({"name": step_name, "status": "running", "started_at": _now()})
        self.write()

    def step_finished(self, step_name: str, status: str, error: Optional[str] = None):
        open_steps = [
            step for step in self.report["steps"] if step["name"] == step_name and step["status"] == "running"
        ]
        if open_steps:
            step = open_steps[-1]
            finished_at = _now()
            step.update(
                status=status,
                finished_at=finished_at,
                duration_seconds=_elapsed(step["started_at"], finished_at),
                error=error,
            )
        self.write()

    def add_artifact(self, key: str, value: str):
        self.report["artifacts"][key] = value
        self.write()

    def finalize(self, status: str, error: Optional[str] = None):
        finished_at = _now()
        self.report.update(
            status=status,
            finished_at=finished_at,
            duration_seconds=_elapsed(self.report["started_at"], finished_at),
            error=error,
        )
        self.write()

    def write(self):
        """Replaces the report file atomically; a write failure only logs a warning."""
        if self.report_file is None:
            return

        fd, temp_path = tempfile.mkstemp(prefix="run-report-", suffix=".json", dir=self.report_file.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.report, file_obj, indent=2, sort_keys=True)
            os.replace(temp_path, self.report_file)
        except OSError as exc:
            self.logger.warning("Could not write run report '%s': %s", self.report_file, exc)
            if os.path.exists(temp_path):
                os.remove(temp_path)
