from datetime import datetime
from pathlib import Path

import pytest

from entandoupgrader.errors import UpgraderError
from entandoupgrader.services.filesystem import FileSystemService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


def test_run_directory_name_includes_namespace_and_timestamp():
    name = FileSystemService.run_directory_name("entando", now=datetime(2024, 3, 5, 9, 7, 1))

    assert name == "entando-upgrade-entando-2024-03-05_09_07_01"


def test_run_directory_strips_trailing_separators(tmp_path):
    service = FileSystemService(logger=DummyLogger(), console=DummyConsole())

    run_dir = service.run_directory(f"{tmp_path}///", "ns", now=datetime(2024, 1, 1))

    assert run_dir.parent == Path(tmp_path)
    assert run_dir.name.startswith("entando-upgrade-ns-")


def test_create_directories_is_recursive(tmp_path):
    service = FileSystemService(logger=DummyLogger(), console=DummyConsole())
    targets = [tmp_path / "run", tmp_path / "run" / "base", tmp_path / "run" / "overlay" / "new-deployments"]

    created = service.create_directories(targets)

    assert created == targets
    assert all(path.is_dir() for path in targets)


def test_create_directories_wraps_os_errors(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    service = FileSystemService(logger=DummyLogger(), console=DummyConsole())

    with pytest.raises(UpgraderError, match="Could not create directory"):
        service.create_directories([blocker / "child"])
