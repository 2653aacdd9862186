"""Tests for the registered project directory store."""

import json
from pathlib import Path

import pytest

from devdash.services.project_directories import ProjectDirectoryStore, suggest_directories


@pytest.fixture()
def store(tmp_path: Path) -> ProjectDirectoryStore:
    """Create a store backed by a config file in a temporary directory.

    Args:
        tmp_path: Pytest-provided temporary directory.

    Returns:
        A fresh ``ProjectDirectoryStore``.
    """
    return ProjectDirectoryStore(tmp_path / "config.json")


def test_starts_empty(store: ProjectDirectoryStore) -> None:
    """A missing config file yields no directories.

    Args:
        store: Fixture-provided store.
    """
    assert store.directories() == []


def test_add_persists_and_deduplicates(store: ProjectDirectoryStore, tmp_path: Path) -> None:
    """Added directories survive a reload and are not duplicated.

    Args:
        store: Fixture-provided store.
        tmp_path: Pytest-provided temporary directory.
    """
    projects = tmp_path / "projects"
    projects.mkdir()

    store.add(str(projects))
    store.add(str(projects))

    reloaded = ProjectDirectoryStore(store.path)
    assert reloaded.directories() == [str(projects)]


def test_add_rejects_missing_and_files(store: ProjectDirectoryStore, tmp_path: Path) -> None:
    """Only existing directories can be registered.

    Args:
        store: Fixture-provided store.
        tmp_path: Pytest-provided temporary directory.
    """
    with pytest.raises(FileNotFoundError):
        store.add(str(tmp_path / "nope"))

    a_file = tmp_path / "file.txt"
    a_file.write_text("x", encoding="utf-8")
    with pytest.raises(NotADirectoryError):
        store.add(str(a_file))


def test_remove_keeps_foreign_keys(tmp_path: Path) -> None:
    """Removing a directory leaves unrelated config keys untouched.

    Args:
        tmp_path: Pytest-provided temporary directory.
    """
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"project_directories": ["/a", "/b"], "editor": "zed"}), encoding="utf-8")

    store = ProjectDirectoryStore(config)
    assert store.remove("/a") == ["/b"]

    saved = json.loads(config.read_text(encoding="utf-8"))
    assert saved == {"project_directories": ["/b"], "editor": "zed"}


def test_unreadable_config_is_ignored(tmp_path: Path) -> None:
    """A corrupt config file is treated as empty.

    Args:
        tmp_path: Pytest-provided temporary directory.
    """
    config = tmp_path / "config.json"
    config.write_text("[1, 2", encoding="utf-8")
    assert ProjectDirectoryStore(config).directories() == []


def test_undecodable_config_is_ignored(tmp_path: Path) -> None:
    """A config file that is not UTF-8 is treated as empty.

    Args:
        tmp_path: Pytest-provided temporary directory.
    """
    config = tmp_path / "config.json"
    config.write_bytes(b"\xff\xfe")
    assert ProjectDirectoryStore(config).directories() == []


def test_reads_camel_case_directories(tmp_path: Path) -> None:
    """Directories saved under ``projectDirectories`` are picked up.

    Args:
        tmp_path: Pytest-provided temporary directory.
    """
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"projectDirectories": ["/a"], "port": 4300}), encoding="utf-8")

    store = ProjectDirectoryStore(config)
    assert store.directories() == ["/a"]
    assert store.port() == 4300


def test_failed_save_keeps_state(tmp_path: Path) -> None:
    """When the config cannot be written, the error surfaces and nothing changes.

    Args:
        tmp_path: Pytest-provided temporary directory.
    """
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"project_directories": ["/a", "/b"]}), encoding="utf-8")
    store = ProjectDirectoryStore(config)

    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    store.path = blocker / "config.json"

    with pytest.raises(OSError):
        store.remove("/a")
    with pytest.raises(OSError):
        store.add(str(tmp_path))
    assert store.directories() == ["/a", "/b"]


def test_update_replaces_directories_and_port(store: ProjectDirectoryStore, tmp_path: Path) -> None:
    """Update de-duplicates directories, keeps unspecified fields, and validates the port.

    Args:
        store: Fixture-provided store.
        tmp_path: Pytest-provided temporary directory.
    """
    store.update([str(tmp_path / "x"), str(tmp_path / "x"), " "], port=4300)
    store.update(port=4301)

    reloaded = ProjectDirectoryStore(store.path)
    assert reloaded.directories() == [str(tmp_path / "x")]
    assert reloaded.port() == 4301

    with pytest.raises(ValueError):
        store.update(port=0)
    assert store.port() == 4301


def test_suggests_folders_with_subdirectories(tmp_path: Path) -> None:
    """Only common folder names holding a visible sub-directory are suggested.

    Args:
        tmp_path: Pytest-provided temporary directory.
    """
    (tmp_path / "code" / "app").mkdir(parents=True)
    (tmp_path / "repos" / ".cache").mkdir(parents=True)
    (tmp_path / "dev").mkdir()
    (tmp_path / "random" / "proj").mkdir(parents=True)

    suggestions = suggest_directories(tmp_path)

    assert [(s.name, s.count) for s in suggestions] == [("~/code", 1)]
    assert suggestions[0].path == str(tmp_path / "code")
