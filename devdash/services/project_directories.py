"""Registered project directories, persisted as JSON in the user's home.

The scanner only reads this list (to flag groups that are already registered);
the settings endpoints are the only writers.
"""

import json
import logging
import os
from collections.abc import Sequence
from pathlib import Path

from devdash.models import DirectorySuggestion

logger = logging.getLogger(__name__)

DIRECTORIES_KEY = "project_directories"
# Key written by earlier dashboard releases sharing the same config file.
LEGACY_DIRECTORIES_KEY = "projectDirectories"
PORT_KEY = "port"

SUGGESTED_FOLDER_NAMES: tuple[str, ...] = (
    "Projects", "projects", "Developer", "developer", "dev", "Dev",
    "code", "Code", "workspace", "Workspace", "repos", "Repos",
    "src", "Sites", "www", "Local dev",
)


def expand_directory(raw: str) -> Path:
    """Expand a leading ``~`` and make *raw* absolute.

    Symbolic links are left as given so paths match what the user typed.

    Args:
        raw: User-supplied path string.

    Returns:
        The normalised absolute path.
    """
    return Path(os.path.abspath(os.path.expanduser(raw)))


def suggest_directories(home: Path | None = None) -> list[DirectorySuggestion]:
    """Find common projects folders directly under *home*.

    A folder is suggested only if it holds at least one non-hidden
    sub-directory.  Unreadable folders are skipped.

    Args:
        home: Home directory to probe; defaults to ``Path.home()``.

    Returns:
        Suggestions in ``SUGGESTED_FOLDER_NAMES`` order.
    """
    home = home if home is not None else Path.home()
    suggestions: list[DirectorySuggestion] = []
    seen: set[str] = set()
    for name in SUGGESTED_FOLDER_NAMES:
        candidate = home / name
        try:
            if not candidate.is_dir():
                continue
            # Case-insensitive filesystems report Projects and projects as one folder.
            key = os.path.normcase(os.path.realpath(candidate))
            if key in seen:
                continue
            seen.add(key)
            with os.scandir(candidate) as entries:
                count = sum(1 for e in entries if not e.name.startswith(".") and e.is_dir())
        except OSError:
            continue
        if count > 0:
            suggestions.append(DirectorySuggestion(path=str(candidate), name=f"~/{name}", count=count))
    return suggestions


class ProjectDirectoryStore:
    """Load/save the dashboard's own keys of the shared config file.

    Keys the dashboard does not own are preserved on save so the file can be
    shared with other tooling.  The in-memory state only changes once a save
    has succeeded.

    Attributes:
        path: Location of the JSON config file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data = self._load()

    def _load(self) -> dict[str, object]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        if DIRECTORIES_KEY not in data and isinstance(data.get(LEGACY_DIRECTORIES_KEY), list):
            data[DIRECTORIES_KEY] = data[LEGACY_DIRECTORIES_KEY]
        return data

    def _save(self, data: dict[str, object]) -> None:
        """Write *data* and adopt it as the current state.

        Raises:
            OSError: If the file cannot be written; the current state is kept.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        self._data = data

    def directories(self) -> list[str]:
        """Return the registered directories in insertion order."""
        raw = self._data.get(DIRECTORIES_KEY, [])
        return [str(d) for d in raw] if isinstance(raw, list) else []

    def port(self) -> int | None:
        """Return the saved dashboard port, or ``None`` if none is valid."""
        raw = self._data.get(PORT_KEY)
        if isinstance(raw, bool) or not isinstance(raw, int) or not 1 <= raw <= 65535:
            return None
        return raw

    def add(self, directory: str) -> list[str]:
        """Register *directory* after expanding and validating it.

        Adding an already-registered directory is a no-op.

        Args:
            directory: Path to register; ``~`` is expanded.

        Returns:
            The updated directory list.

        Raises:
            FileNotFoundError: If the directory does not exist.
            NotADirectoryError: If the path is not a directory.
            OSError: If the config file cannot be written.
        """
        resolved = expand_directory(directory)
        if not resolved.exists():
            raise FileNotFoundError(f"Directory not found: {resolved}")
        if not resolved.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {resolved}")

        current = self.directories()
        if str(resolved) in current:
            return current
        self._save({**self._data, DIRECTORIES_KEY: [*current, str(resolved)]})
        logger.info("Registered project directory %s", resolved)
        return self.directories()

    def remove(self, directory: str) -> list[str]:
        """Unregister *directory* (exact match).  Unknown directories are ignored.

        Returns:
            The updated directory list.

        Raises:
            OSError: If the config file cannot be written.
        """
        remaining = [d for d in self.directories() if d != directory]
        self._save({**self._data, DIRECTORIES_KEY: remaining})
        logger.info("Unregistered project directory %s", directory)
        return remaining

    def update(self, directories: Sequence[str] | None = None, port: int | None = None) -> None:
        """Replace the directory list and/or the saved port.

        Directories are expanded and de-duplicated but not required to exist.
        Arguments left as ``None`` keep their current value.

        Raises:
            ValueError: If *port* is outside 1-65535.
            OSError: If the config file cannot be written.
        """
        data = dict(self._data)
        if directories is not None:
            data[DIRECTORIES_KEY] = list(dict.fromkeys(str(expand_directory(d)) for d in directories if d.strip()))
        if port is not None:
            if not 1 <= port <= 65535:
                raise ValueError(f"Invalid port number: {port}")
            data[PORT_KEY] = port
        self._save(data)
        logger.info("Updated settings: %d project director(y/ies), port=%s", len(self.directories()), self.port())
