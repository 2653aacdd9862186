"""Persistence for the last scan result.

The snapshot is the only scanner state that survives a restart.  Writes go to a
temporary sibling first and are moved into place with ``os.replace`` so a
reader never sees a half-written file.
"""

import contextlib
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from devdash.models import ScanSnapshot

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Reads and writes a single ``ScanSnapshot`` JSON file.

    Attributes:
        path: Location of the snapshot file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def write(self, snapshot: ScanSnapshot) -> bool:
        """Persist *snapshot*, replacing any previous one.

        Failures are logged and swallowed: a scan must finish even when its
        result cannot be saved.

        Args:
            snapshot: The snapshot to store.

        Returns:
            ``True`` if the file was written.
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.warning("Could not write scan snapshot to %s: %s", self.path, exc)
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            return False
        logger.info("Saved scan snapshot with %d project(s) to %s", len(snapshot.projects), self.path)
        return True

    def read(self) -> ScanSnapshot | None:
        """Load the stored snapshot.

        Returns:
            The snapshot, or ``None`` when the file is missing or unreadable.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read scan snapshot %s: %s", self.path, exc)
            return None

        try:
            return ScanSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring corrupt scan snapshot at %s", self.path)
            return None
