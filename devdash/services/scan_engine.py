"""Scan engine -- finds project folders anywhere below a set of root directories.

The traversal is breadth-first and runs as an asyncio task on the service's own
event loop.  It reads a bounded batch of directories, then yields with
``asyncio.sleep(0)`` so HTTP requests and process output keep flowing while a
scan of an entire home directory is in progress.

A directory containing any project indicator (``.git``, ``package.json``, ...)
is recorded as a match and is *not* descended into, which keeps the scanner out
of dependency trees full of nested manifests.  When the queue drains or the
scan is cancelled, the result is persisted through the ``SnapshotStore``.
"""

import asyncio
import logging
import os
import time
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from devdash.models import ProjectMatch, ScanGroup, ScanSnapshot, ScanStatus
from devdash.services.project_directories import expand_directory
from devdash.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 200
STATUS_GROUP_LIMIT = 100

# Directories never worth reading: VCS internals, dependency caches, build
# output, and OS-managed folders.
SKIP_DIRS: frozenset[str] = frozenset(
    {
        "node_modules", ".git", "venv", "__pycache__", ".cache", ".npm", ".nvm",
        ".cargo", ".rustup", ".local", ".Trash", ".gradle", ".m2", ".cocoapods",
        "Library", "Applications", "Pictures", "Music", "Movies", "Downloads",
        "dist", "build", ".next", ".expo", ".svn", "vendor", "target",
        "Pods", "DerivedData", "xcuserdata", ".docker", ".kube", ".oh-my-zsh",
        ".vscode", ".cursor", "snap", ".android", ".java", "go", ".gem",
    }
)

PROJECT_INDICATORS: tuple[str, ...] = (
    ".git", "package.json", "Cargo.toml", "go.mod", "pyproject.toml",
    "setup.py", "Gemfile", "build.gradle", "pom.xml", "CMakeLists.txt",
    "Dockerfile", "docker-compose.yml", "requirements.txt",
)

XCODE_PROJECT_SUFFIX = ".xcodeproj"


def find_indicators(names: Iterable[str]) -> list[str]:
    """Return the project indicators present among directory entry *names*.

    Args:
        names: Entry names of a single directory.

    Returns:
        Indicators in ``PROJECT_INDICATORS`` order, followed by ``.xcodeproj``
        when any entry carries that suffix.  Empty when the directory is not a
        project.
    """
    present = set(names)
    indicators = [marker for marker in PROJECT_INDICATORS if marker in present]
    if any(name.endswith(XCODE_PROJECT_SUFFIX) for name in present):
        indicators.append(XCODE_PROJECT_SUFFIX)
    return indicators


def abbreviate_home(path: str, home: str | None = None) -> str:
    """Replace a leading home directory in *path* with ``~``."""
    home = home if home is not None else str(Path.home())
    if path == home:
        return "~"
    if path.startswith(home.rstrip(os.sep) + os.sep):
        return "~" + path[len(home.rstrip(os.sep)) :]
    return path


def group_matches(
    matches: Iterable[ProjectMatch],
    configured_dirs: Sequence[str] = (),
    home: str | None = None,
) -> list[ScanGroup]:
    """Group *matches* by parent directory, largest group first.

    Args:
        matches: Recorded project matches.
        configured_dirs: Directories already registered by the user.
        home: Home directory used for display names; defaults to ``Path.home()``.

    Returns:
        One ``ScanGroup`` per parent directory, sorted by descending count.
    """
    by_parent: dict[str, list[str]] = {}
    for match in matches:
        by_parent.setdefault(match.parent_dir, []).append(match.name)

    configured = set(configured_dirs)
    groups = [
        ScanGroup(
            directory=directory,
            display_name=abbreviate_home(directory, home),
            count=len(names),
            projects=sorted(names),
            already_configured=directory in configured,
        )
        for directory, names in by_parent.items()
    ]
    # Stable sort keeps first-seen order among equal counts.
    groups.sort(key=lambda g: g.count, reverse=True)
    return groups


@dataclass
class ScanJob:
    """Mutable state of one traversal.  Only the owning ``ScanEngine`` writes it."""

    max_depth: int
    queue: deque[tuple[str, int]]
    started_at: float = field(default_factory=time.monotonic)
    found: list[ProjectMatch] = field(default_factory=list)
    scanned_dirs: int = 0
    current_dir: str = ""
    running: bool = True
    cancelled: bool = False


class ScanEngine:
    """Owner of the single in-flight scan job.

    Attributes:
        store: Where finished scans are persisted.
        batch_size: Directories read before yielding to the event loop.
    """

    def __init__(
        self,
        store: SnapshotStore,
        configured_directories: Callable[[], list[str]] = list,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        """Initialise an idle engine.

        Args:
            store: Snapshot persistence used when a scan finishes.
            configured_directories: Returns the currently registered project
                directories; consulted each time groups are computed.
            batch_size: Directories processed per batch.
        """
        self.store = store
        self.batch_size = batch_size
        self._configured_directories = configured_directories
        self._job: ScanJob | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._job is not None and self._job.running

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start(self, roots: Sequence[str], max_depth: int) -> bool:
        """Begin scanning *roots* unless a scan is already running.

        Must be called from within a running event loop.  A request that
        arrives while a scan is in flight is dropped, not queued.

        Args:
            roots: Directories to scan from; ``~`` is expanded.
            max_depth: Deepest level below a root that is still read.

        Returns:
            ``True`` if a new scan was started, ``False`` if one was running.
        """
        if self.running:
            logger.info("Scan already running -- ignoring start request for %s", list(roots))
            return False

        queue = deque((str(expand_directory(root)), 0) for root in roots)
        job = ScanJob(max_depth=max_depth, queue=queue)
        self._job = job
        self._task = asyncio.create_task(self._run(job), name="devdash-scan")
        logger.info("Scan started: roots=%s max_depth=%d", [path for path, _ in queue], max_depth)
        return True

    def stop(self) -> None:
        """Request cancellation; the traversal stops at its next batch boundary."""
        if self._job is not None and self._job.running:
            self._job.cancelled = True
            logger.info("Scan cancellation requested")

    def status(self) -> ScanStatus:
        """Return live progress of the current (or last) scan."""
        job = self._job
        if job is None:
            return ScanStatus(running=False, scanned_dirs=0, found_count=0)
        return ScanStatus(
            running=job.running,
            scanned_dirs=job.scanned_dirs,
            found_count=len(job.found),
            current_dir=abbreviate_home(job.current_dir),
            elapsed_ms=int((time.monotonic() - job.started_at) * 1000),
            groups=self._groups(job.found)[:STATUS_GROUP_LIMIT],
        )

    def cached(self) -> ScanSnapshot | None:
        """Return the last persisted snapshot, or ``None`` if there is none."""
        return self.store.read()

    async def wait(self) -> None:
        """Wait for the in-flight traversal, if any, to finish."""
        if self._task is not None:
            await self._task

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    async def _run(self, job: ScanJob) -> None:
        try:
            while job.queue and not job.cancelled:
                self._process_batch(job)
                await asyncio.sleep(0)
        except Exception:
            logger.exception("Scan traversal aborted unexpectedly")
        finally:
            self._finalize(job)

    def _process_batch(self, job: ScanJob) -> None:
        """Read up to ``batch_size`` directories from the front of the queue."""
        processed = 0
        while job.queue and processed < self.batch_size:
            directory, depth = job.queue.popleft()
            processed += 1
            if depth > job.max_depth:
                continue

            name = os.path.basename(directory)
            if name in SKIP_DIRS:
                continue

            job.scanned_dirs += 1
            job.current_dir = directory

            try:
                with os.scandir(directory) as it:
                    entries = list(it)
            except OSError:
                continue

            indicators = find_indicators(entry.name for entry in entries)
            if indicators:
                job.found.append(
                    ProjectMatch(
                        path=directory,
                        name=name,
                        parent_dir=os.path.dirname(directory),
                        indicators=indicators,
                    )
                )
                continue

            for entry in entries:
                if entry.name.startswith(".") or entry.name in SKIP_DIRS:
                    continue
                try:
                    if not entry.is_dir(follow_symlinks=False):
                        continue
                except OSError:
                    continue
                job.queue.append((entry.path, depth + 1))

    def _finalize(self, job: ScanJob) -> None:
        job.running = False
        snapshot = ScanSnapshot(
            timestamp=datetime.now(tz=UTC),
            projects=list(job.found),
            groups=self._groups(job.found),
        )
        logger.info(
            "Scan %s: %d directories read, %d project(s) found",
            "cancelled" if job.cancelled else "finished",
            job.scanned_dirs,
            len(job.found),
        )
        self.store.write(snapshot)

    def _groups(self, matches: Iterable[ProjectMatch]) -> list[ScanGroup]:
        return group_matches(matches, self._configured_directories())
