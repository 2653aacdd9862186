"""Pydantic models for all dev dashboard API contracts and internal records.

This module defines every request body, response body, and persisted record used
by the service.  All structured data flows through these models -- no loose dicts.
"""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ProcessState(enum.StrEnum):
    """Lifecycle states of a supervised process.

    Removal is not a state: a removed process simply leaves the registry.  See
    ``devdash.state_machine`` for the transition table.
    """

    RUNNING = "running"
    STOPPING = "stopping"
    EXITED = "exited"


class LogStream(enum.StrEnum):
    """Origin of a captured log line."""

    STDOUT = "stdout"
    STDERR = "stderr"
    SYSTEM = "system"


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------


class ProjectMatch(BaseModel):
    """A directory recognised as a project root during a scan.

    Matches are immutable once recorded; the scanner never descends below them.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(description="Absolute path to the project directory")
    name: str = Field(description="Base name of the project directory")
    parent_dir: str = Field(description="Absolute path of the containing directory")
    indicators: list[str] = Field(default_factory=list, description="Marker files that identified the project")


class ScanGroup(BaseModel):
    """Matches sharing a parent directory, summarised for the settings UI."""

    directory: str = Field(description="Parent directory shared by every project in the group")
    display_name: str = Field(description="Directory with the home prefix abbreviated to '~'")
    count: int = Field(description="Number of projects found directly inside the directory")
    projects: list[str] = Field(default_factory=list, description="Sorted project names")
    already_configured: bool = Field(default=False, description="True when the directory is already registered")


class ScanSnapshot(BaseModel):
    """Durable record of the last scan, written when it completes or is cancelled."""

    timestamp: datetime = Field(description="UTC time the snapshot was written")
    projects: list[ProjectMatch] = Field(default_factory=list, description="Every match recorded by the scan")
    groups: list[ScanGroup] = Field(default_factory=list, description="Matches grouped by parent directory")


class ScanStatus(BaseModel):
    """Response payload for ``GET /api/scan/status`` -- live scan progress."""

    running: bool = Field(description="True while a traversal is in flight")
    scanned_dirs: int = Field(description="Directories read so far")
    found_count: int = Field(description="Projects recorded so far")
    current_dir: str = Field(default="", description="Directory most recently read, home-abbreviated")
    elapsed_ms: int = Field(default=0, description="Milliseconds since the scan started")
    groups: list[ScanGroup] = Field(default_factory=list, description="Largest groups so far (at most 100)")


class ScanStartRequest(BaseModel):
    """Request body for ``POST /api/scan/start``."""

    roots: list[str] = Field(default_factory=lambda: ["~"], description="Directories to scan from")
    max_depth: int | None = Field(default=None, ge=0, description="Maximum depth below each root")


class ScanStartResponse(BaseModel):
    """Response payload for ``POST /api/scan/start``."""

    started: bool = Field(description="True when a new scan was started")
    already_running: bool = Field(description="True when the request was dropped because a scan is in flight")


# ---------------------------------------------------------------------------
# Processes
# ---------------------------------------------------------------------------


class LogEntry(BaseModel):
    """A single captured output line."""

    timestamp: int = Field(description="Epoch milliseconds, strictly increasing within one process log")
    text: str = Field(description="The line text without its trailing newline")
    stream: LogStream = Field(description="Which stream produced the line")


class RunRequest(BaseModel):
    """Request body for ``POST /api/run``."""

    project_path: str = Field(default="", description="Working directory for the command")
    command: str = Field(default="", description="Shell command line to execute")
    name: str = Field(default="", description="Display name; defaults to the command")


class InstallRequest(BaseModel):
    """Request body for ``POST /api/npm-install``."""

    project_path: str = Field(default="", description="Project whose dependencies are installed")


class RunResponse(BaseModel):
    """Response payload for ``POST /api/run``."""

    ok: bool = Field(default=True, description="Always true; spawn failures surface in the log")
    process_id: int = Field(description="Identifier of the supervised process")
    pid: int | None = Field(default=None, description="Operating-system pid, if the spawn succeeded")


class ProcessSummary(BaseModel):
    """One row of ``GET /api/processes``."""

    id: int = Field(description="Supervisor-assigned identifier")
    name: str = Field(description="Display name")
    project_path: str = Field(description="Working directory of the command")
    project_name: str = Field(description="Base name of the working directory")
    command: str = Field(description="Shell command line")
    port: int | None = Field(default=None, description="Port inferred from the output, if any")
    pid: int | None = Field(default=None, description="Operating-system pid")
    started_at: datetime = Field(description="UTC spawn time")
    ended_at: datetime | None = Field(default=None, description="UTC exit time")
    exit_code: int | None = Field(default=None, description="Exit status once the process has ended")
    state: ProcessState = Field(description="Lifecycle state")
    alive: bool = Field(description="True until the process exits or is killed")
    log_count: int = Field(description="Entries currently held in the log buffer")


class LogsPage(BaseModel):
    """Response payload for ``GET /api/processes/{id}/logs``.

    Clients keep the timestamp of the last entry they received and pass it back
    as ``since`` to fetch only newer lines.
    """

    logs: list[LogEntry] = Field(default_factory=list, description="Entries newer than the watermark")
    alive: bool = Field(description="True until the process exits or is killed")
    port: int | None = Field(default=None, description="Port inferred from the output, if any")
    exit_code: int | None = Field(default=None, description="Exit status once the process has ended")


class AckResponse(BaseModel):
    """Generic acknowledgement body."""

    ok: bool = Field(default=True, description="Always true on success")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class DirectoryRequest(BaseModel):
    """Request body for the add/remove directory endpoints."""

    directory: str = Field(description="Directory path; '~' is expanded on add")


class SettingsUpdate(BaseModel):
    """Request body for ``PUT /api/settings``.  Omitted fields are left unchanged."""

    project_directories: list[str] | None = Field(default=None, description="Replacement list of project roots")
    port: int | None = Field(default=None, ge=1, le=65535, description="Preferred dashboard port")


class SettingsResponse(BaseModel):
    """Response payload for the settings endpoints."""

    project_directories: list[str] = Field(default_factory=list, description="Registered project roots")
    port: int | None = Field(default=None, description="Preferred dashboard port, if one was saved")


class DirectorySuggestion(BaseModel):
    """A common projects folder found in the user's home directory."""

    path: str = Field(description="Absolute path of the folder")
    name: str = Field(description="Home-abbreviated display name, e.g. '~/code'")
    count: int = Field(description="Number of non-hidden sub-directories")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response payload for ``GET /health``."""

    status: str = Field(description="Service health status string")
    scan_running: bool = Field(description="True while a scan is in flight")
    process_count: int = Field(description="Processes currently in the registry")
