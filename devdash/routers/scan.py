"""Scanner endpoints -- start, poll, cancel, and read the cached result.

A scan can take minutes on a large home directory, so ``/api/scan/start``
returns immediately and the browser polls ``/api/scan/status`` until
``running`` turns false.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException

from devdash.models import AckResponse, ScanSnapshot, ScanStartRequest, ScanStartResponse, ScanStatus

if TYPE_CHECKING:
    from devdash.config import DashboardSettings
    from devdash.services.project_directories import ProjectDirectoryStore
    from devdash.services.scan_engine import ScanEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scan", tags=["scan"])

_scan_engine: ScanEngine | None = None
_directory_store: ProjectDirectoryStore | None = None
_settings: DashboardSettings | None = None


def set_scan_engine(
    engine: ScanEngine, directory_store: ProjectDirectoryStore, app_settings: DashboardSettings
) -> None:
    """Wire the shared ``ScanEngine``, directory store and settings into this router module.

    Args:
        engine: The application-wide ``ScanEngine`` instance.
        directory_store: Registered project directories, used to refresh cached groups.
        app_settings: Application settings supplying the scan depth limits.
    """
    global _scan_engine, _directory_store, _settings
    _scan_engine = engine
    _directory_store = directory_store
    _settings = app_settings


def _get_engine() -> ScanEngine:
    """Return the wired ``ScanEngine`` or raise if not initialised.

    Raises:
        HTTPException: If the engine has not been set yet.
    """
    if _scan_engine is None:
        raise HTTPException(status_code=503, detail="ScanEngine not initialised")
    return _scan_engine


@router.post("/start", response_model=ScanStartResponse)
async def start_scan(request: ScanStartRequest) -> ScanStartResponse:
    """Start a scan of ``request.roots`` unless one is already running.

    The requested depth defaults to ``scan_default_depth`` and is capped at
    ``scan_max_depth``.

    Args:
        request: Roots and optional maximum depth.

    Returns:
        Whether a scan was started.
    """
    engine = _get_engine()
    if _settings is None:
        raise HTTPException(status_code=503, detail="Scan settings not initialised")
    depth = _settings.scan_default_depth if request.max_depth is None else request.max_depth
    depth = min(depth, _settings.scan_max_depth)
    roots = request.roots or ["~"]

    started = engine.start(roots, depth)
    return ScanStartResponse(started=started, already_running=not started)


@router.get("/status", response_model=ScanStatus)
async def scan_status() -> ScanStatus:
    """Return live progress of the current or most recent scan."""
    return _get_engine().status()


@router.post("/stop", response_model=AckResponse)
async def stop_scan() -> AckResponse:
    """Ask the running scan to stop at its next batch boundary."""
    _get_engine().stop()
    return AckResponse()


@router.get("/cached", response_model=ScanSnapshot | None)
async def cached_scan() -> ScanSnapshot | None:
    """Return the last persisted scan, or ``null`` if none exists.

    ``already_configured`` is recomputed against the current directory list,
    since directories may have been registered after the scan was saved.
    """
    snapshot = _get_engine().cached()
    if snapshot is None or _directory_store is None:
        return snapshot

    configured = set(_directory_store.directories())
    groups = [g.model_copy(update={"already_configured": g.directory in configured}) for g in snapshot.groups]
    return snapshot.model_copy(update={"groups": groups})
