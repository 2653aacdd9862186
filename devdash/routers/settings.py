"""Settings endpoints -- manage the registered project directories."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException

from devdash.models import DirectoryRequest, DirectorySuggestion, SettingsResponse, SettingsUpdate
from devdash.services.project_directories import suggest_directories

if TYPE_CHECKING:
    from devdash.services.project_directories import ProjectDirectoryStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])

_directory_store: ProjectDirectoryStore | None = None


def set_directory_store(store: ProjectDirectoryStore) -> None:
    """Wire the shared ``ProjectDirectoryStore`` into this router module.

    Args:
        store: The application-wide directory store.
    """
    global _directory_store
    _directory_store = store


def _get_store() -> ProjectDirectoryStore:
    if _directory_store is None:
        raise HTTPException(status_code=503, detail="ProjectDirectoryStore not initialised")
    return _directory_store


def _response(store: ProjectDirectoryStore) -> SettingsResponse:
    return SettingsResponse(project_directories=store.directories(), port=store.port())


def _save_failed(exc: OSError) -> HTTPException:
    logger.error("Could not save settings: %s", exc)
    return HTTPException(status_code=500, detail=f"Could not save settings: {exc}")


@router.get("", response_model=SettingsResponse)
async def get_settings() -> SettingsResponse:
    """Return the registered project directories and saved port."""
    return _response(_get_store())


@router.put("", response_model=SettingsResponse)
async def update_settings(request: SettingsUpdate) -> SettingsResponse:
    """Replace the directory list and/or the saved port.

    Malformed bodies (a non-list ``project_directories``, a port outside
    1-65535) are rejected by validation before reaching the store.

    Raises:
        HTTPException: 500 if the config file cannot be written.
    """
    store = _get_store()
    try:
        store.update(request.project_directories, request.port)
    except OSError as exc:
        raise _save_failed(exc) from exc
    return _response(store)


@router.post("/add-directory", response_model=SettingsResponse)
async def add_directory(request: DirectoryRequest) -> SettingsResponse:
    """Register a directory whose sub-folders are projects.

    Raises:
        HTTPException: 404 if the directory is missing, 400 if it is not a
            directory, 500 if the config file cannot be written.
    """
    if not request.directory.strip():
        raise HTTPException(status_code=400, detail="Directory path required")
    store = _get_store()
    try:
        store.add(request.directory)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except NotADirectoryError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except OSError as exc:
        raise _save_failed(exc) from exc
    return _response(store)


@router.post("/remove-directory", response_model=SettingsResponse)
async def remove_directory(request: DirectoryRequest) -> SettingsResponse:
    """Unregister a directory.  Unknown directories are ignored."""
    store = _get_store()
    try:
        store.remove(request.directory)
    except OSError as exc:
        raise _save_failed(exc) from exc
    return _response(store)


@router.get("/suggest-directories", response_model=list[DirectorySuggestion])
async def get_directory_suggestions() -> list[DirectorySuggestion]:
    """List common projects folders in the home directory that contain sub-folders."""
    return suggest_directories()
