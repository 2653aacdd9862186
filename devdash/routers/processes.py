"""Process endpoints -- run commands in a project and follow their output.

``POST /api/run`` returns as soon as the command is spawned.  Clients then poll
``GET /api/processes/{id}/logs?since=<timestamp>`` with the timestamp of the
last line they received to fetch only new output.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Query

from devdash.models import AckResponse, InstallRequest, LogsPage, ProcessSummary, RunRequest, RunResponse
from devdash.services.process_supervisor import ProcessNotFoundError

if TYPE_CHECKING:
    from devdash.services.process_supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["processes"])

NPM_INSTALL_COMMAND = "npm install"

_supervisor: ProcessSupervisor | None = None


def set_process_supervisor(supervisor: ProcessSupervisor) -> None:
    """Wire the shared ``ProcessSupervisor`` into this router module.

    Args:
        supervisor: The application-wide ``ProcessSupervisor`` instance.
    """
    global _supervisor
    _supervisor = supervisor


def _get_supervisor() -> ProcessSupervisor:
    """Return the wired ``ProcessSupervisor`` or raise if not initialised.

    Raises:
        HTTPException: If the supervisor has not been set yet.
    """
    if _supervisor is None:
        raise HTTPException(status_code=503, detail="ProcessSupervisor not initialised")
    return _supervisor


def _not_found(exc: ProcessNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Process {exc.process_id} not found")


@router.post("/run", response_model=RunResponse)
async def run_command(request: RunRequest) -> RunResponse:
    """Spawn ``request.command`` in ``request.project_path``.

    A command that cannot be spawned still gets an id; the failure is reported
    in its log.

    Raises:
        HTTPException: If the project path or command is missing.
    """
    if not request.project_path or not request.command:
        raise HTTPException(status_code=400, detail="Missing project_path or command")

    handle = await _get_supervisor().run(request.project_path, request.command, request.name)
    return RunResponse(process_id=handle.id, pid=handle.pid)


@router.post("/npm-install", response_model=RunResponse)
async def npm_install(request: InstallRequest) -> RunResponse:
    """Run ``npm install`` in ``request.project_path`` as a supervised process.

    Raises:
        HTTPException: If the project path is missing.
    """
    if not request.project_path:
        raise HTTPException(status_code=400, detail="Missing project_path")

    handle = await _get_supervisor().run(request.project_path, NPM_INSTALL_COMMAND, NPM_INSTALL_COMMAND)
    return RunResponse(process_id=handle.id, pid=handle.pid)


@router.get("/processes", response_model=list[ProcessSummary])
async def list_processes() -> list[ProcessSummary]:
    """List every supervised process, including ones that have exited."""
    return _get_supervisor().list_processes()


@router.get("/processes/{process_id}/logs", response_model=LogsPage)
async def process_logs(
    process_id: int,
    since: int = Query(default=0, ge=0, description="Only return entries newer than this timestamp"),
) -> LogsPage:
    """Return log lines newer than *since* plus the process status.

    Raises:
        HTTPException: If the process does not exist.
    """
    try:
        return _get_supervisor().get_logs(process_id, since)
    except ProcessNotFoundError as exc:
        raise _not_found(exc) from exc


@router.post("/processes/{process_id}/stop", response_model=AckResponse)
async def stop_process(process_id: int) -> AckResponse:
    """Gracefully stop a process; it is killed if still running after the grace period.

    Raises:
        HTTPException: If the process does not exist.
    """
    try:
        _get_supervisor().stop(process_id)
    except ProcessNotFoundError as exc:
        raise _not_found(exc) from exc
    return AckResponse()


@router.delete("/processes/{process_id}", response_model=AckResponse)
async def remove_process(process_id: int) -> AckResponse:
    """Kill a process if needed and forget it.

    Raises:
        HTTPException: If the process does not exist.
    """
    try:
        _get_supervisor().remove(process_id)
    except ProcessNotFoundError as exc:
        raise _not_found(exc) from exc
    return AckResponse()
