"""Health-check endpoint.

Reports service status along with a cheap summary of what the two long-running
subsystems are doing.  This is the first endpoint the dashboard hits to verify
connectivity.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter

from devdash.models import HealthResponse

if TYPE_CHECKING:
    from devdash.services.process_supervisor import ProcessSupervisor
    from devdash.services.scan_engine import ScanEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

_scan_engine: ScanEngine | None = None
_supervisor: ProcessSupervisor | None = None


def set_services(engine: ScanEngine, supervisor: ProcessSupervisor) -> None:
    """Wire the shared scan engine and process supervisor into this router module.

    Args:
        engine: The application-wide ``ScanEngine``.
        supervisor: The application-wide ``ProcessSupervisor``.
    """
    global _scan_engine, _supervisor
    _scan_engine = engine
    _supervisor = supervisor


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return service health, scan activity, and the number of registered processes.

    The status is ``degraded`` until both services have been wired.
    """
    if _scan_engine is None or _supervisor is None:
        logger.warning("Health check before services were wired")
        return HealthResponse(status="degraded", scan_running=False, process_count=0)

    return HealthResponse(
        status="ok",
        scan_running=_scan_engine.running,
        process_count=len(_supervisor.list_processes()),
    )
