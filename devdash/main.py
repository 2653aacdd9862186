"""FastAPI application entry point for the dev dashboard service.

This module creates the FastAPI ``app`` instance, builds the shared scan engine
and process supervisor, and wires them into each router module.  The server is
started via ``uvicorn`` using the settings from ``devdash.config``.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from devdash.config import DashboardSettings
from devdash.routers import health, processes, scan, settings
from devdash.services.process_supervisor import ProcessSupervisor
from devdash.services.project_directories import ProjectDirectoryStore
from devdash.services.scan_engine import ScanEngine
from devdash.services.snapshot_store import SnapshotStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(app_settings: DashboardSettings | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    Creates the directory store, snapshot store, scan engine and process
    supervisor, and hands them to the routers.  Supervised processes are
    killed when the application shuts down: supervision does not outlive the
    service.

    Args:
        app_settings: Settings to use; read from the environment when omitted.

    Returns:
        A fully configured ``FastAPI`` application ready to serve.
    """
    app_settings = app_settings or DashboardSettings()

    directory_store = ProjectDirectoryStore(app_settings.config_path)
    scan_engine = ScanEngine(
        SnapshotStore(app_settings.scan_cache_path),
        configured_directories=directory_store.directories,
        batch_size=app_settings.scan_batch_size,
    )
    supervisor = ProcessSupervisor(
        log_capacity=app_settings.log_capacity,
        stop_grace_seconds=app_settings.stop_grace_seconds,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        scan_engine.stop()
        await supervisor.shutdown()
        logger.info("Dev dashboard stopped")

    app = FastAPI(
        title="Dev Dashboard",
        description="Local service that finds development projects and supervises the commands run against them",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Wire the shared services into each router that needs them
    health.set_services(scan_engine, supervisor)
    scan.set_scan_engine(scan_engine, directory_store, app_settings)
    processes.set_process_supervisor(supervisor)
    settings.set_directory_store(directory_store)

    app.include_router(health.router)
    app.include_router(scan.router)
    app.include_router(processes.router)
    app.include_router(settings.router)

    logger.info(
        "Dev dashboard initialised -- config=%s, scan cache=%s, %d project director(y/ies)",
        app_settings.config_path,
        app_settings.scan_cache_path,
        len(directory_store.directories()),
    )
    return app


app = create_app()


def main() -> None:
    """Start the Uvicorn server with settings from the environment.

    ``DEVDASH_PORT`` wins over a port saved through ``PUT /api/settings``.

    This is the CLI entry point (``devdash`` or ``python -m devdash.main``).
    """
    app_settings = DashboardSettings()
    logging.getLogger().setLevel(app_settings.log_level.upper())
    port = app_settings.port
    if "port" not in app_settings.model_fields_set:
        port = ProjectDirectoryStore(app_settings.config_path).port() or port
    logger.info("Starting dev dashboard on http://%s:%d", app_settings.host, port)
    uvicorn.run(
        "devdash.main:app",
        host=app_settings.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    main()
