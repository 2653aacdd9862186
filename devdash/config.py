"""Application configuration backed by Pydantic Settings.

All values can be overridden via environment variables prefixed with ``DEVDASH_``
(e.g. ``DEVDASH_PORT=9000``) or via a ``.env`` file in the working directory.
"""

from pathlib import Path

from pydantic_settings import BaseSettings


def _default_config_path() -> Path:
    """Return the default project-directories config file: ``~/.devdashboard.json``.

    Returns:
        Absolute path to the JSON config file.
    """
    return Path.home() / ".devdashboard.json"


def _default_scan_cache_path() -> Path:
    """Return the default scan snapshot location: ``~/.devdashboard-scan.json``.

    The file is written after every scan that finishes or is cancelled, and
    read back by ``GET /api/scan/cached``.

    Returns:
        Absolute path to the scan cache file.
    """
    return Path.home() / ".devdashboard-scan.json"


class DashboardSettings(BaseSettings):
    """Central configuration for the dev dashboard service.

    Values are loaded from environment variables (``DEVDASH_`` prefix), a
    ``.env`` file, or fall back to sensible defaults.

    Attributes:
        host: Network interface to bind the HTTP server to.
        port: TCP port for the HTTP server.
        config_path: JSON file holding the registered project directories.
        scan_cache_path: JSON file holding the last scan snapshot.
        scan_batch_size: Directories processed before yielding to the event loop.
        scan_default_depth: Depth used when a scan request does not specify one.
        scan_max_depth: Upper bound applied to every requested scan depth.
        log_capacity: Maximum log entries retained per supervised process.
        stop_grace_seconds: Delay between the graceful stop signal and the forced kill.
        log_level: Root logging level name.
    """

    model_config = {"env_prefix": "DEVDASH_", "env_file": ".env", "extra": "ignore"}

    host: str = "127.0.0.1"
    port: int = 4200
    config_path: Path = _default_config_path()
    scan_cache_path: Path = _default_scan_cache_path()
    scan_batch_size: int = 200
    scan_default_depth: int = 5
    scan_max_depth: int = 8
    log_capacity: int = 500
    stop_grace_seconds: float = 3.0
    log_level: str = "INFO"
