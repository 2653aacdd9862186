"""Environment for commands launched by the process supervisor.

The service is often started from a launcher or login item whose ``PATH`` lacks
the user's Node and Homebrew installs, so the usual locations are prepended.
"""

import os
import sys
from pathlib import Path

_WINDOWS = sys.platform == "win32"

_SYSTEM_BIN_DIRS = ("/usr/local/bin", "/opt/homebrew/bin", "/usr/bin", "/bin")


def _extra_path_dirs(home: Path) -> list[str]:
    """Collect tool directories that exist on this machine.

    Resolution order:

    1. The newest ``nvm`` Node version (``~/.nvm/versions/node/<v>/bin``).
    2. The ``fnm`` default alias (``~/.fnm/aliases/default/bin``).
    3. Common system binary directories.

    Args:
        home: The user's home directory.

    Returns:
        Existing directories, in priority order.
    """
    extra: list[str] = []

    nvm_dir = home / ".nvm" / "versions" / "node"
    if nvm_dir.is_dir():
        try:
            versions = sorted((d.name for d in nvm_dir.iterdir() if d.is_dir()), reverse=True)
        except OSError:
            versions = []
        if versions:
            extra.append(str(nvm_dir / versions[0] / "bin"))

    fnm_dir = home / ".fnm" / "aliases" / "default" / "bin"
    if fnm_dir.is_dir():
        extra.append(str(fnm_dir))

    extra.extend(p for p in _SYSTEM_BIN_DIRS if Path(p).is_dir())
    return extra


def build_shell_env(base: dict[str, str] | None = None, home: Path | None = None) -> dict[str, str]:
    """Return a copy of *base* with an augmented ``PATH`` and ``HOME`` set.

    Args:
        base: Starting environment; defaults to ``os.environ``.
        home: Home directory; defaults to ``Path.home()``.

    Returns:
        A new environment mapping suitable for ``create_subprocess_exec``.
    """
    env = dict(os.environ if base is None else base)
    home = home or Path.home()
    if not _WINDOWS:
        parts = [*_extra_path_dirs(home), env.get("PATH", "")]
        env["PATH"] = os.pathsep.join(p for p in parts if p)
    env["HOME"] = str(home)
    return env
