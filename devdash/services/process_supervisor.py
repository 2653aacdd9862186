"""Process supervisor -- spawns shell commands and captures their output.

The ``ProcessSupervisor`` owns an in-memory registry of supervised processes
keyed by a monotonically increasing integer id.  Each process gets a bounded
``LogBuffer`` fed by one pump task per output stream; clients poll the buffer
with a timestamp watermark instead of subscribing to events.

Commands run through ``bash -c`` in a new session, so each one leads its own
process group and ``stop`` can signal the whole tree a dev server tends to
spawn (``npm`` -> ``node`` -> ``esbuild`` ...).  Stopping is graceful first:
``SIGTERM`` to the group, then ``SIGKILL`` once the grace period lapses.
"""

import asyncio
import codecs
import logging
import os
import signal
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from devdash.models import LogsPage, LogStream, ProcessState, ProcessSummary
from devdash.services.log_buffer import DEFAULT_CAPACITY, LogBuffer
from devdash.services.port_detection import detect_port
from devdash.services.shell_env import build_shell_env
from devdash.state_machine import validate_transition

logger = logging.getLogger(__name__)

_WINDOWS = sys.platform == "win32"
_CHUNK_SIZE = 4096
FORCE_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)


class ProcessNotFoundError(KeyError):
    """Raised when a process id is not present in the registry.

    Attributes:
        process_id: The id that was looked up.
    """

    def __init__(self, process_id: int) -> None:
        self.process_id = process_id
        super().__init__(f"Process {process_id!r} not found")


@dataclass
class ProcessHandle:
    """Registry record for one supervised command.

    Only the supervisor mutates a handle: the pump tasks append output, the
    watcher records the exit, and ``stop``/``remove`` deliver signals.
    """

    id: int
    name: str
    project_path: str
    command: str
    log: LogBuffer
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    pid: int | None = None
    ended_at: datetime | None = None
    exit_code: int | None = None
    port: int | None = None
    state: ProcessState = ProcessState.RUNNING
    killed: bool = False
    process: asyncio.subprocess.Process | None = field(default=None, repr=False)
    watcher: asyncio.Task[None] | None = field(default=None, repr=False)
    kill_timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def alive(self) -> bool:
        return not self.killed and self.exit_code is None and self.state != ProcessState.EXITED

    def record_line(self, text: str, stream: LogStream) -> None:
        """Append one output line and try to infer the port from it.

        Args:
            text: A single line, possibly ending in ``\\r``.
            stream: Stream the line came from.
        """
        text = text.rstrip("\r")
        if not text:
            return
        self.log.append(text, stream)
        if self.port is None:
            self.port = detect_port(text)

    def summary(self) -> ProcessSummary:
        """Build the public view of this handle."""
        return ProcessSummary(
            id=self.id,
            name=self.name,
            project_path=self.project_path,
            project_name=Path(self.project_path).name,
            command=self.command,
            port=self.port,
            pid=self.pid,
            started_at=self.started_at,
            ended_at=self.ended_at,
            exit_code=self.exit_code,
            state=self.state,
            alive=self.alive,
            log_count=len(self.log),
        )


async def _spawn(command: str, cwd: str, env: dict[str, str]) -> asyncio.subprocess.Process:
    """Start *command* in *cwd* with both output streams piped.

    Raises:
        OSError: If the working directory or the shell cannot be used.
    """
    if _WINDOWS:
        return await asyncio.create_subprocess_shell(
            command,
            cwd=cwd,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    return await asyncio.create_subprocess_exec(
        "bash",
        "-c",
        command,
        cwd=cwd,
        env=env,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=True,
    )


def _send_signal(process: asyncio.subprocess.Process, sig: int) -> bool:
    """Signal the process group led by *process*, falling back to the process itself.

    Returns:
        ``True`` if the signal was delivered by either route.
    """
    killpg = getattr(os, "killpg", None)
    if killpg is not None:
        try:
            killpg(process.pid, sig)
            return True
        except OSError as exc:
            logger.debug("Group signal to %d failed (%s) -- signalling process directly", process.pid, exc)
    try:
        process.send_signal(sig)
    except ProcessLookupError:
        logger.debug("Process %d already gone", process.pid)
        return False
    return True


class ProcessSupervisor:
    """In-memory registry of supervised shell commands.

    Attributes:
        log_capacity: Entries retained per process log.
        stop_grace_seconds: Delay between the graceful signal and the forced kill.
    """

    def __init__(
        self,
        log_capacity: int = DEFAULT_CAPACITY,
        stop_grace_seconds: float = 3.0,
        env: dict[str, str] | None = None,
    ) -> None:
        """Initialise the supervisor.

        Args:
            log_capacity: Maximum log entries kept for each process.
            stop_grace_seconds: Seconds ``stop`` waits before escalating to a kill.
            env: Environment for spawned commands; defaults to ``build_shell_env()``.
        """
        self.log_capacity = log_capacity
        self.stop_grace_seconds = stop_grace_seconds
        self._env = env if env is not None else build_shell_env()
        self._handles: dict[int, ProcessHandle] = {}
        self._last_id = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self, project_path: str, command: str, name: str = "") -> ProcessHandle:
        """Spawn *command* in *project_path* and register it.

        The handle is registered before the spawn is attempted, so a spawn
        failure still yields a handle: the error is written to its log as a
        ``system`` line and the handle is marked exited.

        Args:
            project_path: Working directory for the command.
            command: Shell command line.
            name: Display name; defaults to *command*.

        Returns:
            The registered ``ProcessHandle``.
        """
        self._last_id += 1
        handle = ProcessHandle(
            id=self._last_id,
            name=name or command,
            project_path=project_path,
            command=command,
            log=LogBuffer(self.log_capacity),
        )
        self._handles[handle.id] = handle

        try:
            process = await _spawn(command, project_path, self._env)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to spawn process %d (%s) in %s: %s", handle.id, command, project_path, exc)
            handle.log.append(f"Error: {exc}", LogStream.SYSTEM)
            handle.ended_at = datetime.now(tz=UTC)
            self._transition(handle, ProcessState.EXITED)
            return handle

        handle.process = process
        handle.pid = process.pid
        handle.watcher = asyncio.create_task(self._watch(handle), name=f"devdash-process-{handle.id}")
        logger.info("Started process %d (pid %d): %s in %s", handle.id, process.pid, command, project_path)
        return handle

    def get(self, process_id: int) -> ProcessHandle:
        """Retrieve a handle by id.

        Raises:
            ProcessNotFoundError: If no process with the given id is registered.
        """
        if process_id not in self._handles:
            raise ProcessNotFoundError(process_id)
        return self._handles[process_id]

    def list_processes(self) -> list[ProcessSummary]:
        """Summarise every registered process, ended ones included, in id order."""
        return [handle.summary() for handle in self._handles.values()]

    def get_logs(self, process_id: int, since: int = 0) -> LogsPage:
        """Return log entries newer than *since* along with the process status.

        Args:
            process_id: The process to read.
            since: Timestamp of the last entry the caller already holds.

        Returns:
            A ``LogsPage`` with the new entries.

        Raises:
            ProcessNotFoundError: If the id is unknown.
        """
        handle = self.get(process_id)
        return LogsPage(
            logs=handle.log.since(since),
            alive=handle.alive,
            port=handle.port,
            exit_code=handle.exit_code,
        )

    def stop(self, process_id: int) -> ProcessHandle:
        """Ask a process to terminate, escalating to a kill after the grace period.

        Stopping a process that has already exited does nothing.

        Raises:
            ProcessNotFoundError: If the id is unknown.
        """
        handle = self.get(process_id)
        if handle.state == ProcessState.EXITED or handle.process is None:
            return handle

        if handle.state == ProcessState.RUNNING:
            self._transition(handle, ProcessState.STOPPING)
        _send_signal(handle.process, signal.SIGTERM)

        if handle.kill_timer is None:
            loop = asyncio.get_running_loop()
            handle.kill_timer = loop.call_later(self.stop_grace_seconds, self._force_kill, handle)
        logger.info("Stopping process %d (pid %s)", handle.id, handle.pid)
        return handle

    def remove(self, process_id: int) -> None:
        """Kill the process if it is still alive and drop it from the registry.

        Raises:
            ProcessNotFoundError: If the id is unknown.
        """
        handle = self.get(process_id)
        self._cancel_kill_timer(handle)
        if handle.alive and handle.process is not None:
            handle.killed = _send_signal(handle.process, FORCE_SIGNAL)
        del self._handles[process_id]
        logger.info("Removed process %d", process_id)

    async def shutdown(self) -> None:
        """Kill every live process and wait briefly for their watchers to finish."""
        watchers: list[asyncio.Task[None]] = []
        for handle in self._handles.values():
            self._cancel_kill_timer(handle)
            if handle.alive and handle.process is not None:
                handle.killed = _send_signal(handle.process, FORCE_SIGNAL)
            if handle.watcher is not None and not handle.watcher.done():
                watchers.append(handle.watcher)
        if watchers:
            logger.info("Waiting for %d supervised process(es) to exit", len(watchers))
            await asyncio.wait(watchers, timeout=self.stop_grace_seconds)

    # ------------------------------------------------------------------
    # Output capture and exit handling
    # ------------------------------------------------------------------

    async def _pump(self, handle: ProcessHandle, reader: asyncio.StreamReader | None, stream: LogStream) -> None:
        """Read *reader* chunk by chunk until EOF, appending complete lines."""
        if reader is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        while True:
            chunk = await reader.read(_CHUNK_SIZE)
            if not chunk:
                break
            *lines, pending = (pending + decoder.decode(chunk)).split("\n")
            for line in lines:
                handle.record_line(line, stream)
        pending += decoder.decode(b"", final=True)
        if pending:
            handle.record_line(pending, stream)

    async def _watch(self, handle: ProcessHandle) -> None:
        """Drain both streams, then record the exit status."""
        process = handle.process
        assert process is not None

        try:
            await asyncio.gather(
                self._pump(handle, process.stdout, LogStream.STDOUT),
                self._pump(handle, process.stderr, LogStream.STDERR),
            )
        except Exception:
            logger.exception("Output capture failed for process %d", handle.id)

        exit_code = await process.wait()
        self._cancel_kill_timer(handle)
        handle.exit_code = exit_code
        handle.ended_at = datetime.now(tz=UTC)
        handle.log.append(f"Process exited with code {exit_code}", LogStream.SYSTEM)
        if handle.state != ProcessState.EXITED:
            self._transition(handle, ProcessState.EXITED)
        logger.info("Process %d exited with code %s", handle.id, exit_code)

    def _force_kill(self, handle: ProcessHandle) -> None:
        handle.kill_timer = None
        if handle.state == ProcessState.EXITED or handle.process is None:
            return
        handle.killed = _send_signal(handle.process, FORCE_SIGNAL)
        logger.info("Process %d did not exit within %.1fs -- killed", handle.id, self.stop_grace_seconds)

    @staticmethod
    def _cancel_kill_timer(handle: ProcessHandle) -> None:
        if handle.kill_timer is not None:
            handle.kill_timer.cancel()
            handle.kill_timer = None

    @staticmethod
    def _transition(handle: ProcessHandle, target: ProcessState) -> None:
        validate_transition(handle.state, target)
        handle.state = target
