"""Tests for the process supervisor.

Runs real ``bash`` commands in a temporary directory and checks output capture,
port inference, and the stop/kill/remove lifecycle.
"""

import asyncio
import sys
from pathlib import Path

import pytest

from devdash.models import LogStream, ProcessState
from devdash.services.process_supervisor import ProcessHandle, ProcessNotFoundError, ProcessSupervisor

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="requires bash and POSIX signals")


@pytest.fixture()
def supervisor() -> ProcessSupervisor:
    """Create a supervisor with a short kill grace period.

    Returns:
        A fresh ``ProcessSupervisor``.
    """
    return ProcessSupervisor(stop_grace_seconds=0.5)


async def _wait_exit(handle: ProcessHandle, timeout: float = 10) -> None:
    assert handle.watcher is not None
    await asyncio.wait_for(asyncio.shield(handle.watcher), timeout=timeout)


async def _wait_for_line(handle: ProcessHandle, text: str, timeout: float = 10) -> None:
    async def _poll() -> None:
        while not any(e.text == text for e in handle.log.entries()):
            await asyncio.sleep(0.02)

    await asyncio.wait_for(_poll(), timeout=timeout)


def _texts(handle: ProcessHandle) -> list[str]:
    return [e.text for e in handle.log.entries()]


class TestOutputCapture:
    """Line splitting, stream tagging and the exit record."""

    @pytest.mark.asyncio()
    async def test_captures_stdout_stderr_and_exit(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """Both streams are captured and the exit adds a system line.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handle = await supervisor.run(str(tmp_path), "echo out; echo err >&2; exit 3", "demo")
        await _wait_exit(handle)

        by_text = {e.text: e.stream for e in handle.log.entries()}
        assert by_text["out"] == LogStream.STDOUT
        assert by_text["err"] == LogStream.STDERR
        assert by_text["Process exited with code 3"] == LogStream.SYSTEM
        assert handle.exit_code == 3
        assert handle.ended_at is not None
        assert handle.state == ProcessState.EXITED
        assert handle.alive is False

    @pytest.mark.asyncio()
    async def test_runs_in_project_directory(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """The command's working directory is the project path.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handle = await supervisor.run(str(tmp_path), "pwd -P")
        await _wait_exit(handle)
        assert _texts(handle)[0] == str(tmp_path.resolve())

    @pytest.mark.asyncio()
    async def test_partial_lines_are_joined(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """A line written in two pieces becomes one entry; blank lines are dropped.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handle = await supervisor.run(str(tmp_path), "printf 'abc'; sleep 0.2; printf 'def\\n\\n\\r\\nlast'")
        await _wait_exit(handle)
        assert _texts(handle)[:2] == ["abcdef", "last"]

    @pytest.mark.asyncio()
    async def test_log_keeps_latest_500_lines(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """501 printed lines leave at most 500 entries and the first line is gone.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handle = await supervisor.run(str(tmp_path), "for i in $(seq 1 501); do echo line-$i; done")
        await _wait_exit(handle)

        page = supervisor.get_logs(handle.id, 0)
        texts = [e.text for e in page.logs]
        assert len(texts) <= 500
        assert "line-1" not in texts
        assert "line-501" in texts

    @pytest.mark.asyncio()
    async def test_watermark_polling(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """Polling with the last seen timestamp returns only newer lines.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handle = await supervisor.run(str(tmp_path), "echo first; sleep 0.3; echo second")
        await _wait_for_line(handle, "first")

        first_page = supervisor.get_logs(handle.id, 0)
        assert [e.text for e in first_page.logs] == ["first"]
        assert first_page.alive is True

        await _wait_exit(handle)
        second_page = supervisor.get_logs(handle.id, first_page.logs[-1].timestamp)
        assert [e.text for e in second_page.logs] == ["second", "Process exited with code 0"]
        assert second_page.exit_code == 0
        assert second_page.alive is False


class TestPortDetection:
    """The first announced port sticks."""

    @pytest.mark.asyncio()
    async def test_first_port_wins(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """A later announcement of a different port does not replace the first.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handle = await supervisor.run(
            str(tmp_path),
            "echo 'Listening on http://127.0.0.1:5173'; sleep 0.2; echo 'moved to localhost:8080'",
        )
        await _wait_for_line(handle, "Listening on http://127.0.0.1:5173")
        assert handle.port == 5173

        await _wait_exit(handle)
        assert handle.port == 5173
        assert supervisor.get_logs(handle.id).port == 5173


class TestLifecycle:
    """Spawn failures, stop escalation, removal and listing."""

    @pytest.mark.asyncio()
    async def test_spawn_failure_is_logged(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """A bad working directory yields an exited handle with an error line.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handle = await supervisor.run(str(tmp_path / "missing"), "echo never")

        assert handle.state == ProcessState.EXITED
        assert handle.alive is False
        assert handle.exit_code is None
        entries = handle.log.entries()
        assert entries[0].stream == LogStream.SYSTEM
        assert entries[0].text.startswith("Error:")

    @pytest.mark.asyncio()
    async def test_invalid_command_is_logged(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """A command the OS rejects outright is reported the same way as a bad directory.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handle = await supervisor.run(str(tmp_path), "echo a\x00b")

        assert handle.state == ProcessState.EXITED
        assert handle.alive is False
        assert handle.process is None
        assert handle.log.entries()[0].text.startswith("Error:")
        assert supervisor.list_processes()[0].alive is False

    @pytest.mark.asyncio()
    async def test_stop_terminates_process_group(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """Stopping sends SIGTERM to the group, ending the shell and its children.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handle = await supervisor.run(str(tmp_path), "sleep 30 & echo ready; wait")
        await _wait_for_line(handle, "ready")

        supervisor.stop(handle.id)
        assert handle.state == ProcessState.STOPPING

        await _wait_exit(handle, timeout=5)
        assert handle.state == ProcessState.EXITED
        assert handle.exit_code is not None
        assert handle.killed is False
        assert handle.kill_timer is None

    @pytest.mark.asyncio()
    async def test_stop_escalates_to_kill(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """A process ignoring SIGTERM is killed once the grace period lapses.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handle = await supervisor.run(str(tmp_path), "trap '' TERM; echo ready; sleep 30")
        await _wait_for_line(handle, "ready")

        supervisor.stop(handle.id)
        await asyncio.sleep(0.2)
        assert handle.exit_code is None

        await _wait_exit(handle, timeout=5)
        assert handle.killed is True
        assert handle.exit_code == -9

    @pytest.mark.asyncio()
    async def test_stop_unknown_and_exited(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """Unknown ids raise; stopping an exited process is a harmless no-op.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        with pytest.raises(ProcessNotFoundError):
            supervisor.stop(999)

        handle = await supervisor.run(str(tmp_path), "true")
        await _wait_exit(handle)
        supervisor.stop(handle.id)
        assert handle.state == ProcessState.EXITED
        assert handle.kill_timer is None

    @pytest.mark.asyncio()
    async def test_remove_kills_and_forgets(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """Removing a live process kills it and drops it from the registry.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handle = await supervisor.run(str(tmp_path), "echo ready; sleep 30")
        await _wait_for_line(handle, "ready")

        supervisor.remove(handle.id)
        assert handle.killed is True
        assert supervisor.list_processes() == []
        with pytest.raises(ProcessNotFoundError):
            supervisor.get_logs(handle.id)
        with pytest.raises(ProcessNotFoundError):
            supervisor.remove(handle.id)

        await _wait_exit(handle)

    @pytest.mark.asyncio()
    async def test_ids_are_never_reused(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """Ids keep increasing after removal and ended processes stay listed.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        first = await supervisor.run(str(tmp_path), "true")
        await _wait_exit(first)
        supervisor.remove(first.id)

        second = await supervisor.run(str(tmp_path), "true", "check")
        await _wait_exit(second)

        summaries = supervisor.list_processes()
        assert second.id > first.id
        assert [s.id for s in summaries] == [second.id]
        assert summaries[0].name == "check"
        assert summaries[0].project_name == tmp_path.name
        assert summaries[0].alive is False

    @pytest.mark.asyncio()
    async def test_shutdown_kills_everything(self, supervisor: ProcessSupervisor, tmp_path: Path) -> None:
        """Shutdown leaves no supervised process running.

        Args:
            supervisor: Fixture-provided supervisor.
            tmp_path: Pytest-provided temporary directory.
        """
        handles = [await supervisor.run(str(tmp_path), "echo ready; sleep 30") for _ in range(2)]
        for handle in handles:
            await _wait_for_line(handle, "ready")

        await supervisor.shutdown()

        for handle in handles:
            await _wait_exit(handle)
            assert handle.alive is False
