"""Long-lived subprocess supervisor with isolation and reliable termination.

cli-agent-bridge runtime module v0.1.0

This module provides:
- Cross-platform subprocess isolation (new session/process group)
- Background stdout framing, stderr draining and exit watching
- Reliable termination with graceful shutdown (SIGTERM -> timeout -> SIGKILL)
- Callback-based reporting of lines, stream closure, exit and errors

Key design points:
- POSIX: start_new_session=True to create new process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- start() never raises on spawn failure; the error goes to on_error
- dispose() is terminal: a disposed supervisor never spawns again
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import os
import signal
import subprocess
import sys
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import WriteFailureError
from ..shared.parsers import LineFramer

__all__ = [
    "IS_WINDOWS",
    "ProcessSpec",
    "ProcessSupervisor",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

# Number of stderr lines kept for diagnostics
STDERR_TAIL_LINES = 50

READ_CHUNK_SIZE = 4096


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to supervise.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path
    env: Mapping[str, str] | None = None


class ProcessSupervisor:
    """Owns one long-running child process and its stdio pipes.

    Lifecycle:
        created (not spawned) -> running (start) -> not running (exit/error)
        Any state -> disposed (dispose), which is terminal.

    Output is delivered through callbacks set by the owner:
    - on_line(str): one framed stdout line (ANSI codes preserved)
    - on_close(): stdout reached EOF
    - on_exit(int): process exited with the given return code
    - on_error(Exception): spawn failure or runtime I/O error

    Example:
        supervisor = ProcessSupervisor(
            ProcessSpec(argv=["agent"], cwd=Path("/workspace")),
            on_line=print,
        )
        await supervisor.start()
        await supervisor.write_line("hello")
        ...
        await supervisor.dispose()
    """

    def __init__(
        self,
        spec: ProcessSpec,
        *,
        on_line: Callable[[str], None] | None = None,
        on_close: Callable[[], None] | None = None,
        on_exit: Callable[[int], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> None:
        self.spec = spec
        self.on_line = on_line
        self.on_close = on_close
        self.on_exit = on_exit
        self.on_error = on_error
        self.term_timeout = term_timeout
        self.kill_timeout = kill_timeout

        self._process: asyncio.subprocess.Process | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._disposed = False
        self._returncode: int | None = None
        self._stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        # last spawned process; callbacks from older processes are ignored
        self._current: asyncio.subprocess.Process | None = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def is_running(self) -> bool:
        """True while a spawned process handle is held."""
        return not self._disposed and self._process is not None

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        """Return code of the last exited process, if any."""
        return self._returncode

    @property
    def stderr_tail(self) -> list[str]:
        """Most recent stderr lines, oldest first."""
        return list(self._stderr_tail)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Spawn the child process.

        No-op if already running or disposed. Spawn failures are reported
        through on_error rather than raised.
        """
        if self._process is not None or self._disposed:
            return

        kwargs = self._build_subprocess_kwargs(self.spec)

        try:
            process = await asyncio.create_subprocess_exec(
                *self.spec.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.spec.cwd,
                **kwargs,
            )
        except OSError as e:
            logger.error(f"Failed to spawn {self.spec.argv[0]}: {e}")
            self._emit_error(e)
            return

        # dispose() may have run while we were awaiting the spawn
        if self._disposed:
            await self._terminate_process(process)
            return

        self._process = process
        self._current = process
        self._returncode = None
        self._stderr_tail.clear()

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={self.spec.argv[0]} cwd={self.spec.cwd}"
        )

        self._tasks = [t for t in self._tasks if not t.done()]
        self._tasks += [
            asyncio.create_task(self._read_stdout(process), name=f"stdout-{process.pid}"),
            asyncio.create_task(self._drain_stderr(process), name=f"stderr-{process.pid}"),
            asyncio.create_task(self._watch_exit(process), name=f"exit-{process.pid}"),
        ]

    async def dispose(self) -> None:
        """Terminate the child (if any) and mark the supervisor disposed.

        Idempotent. After dispose() the supervisor never spawns again.
        """
        if self._disposed:
            return
        self._disposed = True

        process = self._process
        self._process = None
        tasks, self._tasks = self._tasks, []

        try:
            await asyncio.shield(self._do_cleanup(process, tasks))
        except asyncio.CancelledError:
            # If shield itself is cancelled, still try cleanup
            await self._do_cleanup(process, tasks)
            raise

    async def write_line(self, text: str) -> None:
        """Write one newline-terminated UTF-8 line to the child's stdin.

        Raises:
            WriteFailureError: If the process is gone or the pipe is broken
        """
        process = self._process
        if process is None or process.stdin is None or self._disposed:
            raise WriteFailureError("Agent stdin is not available")

        try:
            process.stdin.write((text + "\n").encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError, OSError) as e:
            logger.debug(f"Write to pid={process.pid} failed: {e}")
            raise WriteFailureError(f"Failed to write to agent stdin: {e}") from e

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Args:
            spec: Process specification

        Returns:
            Dict of kwargs for asyncio.create_subprocess_exec
        """
        kwargs: dict[str, Any] = {}

        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    # =========================================================================
    # Background tasks
    # =========================================================================

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        """Frame stdout into lines and deliver them to on_line."""
        if process.stdout is None:
            return

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        framer = LineFramer()

        try:
            while True:
                chunk = await process.stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for line in framer.feed(decoder.decode(chunk)):
                    self._emit_line(process, line)

            for line in framer.feed(decoder.decode(b"", final=True)):
                self._emit_line(process, line)
            for line in framer.close():
                self._emit_line(process, line)
        except (ConnectionResetError, OSError) as e:
            logger.error(f"Error reading stdout of pid={process.pid}: {e}")
            if self._is_current(process):
                self._emit_error(e)
            return

        logger.debug(f"Stdout closed pid={process.pid}")
        if self.on_close and self._is_current(process):
            self.on_close()

    async def _drain_stderr(self, process: asyncio.subprocess.Process) -> None:
        """Drain stderr to prevent buffer deadlock, keeping a short tail."""
        if process.stderr is None:
            return

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""

        try:
            while True:
                chunk = await process.stderr.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                *lines, pending = (pending + decoder.decode(chunk)).split("\n")
                for line in lines:
                    self._record_stderr(process, line)
                # keep only a bounded unterminated remainder
                pending = pending[-READ_CHUNK_SIZE:]
        except (ConnectionResetError, OSError) as e:
            logger.debug(f"Stderr drain stopped pid={process.pid}: {e}")
            return

        self._record_stderr(process, pending + decoder.decode(b"", final=True))

    def _record_stderr(self, process: asyncio.subprocess.Process, line: str) -> None:
        line = line.rstrip("\r")
        if not line:
            return
        self._stderr_tail.append(line)
        logger.debug(f"[stderr pid={process.pid}] {line[:200]}")

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        """Wait for the child to exit, then release the handle."""
        returncode = await process.wait()
        if self._process is process:
            self._process = None
        self._returncode = returncode
        logger.debug(f"Subprocess exited pid={process.pid} returncode={returncode}")
        if self.on_exit and self._is_current(process):
            self.on_exit(returncode)

    def _is_current(self, process: asyncio.subprocess.Process) -> bool:
        return not self._disposed and self._current is process

    def _emit_line(self, process: asyncio.subprocess.Process, line: str) -> None:
        if self.on_line and self._is_current(process):
            self.on_line(line)

    def _emit_error(self, error: Exception) -> None:
        if self.on_error:
            self.on_error(error)

    # =========================================================================
    # Cleanup / termination
    # =========================================================================

    async def _do_cleanup(
        self,
        process: asyncio.subprocess.Process | None,
        tasks: list[asyncio.Task[None]],
    ) -> None:
        """Terminate the process, then stop background tasks."""
        if process is not None:
            if process.stdin is not None:
                with contextlib.suppress(OSError):
                    process.stdin.close()
            if process.returncode is None:
                await self._terminate_process(process)

        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _terminate_process(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit

        Args:
            process: The subprocess to terminate
        """
        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            if IS_WINDOWS:
                self._windows_terminate(process)
            else:
                self._posix_signal(process, signal.SIGTERM)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            logger.debug(f"Force killing subprocess pid={pid}")
            if IS_WINDOWS:
                process.kill()
            else:
                self._posix_signal(process, signal.SIGKILL)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={process.returncode}"
                )
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")

    def _posix_signal(
        self,
        process: asyncio.subprocess.Process,
        sig: signal.Signals,
    ) -> None:
        """Send a signal to the process group on POSIX systems.

        Falls back to signalling just the process if killpg fails.
        """
        try:
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(sig)

    def _windows_terminate(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Send CTRL_BREAK_EVENT on Windows."""
        try:
            # Works because we used CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()
