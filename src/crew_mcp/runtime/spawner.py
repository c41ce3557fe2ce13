"""Process spawner for agent CLIs.

crew-mcp runtime module

This module provides:
- Platform-aware command resolution for agent CLIs
- Foreground invocation: bounded stdout/stderr capture with a deadline
- Background invocation: returns the live process handle immediately
- A process-wide active set so shutdown can terminate everything we started

Key design points:
- POSIX: start_new_session=True so Ctrl+C in the host terminal does not reach
  agent processes directly; termination always goes through the escalator
- Windows: agents installed through npm are ``.cmd`` shims and must be run
  via ``cmd /c``; the Claude CLI is a native binary
- stdin is written by a separate task and broken pipes are ignored, because
  an agent may exit before it has consumed its whole prompt
- Spawn failures raise SpawnError; a non-zero exit code never does
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from .buffer import STDERR_TRUNCATED_MARKER, STDOUT_TRUNCATED_MARKER, OutputBuffer
from .errors import SpawnError
from .terminator import DEFAULT_GRACE_PERIOD, IS_WINDOWS, TerminationEscalator

__all__ = [
    "ProcessSpawner",
    "ProcessSpec",
    "SpawnResult",
    "build_command",
    "pump_stream",
    "DEFAULT_TIMEOUT",
    "DEFAULT_MAX_STDOUT",
    "MAX_STDERR",
]

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0  # seconds, foreground default
DEFAULT_MAX_STDOUT = 10 * 1024 * 1024
MAX_STDERR = 1 * 1024 * 1024

STREAM_CHUNK_SIZE = 64 * 1024

# Agents that ship as native binaries on Windows (no .cmd shim)
WINDOWS_NATIVE_AGENTS = frozenset({"claude"})


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for an agent subprocess.

    Attributes:
        agent: Agent identifier (codex/gemini/claude) or an executable path
        argv: Full command line (first element is the executable)
        cwd: Working directory (None = inherit)
        env: Extra environment variables layered over the parent's
        stdin_bytes: Optional bytes to write to stdin
    """

    agent: str
    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    stdin_bytes: bytes | None = None


class SpawnResult(BaseModel):
    """Captured result of a foreground invocation.

    ``exit_code`` is None exactly when the call was abandoned on timeout.
    """

    stdout: str
    stderr: str
    exit_code: int | None

    @property
    def timed_out(self) -> bool:
        return self.exit_code is None


def build_command(agent: str) -> list[str]:
    """Resolve the command prefix used to launch an agent."""
    if IS_WINDOWS and agent not in WINDOWS_NATIVE_AGENTS:
        return ["cmd", "/c", f"{agent}.cmd"]
    return [agent]


async def pump_stream(
    stream: asyncio.StreamReader | None,
    sink: Callable[[bytes], None],
) -> None:
    """Read a stream to EOF, handing every chunk to ``sink`` in order."""
    if stream is None:
        return
    while True:
        chunk = await stream.read(STREAM_CHUNK_SIZE)
        if not chunk:
            break
        sink(chunk)


class ProcessSpawner:
    """Starts agent subprocesses and tracks every one of them until exit.

    Example:
        spawner = ProcessSpawner(default_timeout=300.0)

        # blocking
        result = await spawner.run_foreground("codex", ["exec", "--json", "-"],
                                              stdin=b"prompt text")
        if result.timed_out:
            ...

        # non-blocking, caller owns the streams
        process = await spawner.run_background("gemini", ["-p", ""],
                                               stdin=b"prompt text")

        # shutdown
        await spawner.aclose()
    """

    def __init__(
        self,
        *,
        default_timeout: float = DEFAULT_TIMEOUT,
        max_stdout: int = DEFAULT_MAX_STDOUT,
        escalator: TerminationEscalator | None = None,
    ) -> None:
        self.default_timeout = default_timeout
        self.max_stdout = max_stdout
        self.escalator = escalator or TerminationEscalator()
        self._active: set[asyncio.subprocess.Process] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def active_count(self) -> int:
        return len(self._active)

    def is_active(self, process: asyncio.subprocess.Process) -> bool:
        return process in self._active

    def build_spec(
        self,
        agent: str,
        args: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        stdin: str | bytes | None = None,
    ) -> ProcessSpec:
        if isinstance(stdin, str):
            stdin = stdin.encode("utf-8")
        return ProcessSpec(
            agent=agent,
            argv=[*build_command(agent), *args],
            cwd=Path(cwd) if cwd is not None else None,
            env=env,
            stdin_bytes=stdin or None,
        )

    async def run_foreground(
        self,
        agent: str,
        args: Sequence[str],
        *,
        cwd: str | Path | None = None,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        stdin: str | bytes | None = None,
    ) -> SpawnResult:
        """Run an agent and wait for it to exit or for the deadline.

        Args:
            agent: Agent identifier
            args: Arguments after the resolved command
            cwd: Working directory
            timeout: Deadline in seconds (None = ``default_timeout``)
            env: Extra environment variables
            stdin: Optional input for the agent

        Returns:
            SpawnResult; on timeout exit_code is None and stderr ends with a
            timeout trailer

        Raises:
            SpawnError: If the process could not be started at all
        """
        timeout = self.default_timeout if timeout is None else timeout
        spec = self.build_spec(agent, args, cwd=cwd, env=env, stdin=stdin)
        process = await self._start(spec)

        stdout_buf = OutputBuffer(self.max_stdout, STDOUT_TRUNCATED_MARKER)
        stderr_buf = OutputBuffer(MAX_STDERR, STDERR_TRUNCATED_MARKER)
        collector = self._spawn_task(self._collect(process, stdout_buf, stderr_buf))

        try:
            # shield: on timeout the collector keeps draining the pipes
            # while the process is being terminated
            exit_code = await asyncio.wait_for(asyncio.shield(collector), timeout)
        except asyncio.TimeoutError:
            logger.info(
                f"{agent} timed out after {timeout:g}s pid={process.pid}, terminating"
            )
            self.escalator.terminate(process)
            self._active.discard(process)
            return SpawnResult(
                stdout=stdout_buf.text,
                stderr=stderr_buf.text + f"\n[timeout after {timeout:g}s]",
                exit_code=None,
            )
        except asyncio.CancelledError:
            logger.info(f"{agent} call cancelled pid={process.pid}, terminating")
            self.escalator.terminate(process)
            raise

        logger.debug(f"{agent} exited pid={process.pid} returncode={exit_code}")
        return SpawnResult(
            stdout=stdout_buf.text,
            stderr=stderr_buf.text,
            exit_code=exit_code,
        )

    async def run_background(
        self,
        agent: str,
        args: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        stdin: str | bytes | None = None,
    ) -> asyncio.subprocess.Process:
        """Start an agent and return the live process immediately.

        The caller must drain ``process.stdout`` and ``process.stderr``.
        No timeout is applied; the process runs until it exits or is killed.

        Raises:
            SpawnError: If the process could not be started at all
        """
        spec = self.build_spec(agent, args, cwd=cwd, env=env, stdin=stdin)
        return await self._start(spec)

    def terminate_all(self) -> int:
        """Escalate termination on every active process.

        Returns:
            Number of processes that were tracked as active
        """
        processes = list(self._active)
        for process in processes:
            self.escalator.terminate(process)
        self._active.clear()
        if processes:
            logger.info(f"Terminating {len(processes)} active agent process(es)")
        return len(processes)

    async def aclose(self, timeout: float | None = None) -> None:
        """Terminate everything and wait (bounded) for the processes to exit."""
        if timeout is None:
            timeout = self.escalator.grace_period + 1.0
        self.terminate_all()

        pending = [task for task in self._tasks if not task.done()]
        if pending:
            _, still_pending = await asyncio.wait(pending, timeout=timeout)
            if still_pending:
                logger.warning(
                    f"{len(still_pending)} process task(s) still running after {timeout:g}s"
                )
        cancelled = self.escalator.cancel_pending()
        if cancelled:
            logger.debug(f"Cancelled {cancelled} pending forced kill(s)")

    async def _start(self, spec: ProcessSpec) -> asyncio.subprocess.Process:
        kwargs = self._build_subprocess_kwargs(spec)

        try:
            # DEVNULL rather than inheriting: our own stdin is the MCP channel
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.PIPE if spec.stdin_bytes else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=spec.cwd,
                **kwargs,
            )
        except OSError as e:
            logger.warning(f"Failed to spawn {spec.agent}: {e}")
            raise SpawnError(spec.agent, spec.argv, spec.cwd, e) from e

        self._active.add(process)
        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd}"
        )

        if spec.stdin_bytes:
            self._spawn_task(self._feed_stdin(process, spec.stdin_bytes))
        self._spawn_task(self._track(process))
        return process

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "env": {**os.environ, "MSYS_NO_PATHCONV": "1", **(spec.env or {})},
        }

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
        else:
            kwargs["start_new_session"] = True

        return kwargs

    async def _feed_stdin(self, process: asyncio.subprocess.Process, data: bytes) -> None:
        stdin = process.stdin
        if stdin is None:
            return
        try:
            stdin.write(data)
            await stdin.drain()
            stdin.close()
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug(f"stdin closed early by pid={process.pid}")

    async def _track(self, process: asyncio.subprocess.Process) -> None:
        try:
            await process.wait()
        finally:
            self._active.discard(process)
            self.escalator.process_exited(process)

    @staticmethod
    async def _collect(
        process: asyncio.subprocess.Process,
        stdout_buf: OutputBuffer,
        stderr_buf: OutputBuffer,
    ) -> int:
        await asyncio.gather(
            pump_stream(process.stdout, stdout_buf.append),
            pump_stream(process.stderr, stderr_buf.append),
        )
        return await process.wait()

    def _spawn_task(self, coro: Awaitable[Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug(f"Process task failed: {exc!r}")
