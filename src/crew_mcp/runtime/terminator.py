"""Graceful-then-forced termination of agent subprocesses.

Termination strategy:
- POSIX: SIGTERM now, SIGKILL after a grace period if still alive.
  The SIGKILL is an event-loop timer handle: it never keeps the server alive
  and it is cancelled as soon as the process exits on its own.
- Windows: no reliable signal trees, so a single forced
  ``taskkill /PID <pid> /T /F`` takes down the whole process tree.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import subprocess
import sys
import weakref

__all__ = [
    "TerminationEscalator",
    "DEFAULT_GRACE_PERIOD",
    "IS_WINDOWS",
]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

DEFAULT_GRACE_PERIOD = 3.0  # seconds between SIGTERM and SIGKILL


class TerminationEscalator:
    """Escalating terminator shared by the spawner and the job registry.

    ``terminate()`` is idempotent: a process that already exited, or that
    was already signalled by this escalator, is left alone.

    Example:
        escalator = TerminationEscalator(grace_period=3.0)
        escalator.terminate(process)   # SIGTERM, SIGKILL in 3s if needed
        ...
        escalator.process_exited(process)  # cancels the pending SIGKILL
    """

    def __init__(self, grace_period: float = DEFAULT_GRACE_PERIOD) -> None:
        self.grace_period = grace_period
        self._signalled: weakref.WeakSet[asyncio.subprocess.Process] = weakref.WeakSet()
        self._kill_timers: dict[int, asyncio.TimerHandle] = {}

    def is_signalled(self, process: asyncio.subprocess.Process) -> bool:
        return process in self._signalled

    def terminate(self, process: asyncio.subprocess.Process) -> bool:
        """Start the termination sequence for a process.

        Args:
            process: The subprocess to terminate

        Returns:
            True if a termination request was issued, False for a no-op
        """
        if process.returncode is not None or process in self._signalled:
            return False

        self._signalled.add(process)
        pid = process.pid

        if IS_WINDOWS:
            self._tree_kill(pid)
            return True

        try:
            process.send_signal(signal.SIGTERM)
            logger.debug(f"Sent SIGTERM to pid={pid}")
        except ProcessLookupError:
            logger.debug(f"Process already gone pid={pid}")
            return True

        loop = asyncio.get_running_loop()
        self._kill_timers[pid] = loop.call_later(
            self.grace_period, self._force_kill, process
        )
        return True

    def process_exited(self, process: asyncio.subprocess.Process) -> None:
        """Cancel any pending forced kill for a process that has exited."""
        timer = self._kill_timers.pop(process.pid, None)
        if timer is not None:
            timer.cancel()

    def cancel_pending(self) -> int:
        """Cancel every pending forced kill (used once the loop is going away)."""
        count = len(self._kill_timers)
        for timer in self._kill_timers.values():
            timer.cancel()
        self._kill_timers.clear()
        return count

    @property
    def pending_count(self) -> int:
        return len(self._kill_timers)

    def _force_kill(self, process: asyncio.subprocess.Process) -> None:
        self._kill_timers.pop(process.pid, None)
        if process.returncode is not None:
            return
        try:
            process.kill()
            logger.debug(
                f"Sent SIGKILL to pid={process.pid} "
                f"after {self.grace_period}s grace period"
            )
        except ProcessLookupError:
            pass

    @staticmethod
    def _tree_kill(pid: int) -> None:
        try:
            subprocess.run(
                ["taskkill", "/PID", str(pid), "/T", "/F"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
            logger.debug(f"taskkill issued for process tree pid={pid}")
        except OSError as e:
            logger.warning(f"taskkill failed for pid={pid}: {e}")
