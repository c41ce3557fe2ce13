"""信号管理模块。

SIGINT 和 SIGTERM 都会触发优雅退出：关闭回调终止所有 agent 进程，
stdio 服务循环随之被取消。

在 double_tap_window 内再次收到 SIGINT 视为强制退出，
清理结束后以状态码 130 退出。

支持的配置：
- CREW_SIGINT_DOUBLE_TAP_WINDOW: 双击退出窗口时间（秒）
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from enum import Enum
from typing import Any, Callable, Optional

from .config import get_config

__all__ = ["SignalManager", "ShutdownReason"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


class ShutdownReason(str, Enum):
    """关闭原因。"""

    SIGINT = "sigint"
    SIGTERM = "sigterm"
    REQUESTED = "requested"


def _watched_signals() -> list[tuple[signal.Signals, ShutdownReason]]:
    # Windows 控制台进程收不到 SIGTERM
    if IS_WINDOWS:
        return [(signal.SIGINT, ShutdownReason.SIGINT)]
    return [
        (signal.SIGINT, ShutdownReason.SIGINT),
        (signal.SIGTERM, ShutdownReason.SIGTERM),
    ]


class SignalManager:
    """信号管理器。

    将 OS 信号转换为一次性的关闭事件。

    Example:
        signals = SignalManager(on_shutdown=spawner.terminate_all)
        await signals.start()
        try:
            await signals.wait_for_shutdown()
        finally:
            await signals.stop()
        if signals.is_force_exit:
            sys.exit(130)
    """

    def __init__(
        self,
        on_shutdown: Optional[Callable[[], None]] = None,
        *,
        double_tap_window: Optional[float] = None,
    ) -> None:
        if double_tap_window is None:
            double_tap_window = get_config().sigint_double_tap_window
        self.double_tap_window = double_tap_window
        self.reason: Optional[ShutdownReason] = None
        self._on_shutdown = on_shutdown
        self._force_exit = False
        self._last_sigint: Optional[float] = None
        self._event: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous: dict[signal.Signals, Any] = {}

    @property
    def is_shutdown_requested(self) -> bool:
        """是否已请求关闭。"""
        return self.reason is not None

    @property
    def is_force_exit(self) -> bool:
        """是否请求强制退出（双击 SIGINT）。"""
        return self._force_exit

    @property
    def is_running(self) -> bool:
        return self._loop is not None

    async def start(self) -> None:
        """在当前事件循环上安装信号处理器。"""
        if self._loop is not None:
            logger.warning("SignalManager already running")
            return

        loop = asyncio.get_running_loop()
        self._loop = loop
        self._event = asyncio.Event()

        for signum, reason in _watched_signals():
            if IS_WINDOWS:
                # signal.signal 的处理器在字节码之间执行，转回事件循环处理
                self._previous[signum] = signal.signal(
                    signum,
                    lambda _sig, _frame, r=reason: loop.call_soon_threadsafe(self._on_signal, r),
                )
            else:
                loop.add_signal_handler(signum, self._on_signal, reason)

        logger.debug(f"Signal handlers installed (double_tap_window={self.double_tap_window}s)")

    async def stop(self) -> None:
        """停止信号监听，恢复原始处理器。"""
        loop, self._loop = self._loop, None
        if loop is None:
            return

        for signum, _ in _watched_signals():
            try:
                if IS_WINDOWS:
                    signal.signal(signum, self._previous.pop(signum, signal.SIG_DFL))
                else:
                    loop.remove_signal_handler(signum)
            except (ValueError, RuntimeError) as e:
                logger.debug(f"Could not restore handler for {signum.name}: {e}")

        logger.debug("Signal handlers removed")

    async def wait_for_shutdown(self) -> None:
        """等待关闭信号。"""
        if self._event is not None:
            await self._event.wait()

    def request_graceful_shutdown(self) -> None:
        """程序化请求优雅退出。"""
        self._begin_shutdown(ShutdownReason.REQUESTED)

    def _on_signal(self, reason: ShutdownReason) -> None:
        """处理 SIGINT / SIGTERM（含双击检测）。"""
        if reason is ShutdownReason.SIGINT:
            now = time.monotonic()
            if (
                self.is_shutdown_requested
                and self._last_sigint is not None
                and now - self._last_sigint < self.double_tap_window
            ):
                logger.warning("Second SIGINT within window, forcing exit after cleanup")
                self._force_exit = True
            self._last_sigint = now

        self._begin_shutdown(reason)

    def _begin_shutdown(self, reason: ShutdownReason) -> None:
        """记录关闭原因并只调用一次关闭回调。"""
        if self.reason is None:
            self.reason = reason
            logger.info(f"Shutdown requested ({reason.value})")
            if self._on_shutdown is not None:
                try:
                    self._on_shutdown()
                except Exception as e:
                    logger.warning(f"Shutdown callback failed: {e}", exc_info=True)

        if self._event is not None:
            self._event.set()
