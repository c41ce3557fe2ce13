"""SignalManager 模块测试。

- SIGINT / SIGTERM 触发优雅退出
- 双击 SIGINT 强制退出
- 关闭回调只调用一次
"""

from __future__ import annotations

import asyncio
import os
import sys
from unittest import mock

import pytest

from crew_mcp.signal_manager import ShutdownReason, SignalManager


def _manager(on_shutdown=None, double_tap_window: float = 1.0) -> SignalManager:
    """创建未安装信号处理器的管理器。"""
    manager = SignalManager(on_shutdown, double_tap_window=double_tap_window)
    manager._event = asyncio.Event()
    return manager


class TestSignalManagerInit:
    """初始化测试。"""

    def test_window_from_config(self):
        from crew_mcp.config import reload_config

        with mock.patch.dict(os.environ, {"CREW_SIGINT_DOUBLE_TAP_WINDOW": "2.5"}):
            reload_config()
            manager = SignalManager()
        reload_config()

        assert manager.double_tap_window == 2.5
        assert manager.is_shutdown_requested is False
        assert manager.is_force_exit is False
        assert manager.reason is None

    def test_explicit_window(self):
        assert SignalManager(double_tap_window=0.3).double_tap_window == 0.3


class TestSigint:
    """SIGINT 测试。"""

    def test_sigint_requests_shutdown(self):
        manager = _manager()

        manager._on_signal(ShutdownReason.SIGINT)

        assert manager.reason is ShutdownReason.SIGINT
        assert manager.is_force_exit is False
        assert manager._event.is_set()

    def test_double_tap_forces_exit(self):
        manager = _manager()

        with mock.patch("crew_mcp.signal_manager.time.monotonic", side_effect=[100.0, 100.4]):
            manager._on_signal(ShutdownReason.SIGINT)
            manager._on_signal(ShutdownReason.SIGINT)

        assert manager.is_force_exit is True

    def test_slow_second_sigint_is_not_forced(self):
        manager = _manager()

        with mock.patch("crew_mcp.signal_manager.time.monotonic", side_effect=[100.0, 105.0]):
            manager._on_signal(ShutdownReason.SIGINT)
            manager._on_signal(ShutdownReason.SIGINT)

        assert manager.is_shutdown_requested is True
        assert manager.is_force_exit is False

    def test_sigint_after_sigterm_within_window_is_not_forced(self):
        """只有连续两次 SIGINT 才算双击。"""
        manager = _manager()

        manager._on_signal(ShutdownReason.SIGTERM)
        manager._on_signal(ShutdownReason.SIGINT)

        assert manager.reason is ShutdownReason.SIGTERM
        assert manager.is_force_exit is False


class TestSigterm:
    """SIGTERM 测试。"""

    def test_sigterm_shuts_down(self):
        manager = _manager()

        manager._on_signal(ShutdownReason.SIGTERM)

        assert manager.reason is ShutdownReason.SIGTERM
        assert manager._event.is_set()


class TestCallbacks:
    """关闭回调测试。"""

    def test_on_shutdown_called_once(self):
        callback = mock.MagicMock()
        manager = _manager(callback)

        manager._on_signal(ShutdownReason.SIGINT)
        manager._on_signal(ShutdownReason.SIGTERM)
        manager.request_graceful_shutdown()

        callback.assert_called_once()

    def test_callback_error_does_not_block_shutdown(self):
        manager = _manager(mock.MagicMock(side_effect=RuntimeError("boom")))

        manager.request_graceful_shutdown()

        assert manager.reason is ShutdownReason.REQUESTED
        assert manager._event.is_set()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal handling")
class TestStartStop:
    """启动/停止测试（仅 POSIX）。"""

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        manager = SignalManager(double_tap_window=1.0)

        await manager.start()
        assert manager.is_running

        await manager.stop()
        assert not manager.is_running

    @pytest.mark.asyncio
    async def test_wait_for_shutdown(self):
        manager = SignalManager(double_tap_window=1.0)
        await manager.start()
        try:
            manager.request_graceful_shutdown()
            await asyncio.wait_for(manager.wait_for_shutdown(), 1)
        finally:
            await manager.stop()
