"""Crew MCP 应用入口。

服务器生命周期：
1. 创建唯一的 ProcessSpawner / JobRegistry，启动 Job 过期清理
2. stdio 上运行 MCP server，同时监听关闭信号
3. 退出时停止清理、终止所有 agent 子进程，双击 Ctrl+C 时以 130 退出
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys

from mcp.server.stdio import stdio_server

from .config import Config, get_config
from .jobs import JobRegistry
from .runtime import ProcessSpawner
from .server import create_server
from .signal_manager import SignalManager

__all__ = ["run_server", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FORCE_EXIT_CODE = 130  # 128 + SIGINT


async def run_server() -> None:
    """运行 MCP Server 直到 stdin 关闭或收到关闭信号。"""
    config = get_config()
    logger.info(f"Starting Crew MCP Server: {config}")

    spawner = ProcessSpawner(
        default_timeout=config.default_timeout,
        max_stdout=config.max_stdout,
    )
    jobs = JobRegistry(spawner.escalator, max_stdout=config.max_stdout)
    server = create_server(spawner, jobs, config)

    def on_shutdown() -> None:
        spawner.terminate_all()
        # stdio_server 阻塞在 stdin 读取上，关闭它才能让 server 退出
        try:
            sys.stdin.close()
        except OSError as e:
            logger.debug(f"Error closing stdin: {e}")

    signals = SignalManager(on_shutdown)

    async def serve_stdio() -> None:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
        logger.debug("stdio transport closed")

    await signals.start()
    jobs.start()
    server_task = asyncio.create_task(serve_stdio(), name="mcp-server")

    async def cancel_on_shutdown() -> None:
        await signals.wait_for_shutdown()
        if not server_task.done():
            logger.info("Cancelling MCP server task")
            server_task.cancel()

    watcher = asyncio.create_task(cancel_on_shutdown(), name="shutdown-watcher")

    try:
        await server_task
    except asyncio.CancelledError:
        if not signals.is_shutdown_requested:
            raise
        logger.info("MCP server task cancelled by shutdown")
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher
        await signals.stop()
        await jobs.stop()

        if signals.is_force_exit:
            # 不再等待宽限期，SIGKILL 计时器随事件循环一起消失
            spawner.terminate_all()
        else:
            await spawner.aclose()
        logger.info(f"Shutdown complete ({len(jobs)} job(s) discarded)")

    if signals.is_force_exit:
        logger.warning(f"Force exit, status {FORCE_EXIT_CODE}")
        sys.exit(FORCE_EXIT_CODE)


def configure_logging(config: Config) -> None:
    """配置日志。

    stdout 是 MCP 协议通道，日志只能写到 stderr，调试模式下写到临时文件。
    第三方库保持 WARNING，crew_mcp 命名空间单独提高级别。
    """
    if config.log_debug and config.log_file:
        handler: logging.Handler = logging.FileHandler(config.log_file, encoding="utf-8")
        level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        level = logging.INFO
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.basicConfig(level=logging.WARNING, handlers=[handler])
    logging.getLogger("crew_mcp").setLevel(level)


def main() -> None:
    """主入口点。"""
    configure_logging(get_config())
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
