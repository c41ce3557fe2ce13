"""Crew MCP Server。

把 Codex、Gemini、Claude 三个 CLI 暴露为 MCP 工具，并提供后台 Job 管理工具。

环境变量:
    CREW_PROVIDER: 调用方 agent，其 ask_* 工具会被隐藏（默认 claude）
    CREW_TIMEOUT_MS: 前台默认超时（默认 300000）
    CREW_MAX_STDOUT: stdout 缓冲区上限（默认 10 MiB）

用法:
    uvx crew-mcp
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool

from .agents import AgentType
from .config import Config, get_config
from .handlers import AskHandler, JobToolHandler, ToolContext, ToolHandler
from .jobs import JobRegistry
from .runtime import ProcessSpawner
from .shared.response_formatter import format_error_response
from .tool_schema import JOB_TOOLS, agent_from_tool_name, ask_tool_name

__all__ = ["create_server", "build_handlers"]

logger = logging.getLogger(__name__)


def build_handlers(config: Config) -> dict[str, ToolHandler]:
    """按配置构建可见的工具处理器（调用方自己的 ask_* 工具被隐藏）。"""
    handlers: dict[str, ToolHandler] = {}
    for agent in AgentType:
        if config.is_agent_allowed(agent.value):
            handlers[ask_tool_name(agent.value)] = AskHandler(agent.value)
    for tool_name in JOB_TOOLS:
        handlers[tool_name] = JobToolHandler(tool_name)
    return handlers


def create_server(
    spawner: ProcessSpawner,
    jobs: JobRegistry,
    config: Config | None = None,
) -> Server:
    """创建 MCP Server 实例。

    Args:
        spawner: 进程启动器
        jobs: 后台 Job 注册表
        config: 配置（默认读取全局配置）
    """
    config = config or get_config()
    server = Server("crew-mcp")
    handlers = build_handlers(config)
    tool_ctx = ToolContext(config=config, spawner=spawner, jobs=jobs)

    logger.info(
        f"Provider: {config.provider}, hidden tools: "
        f"{sorted(ask_tool_name(a) for a in config.hidden_agents)}"
    )

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """列出可用工具。"""
        tools = [
            Tool(
                name=handler.name,
                description=handler.description,
                inputSchema=handler.input_schema,
            )
            for handler in handlers.values()
        ]
        logger.debug(
            f"[MCP] list_tools called, returning {len(tools)} tools: "
            f"{[t.name for t in tools]}"
        )
        return tools

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        """调用工具。"""
        arguments = arguments or {}
        logger.debug(
            f"[MCP] call_tool request:\n"
            f"  Tool: {name}\n"
            f"  Arguments: {json.dumps({k: v[:100] + '...' if isinstance(v, str) and len(v) > 100 else v for k, v in arguments.items()}, ensure_ascii=False, default=str)}"
        )

        handler = handlers.get(name)
        if handler is None:
            agent = agent_from_tool_name(name)
            if agent is not None:
                return format_error_response(f"Tool '{name}' is not available to provider '{config.provider}'")
            return format_error_response(f"Unknown tool '{name}'")

        try:
            return await handler(arguments, tool_ctx)

        except asyncio.CancelledError:
            logger.info(f"Tool '{name}' cancelled")
            raise

        except Exception as e:
            logger.error(f"Tool '{name}' failed: type={type(e).__name__}, msg={e}", exc_info=True)
            return format_error_response(str(e))

    return server
