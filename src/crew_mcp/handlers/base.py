"""Tool Handler 基础抽象。

每个 MCP 工具对应一个 ToolHandler；调用入口是 ``await handler(arguments, ctx)``，
先做参数校验，校验失败直接返回错误响应，不会进入 handle()。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from mcp.types import TextContent

from ..shared.response_formatter import format_error_response
from ..tool_schema import TOOL_DESCRIPTIONS, create_tool_schema

if TYPE_CHECKING:
    from ..config import Config
    from ..jobs import JobRegistry
    from ..runtime import ProcessSpawner

__all__ = [
    "ToolContext",
    "ToolHandler",
]


@dataclass(frozen=True)
class ToolContext:
    """服务器级共享对象（每个进程一份）。"""

    config: "Config"
    spawner: "ProcessSpawner"
    jobs: "JobRegistry"


class ToolHandler(ABC):
    """工具处理器基类。"""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    def description(self) -> str:
        return TOOL_DESCRIPTIONS.get(self.name, "")

    @property
    def input_schema(self) -> dict[str, Any]:
        return create_tool_schema(self.name)

    def validate(self, arguments: dict[str, Any]) -> str | None:
        """返回错误消息；校验通过返回 None。"""
        return None

    async def __call__(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        error = self.validate(arguments)
        if error:
            return format_error_response(error)
        return await self.handle(arguments, ctx)

    @abstractmethod
    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        """执行工具（参数已通过 validate）。"""
        ...
