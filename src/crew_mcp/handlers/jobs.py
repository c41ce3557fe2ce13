"""后台 Job 工具处理器。

处理 wait_job, check_job, kill_job, list_jobs 工具调用。
所有结果都是 JSON 记录；非零退出、超时、被终止都是正常的状态，不是错误响应。
"""

from __future__ import annotations

import logging
from typing import Any

from mcp.types import TextContent

from ..jobs import DEFAULT_LIST_LIMIT, ListFilter
from ..shared.response_formatter import format_error_response, format_json_response
from ..tool_schema import JOB_TOOLS, LIST_STATUSES
from .base import ToolContext, ToolHandler

__all__ = ["JobToolHandler", "DEFAULT_WAIT_TIMEOUT_MS"]

logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT_MS = 300_000


def _non_negative_int(value: Any, default: int, name: str) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"'{name}' must be an integer, got {value!r}")
    if parsed < 0:
        raise ValueError(f"'{name}' must be >= 0, got {parsed}")
    return parsed


class JobToolHandler(ToolHandler):
    """Job 工具处理器（wait_job, check_job, kill_job, list_jobs）。"""

    def __init__(self, tool_name: str):
        if tool_name not in JOB_TOOLS:
            raise ValueError(f"Unknown job tool: {tool_name}")
        self._tool_name = tool_name

    @property
    def name(self) -> str:
        return self._tool_name

    def validate(self, arguments: dict[str, Any]) -> str | None:
        if self._tool_name == "list_jobs":
            return None
        job_id = arguments.get("job_id")
        if not job_id or not str(job_id).strip():
            return "Missing required argument: 'job_id'"
        return None

    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        """处理 Job 工具调用。"""
        try:
            if self._tool_name == "wait_job":
                return await self._wait(arguments, ctx)
            if self._tool_name == "check_job":
                return self._check(arguments, ctx)
            if self._tool_name == "kill_job":
                return self._kill(arguments, ctx)
            return self._list(arguments, ctx)
        except ValueError as e:
            return format_error_response(str(e))

    async def _wait(self, arguments: dict[str, Any], ctx: ToolContext) -> list[TextContent]:
        job_id = str(arguments["job_id"]).strip()
        timeout_ms = _non_negative_int(arguments.get("timeout_ms"), DEFAULT_WAIT_TIMEOUT_MS, "timeout_ms")

        result = await ctx.jobs.wait(job_id, timeout_ms / 1000.0)
        if result is None:
            return format_error_response(f"Job not found: {job_id}")
        return format_json_response(result)

    def _check(self, arguments: dict[str, Any], ctx: ToolContext) -> list[TextContent]:
        job_id = str(arguments["job_id"]).strip()
        info = ctx.jobs.get(job_id)
        if info is None:
            return format_error_response(f"Job not found: {job_id}")
        return format_json_response(info)

    def _kill(self, arguments: dict[str, Any], ctx: ToolContext) -> list[TextContent]:
        job_id = str(arguments["job_id"]).strip()
        info = ctx.jobs.kill(job_id)
        if info is None:
            return format_error_response(f"Job not found: {job_id}")
        return format_json_response(info)

    def _list(self, arguments: dict[str, Any], ctx: ToolContext) -> list[TextContent]:
        # status_filter 是 status 的别名
        raw = arguments.get("status") or arguments.get("status_filter") or "all"
        value = str(raw).lower().strip()
        if value not in LIST_STATUSES:
            raise ValueError(f"'status' must be one of {', '.join(LIST_STATUSES)}, got {raw!r}")
        status_filter = ListFilter(value)
        limit = _non_negative_int(arguments.get("limit"), DEFAULT_LIST_LIMIT, "limit")

        jobs = ctx.jobs.list(status_filter, limit)
        return format_json_response({
            "status": status_filter.value,
            "count": len(jobs),
            "jobs": [info.model_dump(mode="json", exclude_none=True) for info in jobs],
        })
