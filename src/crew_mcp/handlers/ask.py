"""ask_* 工具处理器。

处理 ask_codex, ask_gemini, ask_claude 工具调用：
- 前台模式：阻塞直到 agent 退出或超时，返回解析后的答案（长答案或 output_file 落盘后只返回摘要）
- 后台模式：启动进程并登记为 Job，立即返回 job_id
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import anyio
from mcp.types import TextContent

from ..agents import (
    AgentAdapter,
    ClaudeParams,
    CodexParams,
    CommonParams,
    GeminiParams,
    get_adapter,
)
from ..runtime import SpawnError, SpawnResult
from ..shared.exchange import file_signature, process_response
from ..shared.output_parser import detect_model_error, detect_rate_limit
from ..shared.response_formatter import (
    ResponseData,
    format_error_response,
    format_json_response,
    get_formatter,
)
from ..tool_schema import ask_tool_name
from ..utils.prompt_builder import build_prompt_with_files
from .base import ToolContext, ToolHandler

__all__ = ["AskHandler", "build_params"]

logger = logging.getLogger(__name__)


def _string_list(value: Any) -> list[str]:
    """归一化为字符串列表（支持 None / 单个字符串 / 列表）。"""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def build_params(agent: str, args: dict[str, Any]) -> CommonParams:
    """构建 agent 参数对象。

    Raises:
        ValueError: 参数类型或取值不合法
    """
    timeout_ms = args.get("timeout_ms")
    common = {
        "prompt": args.get("prompt", ""),
        "model": args.get("model") or "",
        "files": _string_list(args.get("files")),
        "working_directory": args.get("working_directory") or None,
        "background": bool(args.get("background", False)),
        "timeout_ms": int(timeout_ms) if timeout_ms else None,
        "output_file": args.get("output_file") or None,
    }

    if agent == "codex":
        return CodexParams(
            **common,
            reasoning_effort=args.get("reasoning_effort") or None,
            writable=bool(args.get("writable", False)),
        )
    elif agent == "gemini":
        return GeminiParams(
            **common,
            directories=_string_list(args.get("directories")),
            approval_mode=args.get("approval_mode") or "auto_edit",
        )
    elif agent == "claude":
        return ClaudeParams(
            **common,
            allowed_tools=_string_list(args.get("allowed_tools")),
        )
    else:
        raise ValueError(f"Unknown agent: {agent}")


class AskHandler(ToolHandler):
    """ask_<agent> 工具处理器。"""

    def __init__(self, agent: str):
        """初始化 AskHandler。

        Args:
            agent: agent 类型（codex, gemini, claude）
        """
        self._agent = agent
        self._adapter: AgentAdapter = get_adapter(agent)

    @property
    def name(self) -> str:
        return ask_tool_name(self._agent)

    def validate(self, arguments: dict[str, Any]) -> str | None:
        prompt = arguments.get("prompt")
        if not prompt or not str(prompt).strip():
            return "Missing required argument: 'prompt'"
        return None

    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        """处理 ask_* 工具调用。"""
        try:
            params = build_params(self._agent, arguments)
            self._adapter.validate_params(params)
        except (ValueError, TypeError) as e:
            return format_error_response(str(e))

        prompt = build_prompt_with_files(params.prompt, params.files, params.working_directory)
        prompt = self._adapter.prepare_prompt(prompt, params)
        args = self._adapter.build_args(params)

        try:
            if params.background:
                return await self._start_background(params, args, prompt, ctx)
            return await self._run_foreground(params, args, prompt, ctx)

        except SpawnError as e:
            return format_error_response(self._spawn_error_message(e))

        except anyio.get_cancelled_exc_class() as e:
            logger.info(f"Tool '{self.name}' cancelled (type={type(e).__name__})")
            raise

        except asyncio.CancelledError:
            logger.info(f"Tool '{self.name}' cancelled via asyncio.CancelledError")
            raise

        except Exception as e:
            logger.error(f"Tool '{self.name}' error: {e}", exc_info=True)
            return format_error_response(str(e))

    async def _start_background(
        self,
        params: CommonParams,
        args: list[str],
        prompt: str,
        ctx: ToolContext,
    ) -> list[TextContent]:
        process = await ctx.spawner.run_background(
            self._agent,
            args,
            cwd=params.working_directory,
            stdin=prompt,
        )
        job = ctx.jobs.create(self._agent, process, prompt=params.prompt, model=params.model)

        return format_json_response({
            "status": "background_started",
            "job_id": job.id,
            "agent": self._agent,
            "message": (
                f"{self._agent} started in background. "
                f"Use check_job('{job.id}') or wait_job('{job.id}') to get the result."
            ),
        })

    async def _run_foreground(
        self,
        params: CommonParams,
        args: list[str],
        prompt: str,
        ctx: ToolContext,
    ) -> list[TextContent]:
        timeout = params.timeout_ms / 1000.0 if params.timeout_ms else None
        # agent 可能自己写 output_file，先记下启动前的状态
        signature_before = file_signature(params.output_file)
        result = await ctx.spawner.run_foreground(
            self._agent,
            args,
            cwd=params.working_directory,
            timeout=timeout,
            stdin=prompt,
        )

        response_data = self._interpret(result)
        logger.debug(
            f"[MCP] {self.name} finished: exit_code={result.exit_code}, "
            f"success={response_data.success}, stdout={len(result.stdout)} chars"
        )
        if response_data.success:
            exchanged = process_response(
                response_data.answer,
                self._agent,
                output_file=params.output_file,
                working_directory=params.working_directory,
                signature_before=signature_before,
            )
            response_data.answer = exchanged.text
        return [TextContent(type="text", text=get_formatter().format(response_data))]

    def _interpret(self, result: SpawnResult) -> ResponseData:
        """将 SpawnResult 转换为响应数据。"""
        agent = self._agent
        answer = self._adapter.parse_output(result.stdout)

        if result.timed_out:
            return ResponseData(
                answer=answer,
                agent=agent,
                success=False,
                error=f"{agent} timed out; partial output follows",
                stderr=result.stderr,
            )

        # 错误模式检测只针对失败的调用，避免把答案正文里的字样误判为错误
        if result.exit_code != 0 or not answer:
            if detect_rate_limit(result.stdout, result.stderr):
                return ResponseData(
                    answer="", agent=agent, success=False,
                    error=f"{agent} rate limit detected, retry later",
                    stderr=result.stderr,
                )
            if detect_model_error(result.stdout, result.stderr):
                return ResponseData(
                    answer="", agent=agent, success=False,
                    error=f"{agent} model error",
                    stderr=result.stderr or result.stdout,
                )

        if result.exit_code != 0:
            return ResponseData(
                answer=answer,
                agent=agent,
                success=False,
                error=f"{agent} CLI error (exit {result.exit_code})",
                stderr=result.stderr,
            )

        if not answer:
            return ResponseData(
                answer="",
                agent=agent,
                success=False,
                error=f"{agent} returned an empty response",
                stderr=result.stderr,
            )

        return ResponseData(answer=answer, agent=agent)

    def _spawn_error_message(self, error: SpawnError) -> str:
        if error.missing_cwd:
            return f"Working directory does not exist: {error.cwd}"
        if error.missing_executable:
            return self._adapter.install_hint or f"{self._agent} CLI not found"
        return f"Failed to start {self._agent} CLI: {error.cause}"
