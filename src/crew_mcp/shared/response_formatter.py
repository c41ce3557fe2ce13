"""MCP 响应格式化器。

agent 答案使用 XML-wrapped Markdown 格式，对 LLM 友好；
Job 相关的结构化记录使用 JSON。

格式说明:
    - <answer>: 最终答案
    - <error>: 错误信息
    - <stderr>: 失败时附带的 stderr 片段
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from mcp.types import TextContent

__all__ = [
    "ResponseData",
    "ResponseFormatter",
    "get_formatter",
    "format_error_response",
    "format_json_response",
]

# 错误响应中附带的 stderr 最大长度
STDERR_EXCERPT_CHARS = 2000


@dataclass
class ResponseData:
    """响应数据。"""

    # 最终答案
    answer: str

    # 产生答案的 agent
    agent: str = ""

    # 是否成功
    success: bool = True

    # 错误信息
    error: str | None = None

    # 失败时的 stderr
    stderr: str = ""


class ResponseFormatter:
    """MCP 响应格式化器。

    Example:
        >>> formatter = ResponseFormatter()
        >>> formatter.format(ResponseData(answer="looks good", agent="codex"))
        '<response agent="codex">\\n  <answer>\\nlooks good\\n  </answer>\\n</response>'
    """

    def format(self, data: ResponseData) -> str:
        """格式化响应数据。

        Args:
            data: 响应数据

        Returns:
            XML-wrapped Markdown 格式的响应字符串
        """
        open_tag = f'<response agent="{data.agent}">' if data.agent else "<response>"
        parts = [open_tag]

        if not data.success:
            parts.append(f"  <error>{data.error or 'Unknown error'}</error>")
            if data.answer.strip():
                parts.append(f"  <partial_answer>{data.answer}</partial_answer>")
            if data.stderr.strip():
                parts.append(f"  <stderr>{data.stderr[-STDERR_EXCERPT_CHARS:]}</stderr>")
        else:
            parts.append(f"  <answer>\n{data.answer}\n  </answer>")

        parts.append("</response>")
        return "\n".join(parts)


# 全局实例
_formatter: ResponseFormatter | None = None


def get_formatter() -> ResponseFormatter:
    """获取全局格式化器实例。"""
    global _formatter
    if _formatter is None:
        _formatter = ResponseFormatter()
    return _formatter


def format_error_response(error: str) -> list[TextContent]:
    """统一的错误响应格式化函数。

    确保所有错误都以 <response><error>...</error></response> 格式返回。
    """
    from mcp.types import TextContent

    text = get_formatter().format(ResponseData(answer="", success=False, error=error))
    return [TextContent(type="text", text=text)]


def format_json_response(payload: BaseModel | list[BaseModel] | dict[str, Any]) -> list[TextContent]:
    """将结构化记录格式化为 JSON 文本响应。"""
    from mcp.types import TextContent

    if isinstance(payload, BaseModel):
        data: Any = payload.model_dump(mode="json", exclude_none=True)
    elif isinstance(payload, list):
        data = [item.model_dump(mode="json", exclude_none=True) for item in payload]
    else:
        data = payload
    return [TextContent(type="text", text=json.dumps(data, ensure_ascii=False, indent=2))]
