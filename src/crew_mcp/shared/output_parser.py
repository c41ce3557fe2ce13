"""Agent 输出解析。

从 agent 的 stdout 中抽取答案文本，并检测常见的错误输出。

- Codex: `codex exec --json` 输出 JSONL 事件流，答案在 agent_message 等事件中
- Gemini / Claude: 以纯文本模式运行，直接使用 stdout
"""

from __future__ import annotations

import json
import re
from typing import Any

__all__ = [
    "parse_codex_output",
    "detect_rate_limit",
    "detect_model_error",
]

_RATE_LIMIT_RE = re.compile(r"429|rate.?limit|quota.?exceeded|too.?many.?requests")
_MODEL_ERROR_RE = re.compile(r"model.?not.?found|not.?supported|invalid.?model|unknown.?model")


def _extract_event_text(event: dict[str, Any]) -> list[str]:
    """从单个 Codex 事件中提取文本片段。"""
    event_type = event.get("type")

    if event_type == "item.completed":
        item = event.get("item")
        if isinstance(item, dict) and item.get("type") == "agent_message" and isinstance(item.get("text"), str):
            return [item["text"]]

    if event_type == "output_text" and isinstance(event.get("text"), str):
        return [event["text"]]

    if event_type == "message":
        content = event.get("content")
        if isinstance(content, str):
            return [content]
        if isinstance(content, list):
            return [
                part["text"]
                for part in content
                if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str)
            ]

    # 兜底：常见的文本字段
    for key in ("message", "text", "content", "response"):
        value = event.get(key)
        if isinstance(value, str):
            return [value]

    return []


def parse_codex_output(stdout: str) -> str:
    """解析 Codex JSONL 输出。

    Args:
        stdout: codex exec --json 的完整 stdout

    Returns:
        按顺序拼接的消息文本；没有可识别的事件时返回原始输出
    """
    trimmed = stdout.strip()
    if not trimmed:
        return ""

    messages: list[str] = []
    for line in trimmed.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            # 非 JSON 行忽略
            continue
        if isinstance(event, dict):
            messages.extend(_extract_event_text(event))

    return "\n".join(messages) if messages else trimmed


def detect_rate_limit(stdout: str, stderr: str) -> bool:
    """检测 rate limit / 配额错误。"""
    return bool(_RATE_LIMIT_RE.search(f"{stdout} {stderr}".lower()))


def detect_model_error(stdout: str, stderr: str) -> bool:
    """检测模型不存在 / 不支持错误。"""
    return bool(_MODEL_ERROR_RE.search(f"{stdout} {stderr}".lower()))
