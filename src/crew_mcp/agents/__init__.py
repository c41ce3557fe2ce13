"""Agent 适配器模块。

提供无状态的 CLI 适配器。

用法：
    from crew_mcp.agents import get_adapter, CodexParams

    adapter = get_adapter("codex")
    params = CodexParams(prompt="review this diff", writable=False)
    args = adapter.build_args(params)
    ...
    answer = adapter.parse_output(result.stdout)
"""

from __future__ import annotations

from .base import AgentAdapter
from .claude import ClaudeAdapter
from .codex import CodexAdapter
from .gemini import GeminiAdapter
from .types import (
    AgentType,
    ApprovalMode,
    ClaudeParams,
    CodexParams,
    CommonParams,
    GeminiParams,
    ReasoningEffort,
)

__all__ = [
    # 基类
    "AgentAdapter",
    # 具体适配器
    "CodexAdapter",
    "GeminiAdapter",
    "ClaudeAdapter",
    # 参数类型
    "AgentType",
    "ApprovalMode",
    "ReasoningEffort",
    "CommonParams",
    "CodexParams",
    "GeminiParams",
    "ClaudeParams",
    # 工厂函数
    "SUPPORTED_AGENTS",
    "create_adapter",
    "get_adapter",
]

SUPPORTED_AGENTS = frozenset(agent.value for agent in AgentType)

# 适配器单例缓存（适配器是无状态的，可以安全缓存）
_ADAPTER_CACHE: dict[str, AgentAdapter] = {}


def create_adapter(agent: str) -> AgentAdapter:
    """创建 agent 适配器实例。

    Args:
        agent: agent 类型（codex, gemini, claude）

    Returns:
        对应的适配器实例

    Raises:
        ValueError: 不支持的 agent 类型
    """
    agent = agent.lower()

    if agent == "codex":
        return CodexAdapter()
    elif agent == "gemini":
        return GeminiAdapter()
    elif agent == "claude":
        return ClaudeAdapter()
    else:
        raise ValueError(f"Unsupported agent: {agent}")


def get_adapter(agent: str) -> AgentAdapter:
    """获取 agent 适配器实例（带缓存）。"""
    agent = agent.lower()
    if agent not in _ADAPTER_CACHE:
        _ADAPTER_CACHE[agent] = create_adapter(agent)
    return _ADAPTER_CACHE[agent]
