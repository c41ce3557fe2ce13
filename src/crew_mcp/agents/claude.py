"""Claude Agent 适配器 - 无状态。"""

from __future__ import annotations

from typing import Any

from .base import AgentAdapter

__all__ = ["ClaudeAdapter"]


class ClaudeAdapter(AgentAdapter):
    """Claude CLI 适配器 - 无状态。

    命令形式: claude -p --output-format text，prompt 通过 stdin 传递。
    """

    install_hint = "Claude CLI is not installed. Install it and make sure `claude` is on PATH."

    @property
    def agent(self) -> str:
        return "claude"

    def build_args(self, params: Any) -> list[str]:
        """构建 Claude CLI 参数。

        Args:
            params: ClaudeParams 实例

        Returns:
            命令行参数列表
        """
        # 硬编码：非交互模式 + 纯文本输出
        args = ["-p", "--output-format", "text"]

        if params.model:
            args.extend(["--model", params.model])

        for tool in params.allowed_tools:
            args.extend(["--allowedTools", tool])

        return args
