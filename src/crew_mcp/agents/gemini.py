"""Gemini Agent 适配器 - 无状态。"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from ..utils.prompt_builder import wrap_prompt_for_file_output
from .base import AgentAdapter
from .types import ApprovalMode

__all__ = ["GeminiAdapter"]


class GeminiAdapter(AgentAdapter):
    """Gemini CLI 适配器 - 无状态。

    `-p ""` 触发 headless 模式，实际 prompt 通过 stdin 传递。
    """

    install_hint = "Gemini CLI is not installed. Install it with `npm install -g @google/gemini-cli`."

    @property
    def agent(self) -> str:
        return "gemini"

    def build_args(self, params: Any) -> list[str]:
        """构建 Gemini CLI 参数。

        Args:
            params: GeminiParams 实例

        Returns:
            命令行参数列表
        """
        # 统一使用 --approval-mode（--yolo 短参数可能被管理员策略禁用）
        mode = params.approval_mode or ApprovalMode.AUTO_EDIT
        mode_value = mode.value if hasattr(mode, "value") else str(mode)
        args = ["--approval-mode", mode_value, "-p", ""]

        if params.model:
            args.extend(["-m", params.model])

        for directory in params.directories:
            args.extend(["--include-directories", str(Path(directory).expanduser().resolve())])

        return args

    def prepare_prompt(self, prompt: str, params: Any) -> str:
        if params.output_file is None:
            return prompt
        # plan 模式不能写文件，只要求文本输出
        agent_write = params.approval_mode in (ApprovalMode.YOLO, ApprovalMode.AUTO_EDIT)
        return wrap_prompt_for_file_output(prompt, params.output_file, agent_write=agent_write)
