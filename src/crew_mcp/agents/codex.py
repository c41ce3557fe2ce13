"""Codex Agent 适配器 - 无状态。"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from ..shared.output_parser import parse_codex_output
from ..utils.prompt_builder import wrap_prompt_for_file_output
from .base import AgentAdapter

__all__ = ["CodexAdapter"]


class CodexAdapter(AgentAdapter):
    """Codex CLI 适配器 - 无状态。

    命令形式: codex exec [options] --json -
    prompt 从 stdin 读取（末尾的 "-"）。
    """

    install_hint = "Codex CLI is not installed. Install it with `npm install -g @openai/codex`."

    @property
    def agent(self) -> str:
        return "codex"

    def build_args(self, params: Any) -> list[str]:
        """构建 Codex CLI 参数。

        Args:
            params: CodexParams 实例

        Returns:
            命令行参数列表
        """
        args = ["exec"]

        # 可选：模型
        if params.model:
            args.extend(["-m", params.model])

        # 工作目录
        if params.working_directory is not None:
            args.extend(["-C", str(params.working_directory)])

        # 沙箱：可写时 --full-auto，否则只读
        if params.writable:
            args.append("--full-auto")
            # output_file 在工作区之外时，额外授权其所在目录
            if params.output_file is not None:
                output_dir = params.output_file.parent
                workspace = params.working_directory or Path.cwd().resolve()
                if not output_dir.is_relative_to(workspace):
                    args.extend(["--add-dir", str(output_dir)])
        else:
            args.extend(["-s", "read-only"])

        # 硬编码参数
        args.append("--skip-git-repo-check")
        args.append("--json")

        # -o: Codex 把最后一条消息写入 output_file（与 --json 共存）
        if params.output_file is not None:
            args.extend(["-o", str(params.output_file)])

        # 可选：推理强度
        if params.reasoning_effort:
            effort = params.reasoning_effort.value if hasattr(params.reasoning_effort, "value") else str(params.reasoning_effort)
            args.extend(["-c", f'model_reasoning_effort="{effort}"'])

        # Prompt 通过 stdin 传递
        args.append("-")

        return args

    def parse_output(self, stdout: str) -> str:
        return parse_codex_output(stdout)

    def prepare_prompt(self, prompt: str, params: Any) -> str:
        # 只要求文本输出，由 -o 落盘；沙箱里让 Codex 自己写文件会失败
        if params.output_file is None:
            return prompt
        return wrap_prompt_for_file_output(prompt, params.output_file, agent_write=False)
