"""Agent Adapter 基类 - 无状态适配器。

设计原则：
- AgentAdapter 是无状态的，只负责：
  1. 参数 -> 命令行参数映射
  2. 从 stdout 中抽取答案文本
  3. 指定 output_file 时对 prompt 加输出约束
- 进程的启动、超时和终止由 runtime.ProcessSpawner 负责
- prompt 一律通过 stdin 传递，避免命令行长度限制
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

__all__ = ["AgentAdapter"]


class AgentAdapter(ABC):
    """Agent 适配器基类 - 无状态。

    子类需要实现：
    - agent: agent 标识
    - build_args(): 构建命令行参数（不含可执行文件本身）

    特点：
    - 完全无状态，可以安全地在多个请求间共享
    """

    # 安装提示（可执行文件不存在时返回给调用方）
    install_hint: str = ""

    @property
    @abstractmethod
    def agent(self) -> str:
        """返回 agent 标识（如 'codex', 'gemini', 'claude'）。"""
        ...

    @abstractmethod
    def build_args(self, params: Any) -> list[str]:
        """构建 CLI 命令行参数。

        Args:
            params: 调用参数（CommonParams 的子类）

        Returns:
            命令行参数列表
        """
        ...

    def parse_output(self, stdout: str) -> str:
        """从 stdout 中抽取答案文本。默认原样返回（去除首尾空白）。"""
        return stdout.strip()

    def prepare_prompt(self, prompt: str, params: Any) -> str:
        """按 output_file 调整 prompt。默认不做处理，答案由服务器保存。"""
        return prompt

    def validate_params(self, params: Any) -> None:
        """验证参数合法性。

        Args:
            params: 调用参数

        Raises:
            ValueError: 参数不合法时抛出
        """
        if not params.prompt or not params.prompt.strip():
            raise ValueError("prompt is required")
        workspace = params.working_directory
        if workspace is not None:
            workspace = Path(workspace)
            if not workspace.exists():
                raise ValueError(f"working_directory does not exist: {workspace}")
            if not workspace.is_dir():
                raise ValueError(f"working_directory is not a directory: {workspace}")
