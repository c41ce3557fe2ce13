"""Runtime 模块异常类。"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "RuntimeModuleError",
    "SpawnError",
]


class RuntimeModuleError(Exception):
    """Runtime 模块基础异常。"""
    pass


class SpawnError(RuntimeModuleError):
    """操作系统无法启动子进程（可执行文件不存在、工作目录无效等）。

    与非零退出码严格区分：只有进程根本没有启动时才抛出。

    Attributes:
        agent: 要启动的 agent 名称
        argv: 完整命令行
        cwd: 工作目录
        cause: 原始 OSError
    """

    def __init__(
        self,
        agent: str,
        argv: list[str],
        cwd: Path | None,
        cause: OSError,
    ) -> None:
        self.agent = agent
        self.argv = argv
        self.cwd = cwd
        self.cause = cause
        super().__init__(f"failed to spawn {agent}: {cause}")

    @property
    def missing_cwd(self) -> bool:
        """工作目录是否不存在。"""
        return self.cwd is not None and not self.cwd.is_dir()

    @property
    def missing_executable(self) -> bool:
        """是否因为找不到可执行文件而失败。"""
        return isinstance(self.cause, FileNotFoundError) and not self.missing_cwd
