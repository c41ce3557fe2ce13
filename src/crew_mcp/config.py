"""CREW 环境变量配置管理。

环境变量:
    CREW_PROVIDER: 调用方 agent（claude/gemini/codex）
        - 默认 claude
        - 调用方自己的 ask_* 工具会被隐藏，防止自己调用自己造成死循环

    CREW_TIMEOUT_MS: 前台调用的默认超时（毫秒）
        - 默认 300000（5 分钟）
        - 无法解析或非正数时使用默认值

    CREW_MAX_STDOUT: stdout 缓冲区上限（字节）
        - 默认 10485760（10 MiB）
        - 无法解析或非正数时使用默认值

    CREW_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (DEBUG 日志输出到临时文件)
        - false/0/no = 关闭 (默认，INFO 日志输出到 stderr)

    CREW_SIGINT_DOUBLE_TAP_WINDOW: 双击退出窗口时间（秒）
        - 默认 1.0 秒
        - 在此时间窗口内第二次 Ctrl+C 将强制退出
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .agents import SUPPORTED_AGENTS
from .runtime.spawner import DEFAULT_MAX_STDOUT, DEFAULT_TIMEOUT

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_PROVIDER = "claude"
DEFAULT_TIMEOUT_MS = int(DEFAULT_TIMEOUT * 1000)


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_positive_int(value: str | None, default: int) -> int:
    """解析正整数环境变量，失败时返回默认值。"""
    if not value:
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_provider(value: str | None) -> str:
    """解析调用方 agent，无效值返回默认值。"""
    if not value:
        return DEFAULT_PROVIDER
    provider = value.strip().lower()
    return provider if provider in SUPPORTED_AGENTS else DEFAULT_PROVIDER


def _parse_double_tap_window(value: str | None) -> float:
    """解析双击窗口时间环境变量。"""
    if not value:
        return 1.0
    try:
        window = float(value)
        return max(0.1, min(window, 10.0))  # 限制在 0.1-10 秒范围
    except ValueError:
        return 1.0


@dataclass
class Config:
    """CREW 配置。

    Attributes:
        provider: 调用方 agent
        timeout_ms: 前台默认超时（毫秒）
        max_stdout: stdout 缓冲区上限（字节）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        sigint_double_tap_window: 双击退出窗口时间（秒）
    """

    provider: str = DEFAULT_PROVIDER
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_stdout: int = DEFAULT_MAX_STDOUT
    log_debug: bool = False
    log_file: str | None = None
    sigint_double_tap_window: float = 1.0

    @property
    def default_timeout(self) -> float:
        """前台默认超时（秒）。"""
        return self.timeout_ms / 1000.0

    @property
    def hidden_agents(self) -> set[str]:
        """需要隐藏的 agent（调用方自己）。"""
        return {self.provider}

    def is_agent_allowed(self, agent: str) -> bool:
        """检查 ask_<agent> 工具是否对调用方可见。"""
        agent = agent.lower()
        return agent in SUPPORTED_AGENTS and agent not in self.hidden_agents

    def __repr__(self) -> str:
        return (
            f"Config(provider={self.provider}, "
            f"timeout_ms={self.timeout_ms}, "
            f"max_stdout={self.max_stdout}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "crew-mcp"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"crew_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("CREW_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        provider=_parse_provider(os.environ.get("CREW_PROVIDER")),
        timeout_ms=_parse_positive_int(os.environ.get("CREW_TIMEOUT_MS"), DEFAULT_TIMEOUT_MS),
        max_stdout=_parse_positive_int(os.environ.get("CREW_MAX_STDOUT"), DEFAULT_MAX_STDOUT),
        log_debug=log_debug,
        log_file=log_file,
        sigint_double_tap_window=_parse_double_tap_window(
            os.environ.get("CREW_SIGINT_DOUBLE_TAP_WINDOW")
        ),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
