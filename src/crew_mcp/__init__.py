"""Crew MCP - 把 Codex / Gemini / Claude CLI 组成互相协作的 MCP 工具集。

环境变量:
    CREW_PROVIDER: 调用方 agent（默认 claude）
    CREW_TIMEOUT_MS: 前台默认超时（默认 300000）
    CREW_MAX_STDOUT: stdout 缓冲区上限（默认 10 MiB）
    CREW_LOG_DEBUG: 日志调试模式（默认 false）

用法:
    uvx crew-mcp
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
