"""Tool Handlers 模块。

提供工具处理器抽象和具体实现。
"""

from .ask import AskHandler, build_params
from .base import ToolContext, ToolHandler
from .jobs import JobToolHandler

__all__ = [
    "ToolContext",
    "ToolHandler",
    "AskHandler",
    "JobToolHandler",
    "build_params",
]
