"""Utility 模块。

提供通用工具函数。
"""

from .prompt_builder import build_prompt_with_files, wrap_prompt_for_file_output

__all__ = [
    "build_prompt_with_files",
    "wrap_prompt_for_file_output",
]
