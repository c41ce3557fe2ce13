"""Prompt 构建工具函数。

提供文件内容注入和 output_file 输出约束。
"""

from __future__ import annotations

from pathlib import Path

__all__ = ["build_prompt_with_files", "wrap_prompt_for_file_output"]


def _resolve(path: str, base: Path | None) -> Path:
    resolved = Path(path).expanduser()
    if not resolved.is_absolute() and base is not None:
        resolved = base / resolved
    return resolved.resolve()


def build_prompt_with_files(
    prompt: str,
    files: list[str] | None,
    base_dir: Path | None = None,
) -> str:
    """将文件内容注入到 prompt 前面。

    读取失败的文件不会中断调用，而是把错误信息写入对应的位置。

    Args:
        prompt: 原始 prompt
        files: 文件路径列表（相对路径以 base_dir 为基准）
        base_dir: 相对路径的基准目录

    Returns:
        注入后的 prompt
    """
    if not files:
        return prompt

    sections = []
    for name in files:
        try:
            content = _resolve(name, base_dir).read_text(encoding="utf-8")
            sections.append(f"--- {name} ---\n{content}\n---")
        except (OSError, UnicodeDecodeError) as e:
            sections.append(f"--- {name} ---\n[Error reading file: {e}]\n---")

    file_block = "\n\n".join(sections)
    return f"Refer to the following files:\n\n{file_block}\n\n{prompt}"


def wrap_prompt_for_file_output(prompt: str, output_file: Path, agent_write: bool) -> str:
    """为 output_file 调用加上输出约束。

    Args:
        prompt: 已注入文件内容的 prompt
        output_file: 目标文件
        agent_write: True 时让 agent 自己创建文件（可写模式）；
            False 时只要求输出纯文件内容，由服务器负责保存

    Returns:
        包装后的 prompt
    """
    if agent_write:
        return "\n".join([
            "Do the following task right away without reading any other files:",
            f'create the file "{output_file}" with the requirements below.',
            "",
            prompt,
            "",
            f'Important: do not read other files. Only write "{output_file}". Start now.',
        ])

    ext = output_file.suffix.lstrip(".").lower()
    return "\n".join([
        f"Produce the contents of a .{ext} file. Output the raw file contents only:",
        "- no Markdown code fences (```)",
        "- no explanations, greetings or conversation",
        "- start and end with the file contents",
        "",
        prompt,
    ])
