"""答案落盘与摘要。

长答案会占满调用方的上下文窗口，所以前台调用成功后：
- 指定 output_file：agent 已经自己写了文件就读取它，否则把答案（去掉代码围栏）写进去
- 答案超过 INLINE_THRESHOLD：自动保存到 <working_directory>/.aidocs/ted-crew/
- 其余情况：原样返回

落盘时只返回路径、大小和前 300 字符预览。写入失败不影响主响应，
记录警告后退回到直接返回答案。
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = [
    "ExchangeResult",
    "INLINE_THRESHOLD",
    "EXCHANGE_DIR",
    "build_summary",
    "file_signature",
    "process_response",
    "sanitize_for_file",
]

logger = logging.getLogger(__name__)

# 不超过该长度的答案直接返回
INLINE_THRESHOLD = 500

# 自动保存目录（相对 working_directory）
EXCHANGE_DIR = Path(".aidocs") / "ted-crew"

PREVIEW_CHARS = 300

_WHOLE_FENCE = re.compile(r"```\w*\s*\n(.*?)\n```\s*", re.DOTALL)
_INNER_FENCE = re.compile(r".*?```\w*\s*\n(.*?)\n```.*", re.DOTALL)


@dataclass
class ExchangeResult:
    """处理结果。"""

    # 返回给调用方的文本（摘要或原始答案）
    text: str

    # 保存路径，未落盘时为 None
    saved_to: Path | None = None


def file_signature(path: Path | None) -> tuple[int, int] | None:
    """记录文件的 (mtime_ns, ctime_ns)，文件不存在返回 None。

    在启动 agent 之前调用，之后对比即可判断 agent 是否写过该文件。
    """
    if path is None:
        return None
    try:
        st = path.stat()
    except OSError:
        return None
    return (st.st_mtime_ns, st.st_ctime_ns)


def sanitize_for_file(response: str) -> str:
    """去掉包裹文件内容的 Markdown 代码围栏和前后的寒暄。"""
    text = response.strip()

    match = _WHOLE_FENCE.fullmatch(text)
    if match:
        return match.group(1).strip()

    # 围栏前后有说明文字时，只有围栏内容占主体才提取
    match = _INNER_FENCE.fullmatch(text)
    if match and len(match.group(1)) > len(text) * 0.3:
        return match.group(1).strip()

    return text


def _agent_wrote(path: Path, before: tuple[int, int] | None) -> bool:
    after = file_signature(path)
    return after is not None and after != before


def _auto_save_path(agent: str, working_directory: Path | None) -> Path:
    base = working_directory if working_directory is not None else Path.cwd()
    stamp = datetime.now().strftime("%Y%m%d-%H%M")
    return base / EXCHANGE_DIR / f"{agent}-{stamp}-{secrets.token_hex(3)}.md"


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def build_summary(content: str, agent: str, path: Path) -> str:
    """生成落盘摘要：路径、字符数、行数和预览。"""
    preview = content[:PREVIEW_CHARS].strip()
    line_count = content.count("\n") + 1
    lines = [
        f"[{agent}] response saved to: {path}",
        f"({len(content)} chars, {line_count} lines)",
        "",
        "--- preview ---",
        preview,
    ]
    if len(preview) < len(content):
        lines.append("[...]")
    return "\n".join(lines)


def process_response(
    response: str,
    agent: str,
    *,
    output_file: Path | None = None,
    working_directory: Path | None = None,
    signature_before: tuple[int, int] | None = None,
) -> ExchangeResult:
    """处理前台调用的答案。

    Args:
        response: 解析后的答案文本
        agent: agent 名称（用于摘要和自动保存的文件名）
        output_file: 调用方指定的输出文件（已解析为绝对路径）
        working_directory: 自动保存的基准目录（None 表示当前目录）
        signature_before: 启动 agent 之前 output_file 的 file_signature()

    Returns:
        ExchangeResult
    """
    if output_file is not None:
        if _agent_wrote(output_file, signature_before):
            try:
                content = output_file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Failed to read agent output {output_file}: {e}")
            else:
                logger.info(f"{agent} wrote {output_file} itself")
                return ExchangeResult(build_summary(content, agent, output_file), output_file)

        content = sanitize_for_file(response)
        try:
            _write(output_file, content)
        except OSError as e:
            logger.warning(f"Failed to save output to {output_file}: {e}")
            return ExchangeResult(response)
        logger.info(f"Saved output to: {output_file}")
        return ExchangeResult(build_summary(content, agent, output_file), output_file)

    if len(response) <= INLINE_THRESHOLD:
        return ExchangeResult(response)

    path = _auto_save_path(agent, working_directory)
    try:
        _write(path, response)
    except OSError as e:
        logger.warning(f"Failed to save output to {path}: {e}")
        return ExchangeResult(response)
    logger.info(f"Saved {len(response)} chars to: {path}")
    return ExchangeResult(build_summary(response, agent, path), path)
