"""答案落盘测试。"""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

from crew_mcp.shared.exchange import (
    EXCHANGE_DIR,
    INLINE_THRESHOLD,
    file_signature,
    process_response,
    sanitize_for_file,
)


class TestSanitizeForFile:
    """代码围栏清理测试。"""

    def test_whole_fence(self):
        assert sanitize_for_file("```python\nprint('hi')\n```\n") == "print('hi')"

    def test_fence_with_chatter(self):
        text = "Sure:\n```css\nbody { margin: 0; }\n```\nHope this helps!"
        assert sanitize_for_file(text) == "body { margin: 0; }"

    def test_small_fence_in_prose_is_kept(self):
        text = "A long explanation of the change. " * 5 + "\n```\nx\n```\nMore prose follows here."
        assert sanitize_for_file(text) == text.strip()

    def test_plain_text(self):
        assert sanitize_for_file("  just text \n") == "just text"


class TestFileSignature:
    """文件状态记录测试。"""

    def test_missing_file(self, tmp_path: Path):
        assert file_signature(tmp_path / "nope") is None
        assert file_signature(None) is None

    def test_changes_when_file_is_touched(self, tmp_path: Path):
        target = tmp_path / "a.txt"
        target.write_text("v1", encoding="utf-8")
        before = file_signature(target)

        stat = target.stat()
        os.utime(target, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))

        assert file_signature(target) != before


class TestProcessResponse:
    """process_response 测试。"""

    def test_inline_threshold(self, tmp_path: Path):
        answer = "a" * INLINE_THRESHOLD
        result = process_response(answer, "codex", working_directory=tmp_path)

        assert result.text == answer
        assert result.saved_to is None
        assert not (tmp_path / EXCHANGE_DIR).exists()

    def test_auto_save(self, tmp_path: Path):
        answer = "b" * (INLINE_THRESHOLD + 1)
        result = process_response(answer, "codex", working_directory=tmp_path)

        assert result.saved_to.parent == tmp_path / EXCHANGE_DIR
        assert result.saved_to.name.startswith("codex-")
        assert result.saved_to.read_text(encoding="utf-8") == answer
        assert result.text.startswith(f"[codex] response saved to: {result.saved_to}\n")
        assert result.text.endswith("[...]")

    def test_unchanged_existing_file_is_overwritten(self, tmp_path: Path):
        target = tmp_path / "out.md"
        target.write_text("stale", encoding="utf-8")

        result = process_response(
            "fresh", "gemini", output_file=target, signature_before=file_signature(target),
        )

        assert target.read_text(encoding="utf-8") == "fresh"
        assert result.saved_to == target
        assert result.text == f"[gemini] response saved to: {target}\n(5 chars, 1 lines)\n\n--- preview ---\nfresh"

    def test_file_written_by_agent_wins(self, tmp_path: Path):
        target = tmp_path / "out.md"
        target.write_text("from agent", encoding="utf-8")

        result = process_response("chat reply", "gemini", output_file=target, signature_before=None)

        assert target.read_text(encoding="utf-8") == "from agent"
        assert "--- preview ---\nfrom agent" in result.text

    def test_output_file_creates_parents(self, tmp_path: Path):
        target = tmp_path / "deep" / "er" / "out.txt"
        process_response("content", "claude", output_file=target)
        assert target.read_text(encoding="utf-8") == "content"

    def test_write_failure_falls_back_to_inline(self, tmp_path: Path):
        answer = "c" * (INLINE_THRESHOLD + 10)
        with mock.patch("crew_mcp.shared.exchange.Path.write_text", side_effect=PermissionError("denied")):
            result = process_response(answer, "codex", working_directory=tmp_path)
            explicit = process_response("short", "codex", output_file=tmp_path / "x.md")

        assert result.text == answer
        assert result.saved_to is None
        assert explicit.text == "short"
        assert explicit.saved_to is None
