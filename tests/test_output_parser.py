"""输出解析与响应格式化测试。"""

from __future__ import annotations

import json

from crew_mcp.jobs import JobInfo, JobStatus
from crew_mcp.shared import (
    ResponseData,
    ResponseFormatter,
    detect_model_error,
    detect_rate_limit,
    format_error_response,
    format_json_response,
    parse_codex_output,
)
from crew_mcp.utils import build_prompt_with_files, wrap_prompt_for_file_output


class TestParseCodexOutput:
    """Codex JSONL 解析测试。"""

    def test_agent_messages_joined_in_order(self):
        stdout = "\n".join([
            json.dumps({"type": "thread.started", "thread_id": "t1"}),
            json.dumps({"type": "item.completed", "item": {"type": "reasoning", "text": "thinking"}}),
            json.dumps({"type": "item.completed", "item": {"type": "agent_message", "text": "first"}}),
            json.dumps({"type": "item.completed", "item": {"type": "agent_message", "text": "second"}}),
        ])
        assert parse_codex_output(stdout) == "first\nsecond"

    def test_output_text_event(self):
        assert parse_codex_output('{"type":"output_text","text":"hi"}') == "hi"

    def test_message_content_parts(self):
        event = {
            "type": "message",
            "content": [
                {"type": "text", "text": "a"},
                {"type": "image", "url": "x"},
                {"type": "text", "text": "b"},
            ],
        }
        assert parse_codex_output(json.dumps(event)) == "a\nb"

    def test_non_json_lines_ignored(self):
        stdout = 'warning: something\n{"type":"output_text","text":"ok"}\n'
        assert parse_codex_output(stdout) == "ok"

    def test_fallback_to_raw_output(self):
        assert parse_codex_output("  plain answer  \n") == "plain answer"

    def test_empty(self):
        assert parse_codex_output("") == ""
        assert parse_codex_output("   \n") == ""


class TestErrorDetection:
    """错误模式检测测试。"""

    def test_rate_limit(self):
        assert detect_rate_limit("", "Error: 429 Too Many Requests")
        assert detect_rate_limit("Rate limit reached", "")
        assert detect_rate_limit("", "quota exceeded for today")
        assert not detect_rate_limit("all good", "")

    def test_model_error(self):
        assert detect_model_error("", "model not found: gpt-9")
        assert detect_model_error("Invalid model specified", "")
        assert not detect_model_error("done", "")


class TestResponseFormatter:
    """响应格式化测试。"""

    def test_success(self):
        text = ResponseFormatter().format(ResponseData(answer="looks good", agent="codex"))
        assert text == '<response agent="codex">\n  <answer>\nlooks good\n  </answer>\n</response>'

    def test_error_with_partial_answer_and_stderr(self):
        text = ResponseFormatter().format(ResponseData(
            answer="half",
            agent="gemini",
            success=False,
            error="gemini timed out",
            stderr="x" * 3000 + "tail",
        ))
        assert "<error>gemini timed out</error>" in text
        assert "<partial_answer>half</partial_answer>" in text
        stderr = text.split("<stderr>")[1].split("</stderr>")[0]
        assert len(stderr) == 2000
        assert stderr.endswith("tail")

    def test_error_response(self):
        [content] = format_error_response("boom")
        assert content.type == "text"
        assert content.text == "<response>\n  <error>boom</error>\n</response>"

    def test_json_response_from_model(self):
        info = JobInfo(
            id="job_0001",
            agent="codex",
            status=JobStatus.RUNNING,
            pid=42,
            prompt="p",
            started_at="2026-01-01T12:00:00",
        )
        [content] = format_json_response(info)
        data = json.loads(content.text)
        assert data == {
            "id": "job_0001",
            "agent": "codex",
            "status": "running",
            "pid": 42,
            "prompt": "p",
            "started_at": "2026-01-01T12:00:00",
        }

    def test_json_response_from_dict(self):
        [content] = format_json_response({"status": "ok", "text": "中文"})
        assert "中文" in content.text
        assert json.loads(content.text) == {"status": "ok", "text": "中文"}


class TestPromptBuilder:
    """文件内容注入测试。"""

    def test_no_files(self):
        assert build_prompt_with_files("do it", []) == "do it"
        assert build_prompt_with_files("do it", None) == "do it"

    def test_injects_relative_files(self, tmp_path):
        (tmp_path / "a.py").write_text("print('a')\n", encoding="utf-8")
        prompt = build_prompt_with_files("review", ["a.py"], tmp_path)

        assert prompt.startswith("Refer to the following files:\n\n--- a.py ---\nprint('a')\n")
        assert prompt.endswith("\n\nreview")

    def test_unreadable_file_reported_inline(self, tmp_path):
        prompt = build_prompt_with_files("review", ["missing.txt"], tmp_path)
        assert "--- missing.txt ---\n[Error reading file:" in prompt
        assert prompt.endswith("review")


class TestWrapPromptForFileOutput:
    """output_file 输出约束测试。"""

    def test_agent_write(self, tmp_path):
        target = tmp_path / "page.html"
        wrapped = wrap_prompt_for_file_output("a landing page", target, agent_write=True)

        assert f'create the file "{target}"' in wrapped
        assert "\n\na landing page\n\n" in wrapped
        assert wrapped.endswith(f'Only write "{target}". Start now.')

    def test_text_only(self, tmp_path):
        wrapped = wrap_prompt_for_file_output("a landing page", tmp_path / "page.HTML", agent_write=False)

        assert wrapped.startswith("Produce the contents of a .html file.")
        assert "no Markdown code fences" in wrapped
        assert wrapped.endswith("\n\na landing page")
