"""Tool Schema 定义。

包含工具描述、参数 schema 和 schema 创建函数。
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "ASK_TOOLS",
    "JOB_TOOLS",
    "LIST_STATUSES",
    "TOOL_DESCRIPTIONS",
    "ask_tool_name",
    "agent_from_tool_name",
    "create_tool_schema",
]

# ask_<agent> 工具
ASK_TOOLS = {"ask_codex": "codex", "ask_gemini": "gemini", "ask_claude": "claude"}

# 后台 Job 工具
JOB_TOOLS = ("wait_job", "check_job", "kill_job", "list_jobs")

# list_jobs 的状态过滤值
LIST_STATUSES = ["active", "completed", "failed", "all"]

_USAGE_NOTE = """

BACKGROUND MODE:
- background=true returns a job_id immediately.
- Use check_job (non-blocking), wait_job (blocking with timeout) or kill_job.
- Finished jobs are kept for 1 hour.

OUTPUT:
- Answers over 500 characters are saved under .aidocs/ted-crew/ in working_directory;
  only the path, size and a preview are returned.
- output_file saves the answer to that file instead."""

# 工具描述
TOOL_DESCRIPTIONS = {
    "ask_codex": """Delegate a task to the OpenAI Codex CLI.

CAPABILITIES:
- Deep analysis, critical code review, finding edge cases and bugs
- Control behaviour with model and reasoning_effort

PERMISSIONS:
- writable=false (default): read-only sandbox, analysis and opinions only
- writable=true: Codex may modify files in working_directory""" + _USAGE_NOTE,

    "ask_gemini": """Delegate a task to the Google Gemini CLI.

CAPABILITIES:
- 1M token context: large codebases, documents, research
- Design, writing and comprehensive analysis
- files injects file contents into the prompt; directories lets Gemini scan them itself""" + _USAGE_NOTE,

    "ask_claude": """Delegate a task to the Claude CLI.

CAPABILITIES:
- Code generation, refactoring, debugging and test writing
- allowed_tools restricts which tools Claude may use""" + _USAGE_NOTE,

    "wait_job": """Wait for a background job to finish and return its full stdout/stderr.

If the job is still running when timeout_ms elapses, the current snapshot is
returned with a note; the job keeps running.""",

    "check_job": """Non-blocking status check of a background job, with the first 500
characters of stdout as a preview.""",

    "kill_job": """Kill a running background job (SIGTERM, then SIGKILL after 3s).
The job is reported as 'killed' immediately. Killing a finished job is a no-op.""",

    "list_jobs": """List background jobs, newest first.""",
}

# 公共参数 schema
_COMMON_ASK_PROPERTIES: dict[str, Any] = {
    "prompt": {
        "type": "string",
        "description": "Task instruction for the agent.",
    },
    "model": {
        "type": "string",
        "description": "Model override (default: the CLI's own default).",
    },
    "files": {
        "type": "array",
        "items": {"type": "string"},
        "description": "Files whose contents are injected into the prompt.",
    },
    "working_directory": {
        "type": "string",
        "description": "Working directory for the agent (default: server cwd).",
    },
    "background": {
        "type": "boolean",
        "default": False,
        "description": "Run as a background job and return a job_id immediately.",
    },
    "timeout_ms": {
        "type": "integer",
        "minimum": 1,
        "description": "Foreground timeout in milliseconds (default: 300000).",
    },
    "output_file": {
        "type": "string",
        "description": (
            "Save the answer to this file and return only a summary with a preview. "
            "Relative paths are resolved against working_directory."
        ),
    },
}

_AGENT_PROPERTIES: dict[str, dict[str, Any]] = {
    "codex": {
        "reasoning_effort": {
            "type": "string",
            "enum": ["minimal", "low", "medium", "high", "xhigh"],
            "description": "Reasoning effort level.",
        },
        "writable": {
            "type": "boolean",
            "default": False,
            "description": "Allow file modification. true = code changes, false = analysis only.",
        },
    },
    "gemini": {
        "directories": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Directories Gemini scans itself (--include-directories).",
        },
        "approval_mode": {
            "type": "string",
            "enum": ["yolo", "auto_edit", "plan"],
            "default": "auto_edit",
            "description": "Gemini approval mode.",
        },
    },
    "claude": {
        "allowed_tools": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Tools Claude is allowed to use (--allowedTools).",
        },
    },
}

_JOB_ID_PROPERTY = {
    "job_id": {
        "type": "string",
        "description": "Job ID returned by a background ask_* call.",
    },
}

_JOB_SCHEMAS: dict[str, dict[str, Any]] = {
    "wait_job": {
        "type": "object",
        "properties": {
            **_JOB_ID_PROPERTY,
            "timeout_ms": {
                "type": "integer",
                "minimum": 0,
                "default": 300000,
                "description": "Maximum time to wait in milliseconds.",
            },
        },
        "required": ["job_id"],
    },
    "check_job": {
        "type": "object",
        "properties": dict(_JOB_ID_PROPERTY),
        "required": ["job_id"],
    },
    "kill_job": {
        "type": "object",
        "properties": dict(_JOB_ID_PROPERTY),
        "required": ["job_id"],
    },
    "list_jobs": {
        "type": "object",
        "properties": {
            "status": {
                "type": "string",
                "enum": LIST_STATUSES,
                "default": "all",
                "description": "active = running, failed includes killed jobs.",
            },
            "status_filter": {
                "type": "string",
                "enum": LIST_STATUSES,
                "description": "Alias of status.",
            },
            "limit": {
                "type": "integer",
                "minimum": 1,
                "default": 20,
                "description": "Maximum number of jobs to return.",
            },
        },
        "required": [],
    },
}


def ask_tool_name(agent: str) -> str:
    """agent → 工具名称。"""
    return f"ask_{agent}"


def agent_from_tool_name(name: str) -> str | None:
    """工具名称 → agent（非 ask_* 工具返回 None）。"""
    return ASK_TOOLS.get(name)


def create_tool_schema(name: str) -> dict[str, Any]:
    """创建工具的输入 schema。

    Args:
        name: 工具名称（ask_codex / wait_job 等）

    Returns:
        JSON Schema

    Raises:
        ValueError: 未知工具
    """
    if name in _JOB_SCHEMAS:
        return _JOB_SCHEMAS[name]

    agent = agent_from_tool_name(name)
    if agent is None:
        raise ValueError(f"Unknown tool: {name}")

    return {
        "type": "object",
        "properties": {**_COMMON_ASK_PROPERTIES, **_AGENT_PROPERTIES[agent]},
        "required": ["prompt"],
    }
