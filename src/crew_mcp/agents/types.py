"""Agent 调用参数类型定义。

定义三个 agent 共用的参数以及各自特有的参数。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

__all__ = [
    "AgentType",
    "ApprovalMode",
    "ReasoningEffort",
    "CommonParams",
    "CodexParams",
    "GeminiParams",
    "ClaudeParams",
]


class AgentType(str, Enum):
    """Agent 类型枚举。"""

    CODEX = "codex"
    GEMINI = "gemini"
    CLAUDE = "claude"


class ApprovalMode(str, Enum):
    """Gemini 审批模式。

    - YOLO: 自动批准所有操作
    - AUTO_EDIT: 自动批准编辑（默认）
    - PLAN: 只规划，不写文件
    """

    YOLO = "yolo"
    AUTO_EDIT = "auto_edit"
    PLAN = "plan"


class ReasoningEffort(str, Enum):
    """Codex 推理强度。"""

    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    XHIGH = "xhigh"


@dataclass
class CommonParams:
    """公共参数。

    Attributes:
        prompt: 任务指令（必需）
        model: 模型选择
        files: 内容会被注入 prompt 的文件列表
        working_directory: 工作目录（None 表示继承服务器的工作目录）
        background: 是否以后台 Job 方式运行
        timeout_ms: 前台超时（毫秒，None 表示使用默认值）
        output_file: 答案输出文件（相对路径以 working_directory 为基准）
    """

    prompt: str
    model: str = ""
    files: list[str] = field(default_factory=list)
    working_directory: Path | None = None
    background: bool = False
    timeout_ms: int | None = None
    output_file: Path | None = None

    def __post_init__(self) -> None:
        """确保 working_directory 和 output_file 是绝对路径。"""
        if self.working_directory is not None:
            self.working_directory = Path(self.working_directory).expanduser().resolve()
        if self.output_file is not None:
            output = Path(self.output_file).expanduser()
            if not output.is_absolute() and self.working_directory is not None:
                output = self.working_directory / output
            self.output_file = output.resolve()


@dataclass
class CodexParams(CommonParams):
    """Codex CLI 参数。

    Attributes:
        reasoning_effort: 推理强度
        writable: 是否允许修改文件（False 时使用只读沙箱）
    """

    reasoning_effort: ReasoningEffort | None = None
    writable: bool = False

    def __post_init__(self) -> None:
        super().__post_init__()
        if isinstance(self.reasoning_effort, str):
            self.reasoning_effort = ReasoningEffort(self.reasoning_effort)


@dataclass
class GeminiParams(CommonParams):
    """Gemini CLI 参数。

    Attributes:
        directories: 由 Gemini 自己扫描的目录（--include-directories）
        approval_mode: 审批模式
    """

    directories: list[str] = field(default_factory=list)
    approval_mode: ApprovalMode = ApprovalMode.AUTO_EDIT

    def __post_init__(self) -> None:
        super().__post_init__()
        if isinstance(self.approval_mode, str):
            self.approval_mode = ApprovalMode(self.approval_mode)


@dataclass
class ClaudeParams(CommonParams):
    """Claude CLI 参数。

    Attributes:
        allowed_tools: 允许使用的工具（--allowedTools）
    """

    allowed_tools: list[str] = field(default_factory=list)
