"""后台任务（Job）管理模块。

提供后台 agent 调用的登记与生命周期管理，包括：
- JobRegistry: Job 的创建、查询、等待、终止和列表
- 定期清理已结束且超过保留时间的 Job

状态机：running → completed | failed | killed，终态不可逆。
所有状态仅保存在内存中，服务器退出后全部消失。
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Optional

from pydantic import BaseModel

from .runtime.buffer import STDERR_TRUNCATED_MARKER, STDOUT_TRUNCATED_MARKER, OutputBuffer
from .runtime.spawner import DEFAULT_MAX_STDOUT, MAX_STDERR, pump_stream
from .runtime.terminator import TerminationEscalator

__all__ = [
    "JobRegistry",
    "Job",
    "JobInfo",
    "JobStatus",
    "ListFilter",
    "WaitResult",
    "JOB_TTL",
    "JOB_SWEEP_INTERVAL",
]

logger = logging.getLogger(__name__)

JOB_TTL = 60 * 60.0  # 已结束 Job 的保留时间（秒）
JOB_SWEEP_INTERVAL = 10 * 60.0  # 清理周期（秒）
PROMPT_PREVIEW_CHARS = 100
STDOUT_PREVIEW_CHARS = 500
DEFAULT_LIST_LIMIT = 20


class JobStatus(str, Enum):
    """Job 状态。"""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    KILLED = "killed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


class ListFilter(str, Enum):
    """list_jobs 的状态过滤器。

    - ACTIVE: 仅 running
    - COMPLETED: 仅 completed
    - FAILED: failed 和 killed
    - ALL: 全部
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    ALL = "all"

    @classmethod
    def from_string(cls, value: str) -> "ListFilter":
        """从字符串解析过滤器，无效值返回 ALL。"""
        value = value.lower().strip()
        for item in cls:
            if item.value == value:
                return item
        return cls.ALL

    def matches(self, status: JobStatus) -> bool:
        if self is ListFilter.ACTIVE:
            return status is JobStatus.RUNNING
        if self is ListFilter.COMPLETED:
            return status is JobStatus.COMPLETED
        if self is ListFilter.FAILED:
            return status in (JobStatus.FAILED, JobStatus.KILLED)
        return True


class JobInfo(BaseModel):
    """Job 的可序列化快照（不包含进程句柄）。

    Attributes:
        id: Job 标识符
        agent: agent 名称
        status: 当前状态
        pid: 操作系统进程 ID（可能缺失）
        prompt: 原始指令的前 100 个字符
        model: 模型选择
        started_at: 启动时间（ISO 8601）
        completed_at: 结束时间（ISO 8601）
        exit_code: 退出码
        error: 进程级错误信息（仅在进程异常时设置）
        note: 附加说明（例如等待超时）
        stdout_preview: stdout 前 500 个字符（仅 check 视图）
    """

    id: str
    agent: str
    status: JobStatus
    pid: Optional[int] = None
    prompt: str
    model: Optional[str] = None
    started_at: str
    completed_at: Optional[str] = None
    exit_code: Optional[int] = None
    error: Optional[str] = None
    note: Optional[str] = None
    stdout_preview: Optional[str] = None


class WaitResult(BaseModel):
    """wait() 的返回值。"""

    job: JobInfo
    stdout: str
    stderr: str


@dataclass
class Job:
    """一个后台 agent 调用。

    Job 独占其进程句柄和两个输出缓冲区，除 JobRegistry 外没有其他组件修改它们。

    Attributes:
        id: 唯一标识符
        agent: agent 名称
        process: 底层进程句柄
        prompt: 原始指令的前 100 个字符
        model: 模型选择
        started_at: 启动时间
        stdout_buffer: stdout 缓冲区
        stderr_buffer: stderr 缓冲区
        status: 当前状态
        completed_at: 结束时间
        exit_code: 退出码
        error: 进程级错误信息
    """

    id: str
    agent: str
    process: asyncio.subprocess.Process = field(repr=False)
    prompt: str
    model: str | None
    started_at: datetime
    stdout_buffer: OutputBuffer = field(repr=False)
    stderr_buffer: OutputBuffer = field(repr=False)
    status: JobStatus = JobStatus.RUNNING
    completed_at: datetime | None = None
    exit_code: int | None = None
    error: str | None = None
    finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def pid(self) -> int | None:
        return self.process.pid

    @property
    def is_running(self) -> bool:
        return self.status is JobStatus.RUNNING

    @property
    def stdout(self) -> str:
        return self.stdout_buffer.text

    @property
    def stderr(self) -> str:
        return self.stderr_buffer.text

    def finish(self, exit_code: int, at: datetime) -> None:
        """进程正常退出。

        killed 状态由 kill() 设置后不会被覆盖，但退出码仍然记录。
        """
        self.exit_code = exit_code
        if self.is_running:
            self.status = JobStatus.COMPLETED if exit_code == 0 else JobStatus.FAILED
            self.completed_at = at
        self.finished.set()

    def fail(self, error: str, at: datetime) -> None:
        """进程级错误（流读取失败等）。"""
        self.error = error
        if self.is_running:
            self.status = JobStatus.FAILED
            self.completed_at = at
        self.finished.set()

    def mark_killed(self, at: datetime) -> bool:
        """标记为 killed（先于操作系统层面的实际退出）。

        Returns:
            是否发生了状态变化
        """
        if not self.is_running:
            return False
        self.status = JobStatus.KILLED
        self.completed_at = at
        self.finished.set()
        return True

    def to_info(self, include_preview: bool = True) -> JobInfo:
        """生成可序列化快照。"""
        return JobInfo(
            id=self.id,
            agent=self.agent,
            status=self.status,
            pid=self.pid,
            prompt=self.prompt,
            model=self.model,
            started_at=self.started_at.isoformat(),
            completed_at=self.completed_at.isoformat() if self.completed_at else None,
            exit_code=self.exit_code,
            error=self.error,
            stdout_preview=self.stdout[:STDOUT_PREVIEW_CHARS] if include_preview else None,
        )


def _to_base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


class JobRegistry:
    """后台 Job 注册表。

    管理所有后台 agent 调用，提供：
    - Job 创建（接管进程的 stdout/stderr 和退出事件）
    - 快照查询、带超时的等待、终止
    - 按状态过滤的列表
    - 定期清理已结束的旧 Job

    线程安全：所有操作都在同一个事件循环中执行，回调之间不会抢占。

    Example:
        ```python
        registry = JobRegistry(escalator=spawner.escalator)
        registry.start()  # 启动定期清理

        process = await spawner.run_background("codex", args, stdin=prompt)
        job = registry.create("codex", process, prompt=prompt)

        result = await registry.wait(job.id, timeout=60)
        if result and result.job.status == JobStatus.RUNNING:
            print(result.job.note)

        await registry.stop()
        ```
    """

    def __init__(
        self,
        escalator: TerminationEscalator | None = None,
        *,
        max_stdout: int = DEFAULT_MAX_STDOUT,
        ttl: float = JOB_TTL,
        sweep_interval: float = JOB_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """初始化 Job 注册表。

        Args:
            escalator: 终止升级器（kill 时使用）
            max_stdout: stdout 缓冲区上限（字节）
            ttl: 已结束 Job 的保留时间（秒）
            sweep_interval: 清理周期（秒）
            clock: 时间源（测试时可替换）
        """
        self.escalator = escalator or TerminationEscalator()
        self.max_stdout = max_stdout
        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._jobs: Dict[str, Job] = {}
        self._ids = itertools.count(1)
        self._watchers: set[asyncio.Task[None]] = set()
        self._sweep_task: asyncio.Task[None] | None = None

    def generate_job_id(self) -> str:
        """生成下一个 Job ID（job_0001, job_0002, ..., 36 进制，永不复用）。"""
        return f"job_{_to_base36(next(self._ids)).rjust(4, '0')}"

    def create(
        self,
        agent: str,
        process: asyncio.subprocess.Process,
        *,
        prompt: str,
        model: str | None = None,
    ) -> Job:
        """登记新 Job 并开始收集输出。

        立即返回，不等待进程结束。

        Args:
            agent: agent 名称
            process: run_background() 返回的进程句柄
            prompt: 原始指令（只保留前 100 个字符）
            model: 模型选择

        Returns:
            新建的 Job
        """
        job = Job(
            id=self.generate_job_id(),
            agent=agent,
            process=process,
            prompt=prompt[:PROMPT_PREVIEW_CHARS],
            model=model or None,
            started_at=self._clock(),
            stdout_buffer=OutputBuffer(self.max_stdout, STDOUT_TRUNCATED_MARKER),
            stderr_buffer=OutputBuffer(MAX_STDERR, STDERR_TRUNCATED_MARKER),
        )
        self._jobs[job.id] = job

        watcher = asyncio.ensure_future(self._watch(job))
        self._watchers.add(watcher)
        watcher.add_done_callback(self._watchers.discard)

        logger.info(f"Created job {job.id} agent={agent} pid={job.pid}")
        return job

    async def _watch(self, job: Job) -> None:
        """收集输出，然后等待退出并执行状态转换。

        先把 stdout/stderr 读到 EOF，再处理退出，保证进入终态时输出已完整。
        """
        process = job.process
        try:
            await asyncio.gather(
                pump_stream(process.stdout, job.stdout_buffer.append),
                pump_stream(process.stderr, job.stderr_buffer.append),
            )
            exit_code = await process.wait()
        except Exception as e:
            # 任何异常都要进入终态，否则 wait 只能等到超时，清理也永远不会回收
            logger.warning(f"Job {job.id} process error: {e}", exc_info=True)
            job.fail(str(e) or type(e).__name__, self._clock())
            return

        job.finish(exit_code, self._clock())
        logger.info(
            f"Job {job.id} exited: status={job.status.value}, exit_code={exit_code}"
        )

    def get_job(self, job_id: str) -> Optional[Job]:
        """获取 Job 对象本身。"""
        return self._jobs.get(job_id)

    def get(self, job_id: str, include_preview: bool = True) -> Optional[JobInfo]:
        """获取 Job 快照（check 视图，默认包含 stdout 预览）。

        Args:
            job_id: Job 标识符
            include_preview: 是否包含 stdout 前 500 字符

        Returns:
            快照，不存在则返回 None
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None
        return job.to_info(include_preview=include_preview)

    async def wait(self, job_id: str, timeout: float) -> Optional[WaitResult]:
        """等待 Job 结束。

        已处于终态时立即返回。超时后返回仍在运行的快照并附带说明，
        不会终止 Job。

        Args:
            job_id: Job 标识符
            timeout: 最长等待时间（秒）

        Returns:
            WaitResult，不存在则返回 None
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None

        if job.is_running:
            try:
                await asyncio.wait_for(job.finished.wait(), timeout)
            except asyncio.TimeoutError:
                pass

        info = job.to_info()
        if job.is_running:
            info.note = f"wait timeout after {timeout:g}s (job still running)"
            logger.debug(f"Wait on job {job.id} timed out after {timeout:g}s")

        return WaitResult(job=info, stdout=job.stdout, stderr=job.stderr)

    def kill(self, job_id: str) -> Optional[JobInfo]:
        """终止 Job。

        对运行中的 Job：启动终止升级，并立即将状态设为 killed、记录结束时间
        （不等待操作系统层面的退出）。对已结束的 Job：不做任何操作，返回现有快照。

        Args:
            job_id: Job 标识符

        Returns:
            快照，不存在则返回 None
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None

        if job.is_running:
            self.escalator.terminate(job.process)
            job.mark_killed(self._clock())
            logger.info(f"Killed job {job.id} pid={job.pid}")

        return job.to_info()

    def list(
        self,
        status_filter: ListFilter | str = ListFilter.ALL,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[JobInfo]:
        """列出 Job（按启动时间倒序，不含 stdout 预览）。

        Args:
            status_filter: active / completed / failed（含 killed）/ all
            limit: 最大返回数量

        Returns:
            JobInfo 列表
        """
        if isinstance(status_filter, str) and not isinstance(status_filter, ListFilter):
            status_filter = ListFilter.from_string(status_filter)

        # 从新到旧遍历，时间戳相同时仍保持新的在前
        jobs = [job for job in reversed(self._jobs.values()) if status_filter.matches(job.status)]
        jobs.sort(key=lambda j: j.started_at, reverse=True)
        return [job.to_info(include_preview=False) for job in jobs[: max(limit, 0)]]

    def sweep(self, now: datetime | None = None) -> int:
        """删除结束时间早于保留窗口的终态 Job。

        Returns:
            删除的 Job 数量
        """
        now = now or self._clock()
        cutoff = timedelta(seconds=self.ttl)
        removed = 0

        # 遍历键的快照，允许迭代中删除
        for job_id in list(self._jobs):
            job = self._jobs.get(job_id)
            if job is None or job.is_running or job.completed_at is None:
                continue
            if now - job.completed_at > cutoff:
                del self._jobs[job_id]
                removed += 1

        if removed:
            logger.debug(f"Swept {removed} expired job(s)")
        return removed

    def start(self) -> None:
        """启动定期清理任务。必须在事件循环中调用。"""
        if self._sweep_task is not None and not self._sweep_task.done():
            logger.warning("JobRegistry sweep already running")
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="job-sweep")

    async def stop(self) -> None:
        """停止定期清理任务。"""
        task = self._sweep_task
        self._sweep_task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    @property
    def running_count(self) -> int:
        """运行中的 Job 数量。"""
        return sum(1 for job in self._jobs.values() if job.is_running)

    def __len__(self) -> int:
        """返回注册表中的 Job 数量。"""
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        """检查 Job 是否在注册表中。"""
        return job_id in self._jobs
