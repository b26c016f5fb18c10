"""Plan document tracking: checkbox tasks in a markdown file."""

from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from taskpilot.errors import PlanDriftError
from taskpilot.util.logging import get_logger

logger = get_logger(__name__)

_TASK_LINE = re.compile(r"^- \[([ xX/])\] (.*)$")
_MARKER_START = re.compile(r"^- \[[ xX/]\]")
_MARKER_CHAR = re.compile(r"^(\s*- \[)([ xX/])(\])")


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class PlanStatus(str, Enum):
    MISSING = "MISSING"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


_STATUS_BY_MARKER = {
    " ": TaskStatus.PENDING,
    "x": TaskStatus.COMPLETED,
    "X": TaskStatus.COMPLETED,
    "/": TaskStatus.IN_PROGRESS,
}


@dataclass
class Task:
    id: str
    description: str
    status: TaskStatus
    source_line: int
    title: str

    @property
    def label(self) -> str:
        return f"{self.id}: {self.title}"


@dataclass
class PlanState:
    status: PlanStatus
    next_task: Task | None = None
    all_tasks: list[Task] = field(default_factory=list)


def _split_lines(text: str) -> list[str]:
    return io.StringIO(text, newline="").readlines()


def parse_tasks(text: str) -> list[Task]:
    """Scan checkbox lines; ``source_line`` is the 1-based line of each marker."""
    lines = [line.rstrip("\r\n") for line in _split_lines(text)]
    tasks: list[Task] = []
    for index, line in enumerate(lines):
        match = _TASK_LINE.match(line.strip())
        if not match:
            continue
        title = match.group(2).strip()
        if not title:
            continue
        parts = [title]
        for follower in lines[index + 1 :]:
            trimmed = follower.strip()
            if not trimmed or _MARKER_START.match(trimmed) or trimmed.startswith("#"):
                break
            parts.append(trimmed)
        tasks.append(
            Task(
                id=f"task-{len(tasks) + 1}",
                description="\n".join(parts),
                status=_STATUS_BY_MARKER[match.group(1)],
                source_line=index + 1,
                title=title,
            )
        )
    return tasks


def analyze_plan(text: str | None) -> PlanState:
    """Classify a plan document and select the task to work on next.

    An in-progress task wins over pending ones (the first by line order when
    several are marked); otherwise the first pending task is next.
    """
    tasks = parse_tasks(text or "")
    if not tasks:
        return PlanState(status=PlanStatus.MISSING)
    next_task = next((t for t in tasks if t.status is TaskStatus.IN_PROGRESS), None)
    if next_task is None:
        next_task = next((t for t in tasks if t.status is TaskStatus.PENDING), None)
    if next_task is None:
        return PlanState(status=PlanStatus.COMPLETED, all_tasks=tasks)
    return PlanState(status=PlanStatus.PENDING, next_task=next_task, all_tasks=tasks)


class TaskTracker:
    """Reads and updates task markers in the plan document on disk."""

    def __init__(self, plan_path: Path) -> None:
        self.plan_path = plan_path

    def read(self) -> str | None:
        if not self.plan_path.is_file():
            return None
        with self.plan_path.open("r", encoding="utf-8", newline="") as handle:
            return handle.read()

    def analyze(self) -> PlanState:
        return analyze_plan(self.read())

    def write(self, text: str) -> None:
        self.plan_path.parent.mkdir(parents=True, exist_ok=True)
        with self.plan_path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(text)

    def mark_in_progress(self, task: Task) -> None:
        self._set_marker(task, "/")

    def mark_done(self, task: Task) -> None:
        self._set_marker(task, "x")

    def _set_marker(self, task: Task, marker: str) -> None:
        text = self.read()
        if text is None:
            raise PlanDriftError(f"Plan document {self.plan_path} no longer exists.")
        lines = _split_lines(text)
        index = task.source_line - 1
        if index >= len(lines):
            raise PlanDriftError(
                f"Plan changed on disk: line {task.source_line} no longer exists "
                f"(expected task '{task.title}')."
            )
        line = lines[index]
        match = _TASK_LINE.match(line.strip())
        if not match or match.group(2).strip() != task.title:
            raise PlanDriftError(
                f"Plan changed on disk: line {task.source_line} no longer holds "
                f"task '{task.title}'."
            )
        lines[index] = _MARKER_CHAR.sub(lambda m: m.group(1) + marker + m.group(3), line, count=1)
        self.write("".join(lines))
        logger.info("Marked %s as %s.", task.id, "done" if marker == "x" else "in progress")
