"""Plan-driven workflow: pick the next task from the plan and work it."""

from __future__ import annotations

from pathlib import Path

from taskpilot.dispatcher import (
    COMPLETE_SENTINEL,
    FAILED_SENTINEL,
    ActionDispatcher,
    LoopResult,
    LoopStatus,
)
from taskpilot.errors import PlanDriftError
from taskpilot.tasks import PlanStatus, Task, TaskStatus, TaskTracker
from taskpilot.util.logging import get_logger

logger = get_logger(__name__)

_FINISH_INSTRUCTIONS = (
    f"When you are done, reply with {COMPLETE_SENTINEL} followed by a short summary. "
    f"If it cannot be done, reply with {FAILED_SENTINEL} and the reason."
)


def with_project_context(prompt: str, context: str | None) -> str:
    if not context:
        return prompt
    return f"{prompt}\n\n--- PROJECT CONTEXT ---\n{context}\n-----------------------"


def load_project_context(path: Path | None) -> str | None:
    """Read the project context document; a missing or unreadable file yields ``None``."""
    if path is None:
        return None
    if not path.is_file():
        logger.warning("No context file at %s; running without project context.", path)
        return None
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Failed to read context file %s: %s", path, exc)
        return None
    logger.info("Project context loaded from %s", path)
    return content.strip() or None


def plan_creation_prompt(plan_path: str, task_hint: str | None = None) -> str:
    goal = f"\nGoal: {task_hint}" if task_hint else ""
    return (
        f"There is no plan document yet.{goal}\n"
        f"Explore the project, then create {plan_path} containing a markdown checklist "
        "of implementation tasks, one '- [ ] <task>' line per task, in the order they "
        f"should be done.\n{_FINISH_INSTRUCTIONS}"
    )


def task_prompt(plan_path: str, task: Task) -> str:
    return (
        f"Work on the next task from {plan_path} ({task.id}):\n{task.description}\n\n"
        f"Only work on this task. {_FINISH_INSTRUCTIONS}"
    )


class PlanRunner:
    """Drives the dispatcher from the plan document state."""

    def __init__(
        self,
        dispatcher: ActionDispatcher,
        tracker: TaskTracker,
        plan_label: str,
        context_path: Path | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.tracker = tracker
        self.plan_label = plan_label
        self.context_path = context_path
        self._context_sent = False

    async def _send(self, prompt: str) -> LoopResult:
        # Project context rides along with the first prompt of the session only.
        if not self._context_sent:
            self._context_sent = True
            prompt = with_project_context(prompt, load_project_context(self.context_path))
        return await self.dispatcher.run(prompt)

    async def step(self, task_hint: str | None = None) -> LoopResult:
        """Handle the current plan state once."""
        state = self.tracker.analyze()
        if state.status is PlanStatus.COMPLETED:
            return LoopResult(LoopStatus.COMPLETED, "All tasks in the plan are completed.")
        if state.status is PlanStatus.MISSING:
            logger.info("No tasks found in %s; asking the agent to create the plan.", self.plan_label)
            result = await self._send(plan_creation_prompt(self.plan_label, task_hint))
            if result.status is LoopStatus.COMPLETED and (
                self.tracker.analyze().status is PlanStatus.MISSING
            ):
                return LoopResult(
                    LoopStatus.FAILED, f"The agent did not create tasks in {self.plan_label}.", result.turns
                )
            return result

        task = state.next_task
        if task is None:
            return LoopResult(LoopStatus.FAILED, f"No actionable task found in {self.plan_label}.")
        try:
            if task.status is TaskStatus.PENDING:
                self.tracker.mark_in_progress(task)
            logger.info("Working on %s", task.label)
            result = await self._send(task_prompt(self.plan_label, task))
            if result.status is LoopStatus.COMPLETED:
                self._complete(task)
        except PlanDriftError as exc:
            logger.error("Stopping: %s", exc)
            self.dispatcher.ui.notify(str(exc), "error")
            return LoopResult(LoopStatus.FAILED, str(exc))
        return result

    def _complete(self, task: Task) -> None:
        # The agent may have edited the plan while working, so positions are re-read.
        for candidate in self.tracker.analyze().all_tasks:
            if candidate.title == task.title and candidate.status is not TaskStatus.COMPLETED:
                self.tracker.mark_done(candidate)
                return
        logger.info("Task '%s' is already marked done.", task.title)

    async def run(self, task_hint: str | None = None, max_tasks: int | None = None) -> LoopResult:
        turns = 0
        steps = 0
        while True:
            result = await self.step(task_hint)
            turns += result.turns
            steps += 1
            if result.status is not LoopStatus.COMPLETED:
                return LoopResult(result.status, result.summary, turns)
            if self.tracker.analyze().status is PlanStatus.COMPLETED:
                return LoopResult(LoopStatus.COMPLETED, "All tasks in the plan are completed.", turns)
            if max_tasks is not None and steps >= max_tasks:
                return LoopResult(LoopStatus.STOPPED, result.summary, turns)
            task_hint = None
