"""Built-in tools the agent can reach through ``use_mcp_tool``."""

from __future__ import annotations

from pydantic import BaseModel

from taskpilot.tasks import TaskTracker
from taskpilot.tools.base import Tool, ToolResult
from taskpilot.tools.filesystem import Workspace
from taskpilot.validation.gate import ValidationGate


class PlanStatusInput(BaseModel):
    pass


class PlanStatusTool(Tool):
    name = "plan_status"
    description = "Report the plan document state and every task with its status."
    input_schema = PlanStatusInput

    def __init__(self, tracker: TaskTracker) -> None:
        self.tracker = tracker

    async def run(self, data: BaseModel) -> ToolResult:
        state = self.tracker.analyze()
        return ToolResult(
            output={
                "status": state.status.value,
                "next_task": state.next_task.label if state.next_task else None,
                "tasks": [
                    {"id": task.id, "title": task.title, "status": task.status.value}
                    for task in state.all_tasks
                ],
            }
        )


class ValidateFileInput(BaseModel):
    path: str


class ValidateFileTool(Tool):
    name = "validate_file"
    description = "Run the post-write checks for a workspace file without changing it."
    input_schema = ValidateFileInput

    def __init__(self, workspace: Workspace, gate: ValidationGate) -> None:
        self.workspace = workspace
        self.gate = gate

    async def run(self, data: BaseModel) -> ToolResult:
        payload = ValidateFileInput.model_validate(data)
        result = await self.gate.validate(payload.path, self.workspace.load(payload.path))
        return ToolResult(
            output={
                "valid": result.valid,
                "diagnostics": result.diagnostics,
                "skipped": result.skipped,
            }
        )
