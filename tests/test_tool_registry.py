import pytest
from pydantic import BaseModel

from taskpilot.tasks import TaskTracker
from taskpilot.tools.base import Tool, ToolResult
from taskpilot.tools.builtins import PlanStatusTool, ValidateFileTool
from taskpilot.tools.filesystem import Workspace
from taskpilot.tools.registry import ToolRegistry
from taskpilot.validation.gate import ValidationGate


class AddInput(BaseModel):
    a: int
    b: int


class AddTool(Tool):
    name = "add"
    description = "Add two integers."
    input_schema = AddInput

    async def run(self, data: BaseModel) -> ToolResult:
        assert isinstance(data, AddInput)
        return ToolResult(output=data.a + data.b)


@pytest.fixture
def registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_all([AddTool()])
    return registry


@pytest.mark.asyncio
async def test_call_validates_and_runs(registry):
    result = await registry.call("add", '{"a": 2, "b": 3}')
    assert result.output == 5


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("name", "raw", "message"),
    [
        ("missing", "{}", "Unknown tool 'missing'. Available tools: add"),
        ("add", "{not json", "not valid JSON"),
        ("add", "[1, 2]", "must be a JSON object"),
        ("add", '{"a": "x", "b": 1}', "Invalid arguments for add"),
    ],
)
async def test_call_errors(registry, name, raw, message):
    with pytest.raises(ValueError, match=message.replace("(", r"\(")):
        await registry.call(name, raw)


def test_describe_lists_schema(registry):
    [entry] = registry.describe()
    assert entry["name"] == "add"
    assert set(entry["parameters"]["properties"]) == {"a", "b"}
    assert registry.get("add") is registry.list()[0]


@pytest.mark.asyncio
async def test_builtin_tools(tmp_path):
    (tmp_path / "tech-spec.md").write_text("- [x] A\n- [ ] B\n", encoding="utf-8")
    (tmp_path / "page.html").write_text("<div><p></div>", encoding="utf-8")
    workspace = Workspace(tmp_path)
    registry = ToolRegistry()
    registry.register_all(
        [
            PlanStatusTool(TaskTracker(tmp_path / "tech-spec.md")),
            ValidateFileTool(workspace, ValidationGate(tmp_path)),
        ]
    )

    status = await registry.call("plan_status", None)
    assert status.output["status"] == "PENDING"
    assert status.output["next_task"] == "task-2: B"
    assert [task["status"] for task in status.output["tasks"]] == ["completed", "pending"]

    checked = await registry.call("validate_file", '{"path": "page.html"}')
    assert checked.output["valid"] is False
    assert "still open" in checked.output["diagnostics"][0]
