import pytest

from taskpilot.dispatcher import LoopStatus
from taskpilot.tasks import PlanState, PlanStatus, TaskTracker
from taskpilot.workflow import PlanRunner


def talk(text: str) -> dict:
    return {"actions": [{"type": "talk_with_user", "content": text}]}


@pytest.fixture
def tracker(tmp_path) -> TaskTracker:
    return TaskTracker(tmp_path / "tech-spec.md")


@pytest.fixture
def runner(dispatcher, tracker) -> PlanRunner:
    dispatcher.session.auto_approve_files = True
    return PlanRunner(dispatcher, tracker, "tech-spec.md")


@pytest.mark.asyncio
async def test_missing_plan_is_created_then_pending(runner, tracker, agent):
    agent.queue(
        {
            "actions": [
                {
                    "type": "create_file",
                    "path": "tech-spec.md",
                    "content": "# Plan\n\n- [ ] Write parser\n- [ ] Write docs\n",
                }
            ],
            "summary": "[TASK_COMPLETE] Plan written.",
        }
    )
    result = await runner.step("build a parser")

    assert result.status is LoopStatus.COMPLETED
    assert "create tech-spec.md" in agent.prompts[0]
    assert "Goal: build a parser" in agent.prompts[0]
    state = tracker.analyze()
    assert state.status is PlanStatus.PENDING
    assert state.next_task.title == "Write parser"


@pytest.mark.asyncio
async def test_plan_not_created_is_a_failure(runner, agent):
    agent.queue(talk("[TASK_COMPLETE] Nothing to plan."))
    result = await runner.step()
    assert result.status is LoopStatus.FAILED
    assert "did not create tasks" in result.summary


@pytest.mark.asyncio
async def test_run_works_through_every_task(runner, tracker, agent, tmp_path):
    plan = tmp_path / "tech-spec.md"
    plan.write_text("- [ ] Write parser\n- [ ] Write docs\n", encoding="utf-8")
    agent.queue(talk("[TASK_COMPLETE] Parser done."), talk("[TASK_COMPLETE] Docs done."))

    result = await runner.run()

    assert result.status is LoopStatus.COMPLETED
    assert result.turns == 2
    assert "task-1" in agent.prompts[0]
    assert "Write parser" in agent.prompts[0]
    assert "Write docs" in agent.prompts[1]
    assert plan.read_text(encoding="utf-8") == "- [x] Write parser\n- [x] Write docs\n"


@pytest.mark.asyncio
async def test_failed_task_stays_in_progress(runner, agent, tmp_path):
    plan = tmp_path / "tech-spec.md"
    plan.write_text("- [ ] Write parser\n", encoding="utf-8")
    agent.queue(talk("[TASK_FAILED] Missing grammar."))

    result = await runner.run()

    assert result.status is LoopStatus.FAILED
    assert result.summary == "Missing grammar."
    assert plan.read_text(encoding="utf-8") == "- [/] Write parser\n"


@pytest.mark.asyncio
async def test_task_budget_stops_the_run(runner, agent, tmp_path):
    (tmp_path / "tech-spec.md").write_text("- [ ] A\n- [ ] B\n", encoding="utf-8")
    agent.queue(talk("[TASK_COMPLETE] A done."))
    result = await runner.run(max_tasks=1)
    assert result.status is LoopStatus.STOPPED
    assert len(agent.prompts) == 1


@pytest.mark.asyncio
async def test_completed_plan_returns_immediately(runner, agent, tmp_path):
    (tmp_path / "tech-spec.md").write_text("- [x] A\n", encoding="utf-8")
    result = await runner.run()
    assert result.status is LoopStatus.COMPLETED
    assert agent.prompts == []


@pytest.mark.asyncio
async def test_project_context_joins_the_first_prompt_only(dispatcher, tracker, agent, tmp_path):
    dispatcher.session.auto_approve_files = True
    context = tmp_path / "project-context.md"
    context.write_text("Python 3.12, tests with pytest.\n", encoding="utf-8")
    (tmp_path / "tech-spec.md").write_text("- [ ] A\n- [ ] B\n", encoding="utf-8")
    runner = PlanRunner(dispatcher, tracker, "tech-spec.md", context_path=context)
    agent.queue(talk("[TASK_COMPLETE] A done."), talk("[TASK_COMPLETE] B done."))

    await runner.run()

    assert agent.prompts[0].endswith(
        "\n\n--- PROJECT CONTEXT ---\nPython 3.12, tests with pytest.\n-----------------------"
    )
    assert "PROJECT CONTEXT" not in agent.prompts[1]


@pytest.mark.asyncio
async def test_missing_context_file_is_not_an_error(dispatcher, tracker, agent, tmp_path, caplog):
    (tmp_path / "tech-spec.md").write_text("- [ ] A\n", encoding="utf-8")
    runner = PlanRunner(dispatcher, tracker, "tech-spec.md", context_path=tmp_path / "absent.md")
    agent.queue(talk("[TASK_COMPLETE] A done."))

    with caplog.at_level("WARNING", logger="taskpilot"):
        result = await runner.run()

    assert result.status is LoopStatus.COMPLETED
    assert "PROJECT CONTEXT" not in agent.prompts[0]
    assert "No context file" in caplog.text


@pytest.mark.asyncio
async def test_pending_state_without_next_task_fails_cleanly(runner, tracker, agent, monkeypatch):
    monkeypatch.setattr(tracker, "analyze", lambda: PlanState(PlanStatus.PENDING))
    result = await runner.step()
    assert result.status is LoopStatus.FAILED
    assert "No actionable task" in result.summary
    assert agent.prompts == []
