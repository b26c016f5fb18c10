"""Shared construction helpers wiring services from settings."""

from __future__ import annotations

from pathlib import Path

from taskpilot.api.agent import AgentClient
from taskpilot.api.base import BaseAgentClient
from taskpilot.api.mock import ScriptedAgentClient
from taskpilot.api.session import SessionClient
from taskpilot.api.stream import StreamTransport
from taskpilot.auth.credentials import CredentialStore
from taskpilot.config import Settings
from taskpilot.conversation import ConversationStore
from taskpilot.dispatcher import ActionDispatcher, Session
from taskpilot.editing.registry import default_editors
from taskpilot.errors import ConfigurationError
from taskpilot.interaction import UserInterface
from taskpilot.tasks import TaskTracker
from taskpilot.tools.builtins import PlanStatusTool, ValidateFileTool
from taskpilot.tools.filesystem import Workspace
from taskpilot.tools.registry import ToolRegistry
from taskpilot.tools.shell import ShellRunner
from taskpilot.validation.gate import ValidationGate, load_validation_rules
from taskpilot.workflow import PlanRunner


def workspace_root(settings: Settings) -> Path:
    return Path(settings.workspace_dir).resolve()


def build_credentials(settings: Settings) -> CredentialStore:
    if settings.credentials_path:
        path = Path(settings.credentials_path).expanduser()
    else:
        path = Path.home() / ".taskpilot" / "credentials.json"
    return CredentialStore(path, idm_base=settings.idm_base)


def build_conversations(settings: Settings) -> ConversationStore:
    return ConversationStore(workspace_root(settings) / settings.state_dir)


def require_realm(settings: Settings) -> str:
    if not settings.realm:
        raise ConfigurationError("No realm configured. Set TASKPILOT_REALM or pass --realm.")
    return settings.realm


def build_session(settings: Settings, credentials: CredentialStore | None = None) -> SessionClient:
    return SessionClient(
        require_realm(settings),
        credentials or build_credentials(settings),
        max_retries=settings.max_retries,
        retry_delays=settings.retry_delays,
        refresh_lead_seconds=settings.refresh_lead_seconds,
        timeout_seconds=settings.request_timeout_seconds,
    )


def build_agent(settings: Settings, use_mock: bool = False) -> BaseAgentClient:
    if use_mock:
        return ScriptedAgentClient()
    if not settings.agent_id:
        raise ConfigurationError("No agent id configured. Set TASKPILOT_AGENT_ID or pass --agent-id.")
    return AgentClient(
        base_url=settings.agent_api_base,
        agent_id=settings.agent_id,
        agent_key=settings.agent_key,
        session=build_session(settings),
        transport=StreamTransport(timeout_seconds=settings.request_timeout_seconds),
        conversations=build_conversations(settings),
        knowledge=settings.use_knowledge,
        return_knowledge_sources=settings.return_knowledge_sources,
    )


def build_validator(settings: Settings) -> ValidationGate | None:
    if not settings.validation_enabled:
        return None
    rules = None
    if settings.validation_rules_path:
        rules = load_validation_rules(Path(settings.validation_rules_path).expanduser())
    return ValidationGate(workspace_root(settings), rules=rules)


def build_tools(
    settings: Settings, workspace: Workspace, validator: ValidationGate | None = None
) -> ToolRegistry:
    """Registry of the built-in tools; callers may register more before the run."""
    registry = ToolRegistry()
    registry.register_all(
        [
            PlanStatusTool(build_tracker(settings)),
            ValidateFileTool(workspace, validator or ValidationGate(workspace.root)),
        ]
    )
    return registry


def build_dispatcher(
    settings: Settings,
    agent: BaseAgentClient,
    ui: UserInterface,
    tools: ToolRegistry | None = None,
) -> ActionDispatcher:
    root = workspace_root(settings)
    workspace = Workspace(
        root,
        read_max_bytes=settings.read_max_bytes,
        search_max_results=settings.search_max_results,
    )
    validator = build_validator(settings)
    if tools is None:
        tools = build_tools(settings, workspace, validator)
    return ActionDispatcher(
        agent,
        ui,
        workspace,
        ShellRunner(root, timeout_seconds=settings.command_timeout_seconds),
        editors=default_editors(),
        tools=tools,
        validator=validator,
        session=Session(agent_key=settings.agent_key, validation_enabled=settings.validation_enabled),
        max_turns=settings.max_turns,
    )


def build_tracker(settings: Settings) -> TaskTracker:
    return TaskTracker(workspace_root(settings) / settings.plan_path)


def context_file(settings: Settings) -> Path:
    root = workspace_root(settings)
    if settings.context_path:
        return root / Path(settings.context_path).expanduser()
    return root / settings.state_dir / "project-context.md"


def build_runner(settings: Settings, agent: BaseAgentClient, ui: UserInterface) -> PlanRunner:
    return PlanRunner(
        build_dispatcher(settings, agent, ui),
        build_tracker(settings),
        settings.plan_path,
        context_path=context_file(settings),
    )
