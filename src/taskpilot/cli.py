"""CLI entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from taskpilot.config import Settings
from taskpilot.dispatcher import LoopStatus
from taskpilot.errors import ConfigurationError, TaskPilotError
from taskpilot.factory import (
    build_agent,
    build_conversations,
    build_credentials,
    build_runner,
    build_tools,
    build_tracker,
    require_realm,
    workspace_root,
)
from taskpilot.interaction import ConsoleInterface
from taskpilot.tasks import PlanStatus, TaskStatus
from taskpilot.tools.filesystem import Workspace
from taskpilot.util.logging import configure_file_logging, get_logger, set_level

logger = get_logger(__name__)

_STATUS_MARKS = {
    TaskStatus.PENDING: "[ ]",
    TaskStatus.IN_PROGRESS: "[/]",
    TaskStatus.COMPLETED: "[x]",
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="taskpilot: plan-driven coding agent")
    parser.add_argument("--workspace", dest="workspace")
    parser.add_argument("--realm", dest="realm")
    parser.add_argument("--agent-id", dest="agent_id")
    parser.add_argument("--plan", dest="plan_path")
    parser.add_argument("--context", dest="context_path", help="Project context document")
    parser.add_argument("--log-level", dest="log_level")
    parser.add_argument("--debug-log", dest="debug_log_path")
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Work through the plan document")
    run.add_argument("goal", nargs="?", help="What to build when no plan exists yet")
    run.add_argument("--max-turns", type=int, dest="max_turns")
    run.add_argument("--max-tasks", type=int, dest="max_tasks")
    run.add_argument("--no-validation", action="store_true", dest="no_validation")
    run.add_argument("--knowledge", action="store_true", dest="knowledge")
    run.add_argument("--mock", action="store_true", dest="mock")

    login = sub.add_parser("login", help="Store client credentials for a realm")
    login.add_argument("--client-id", required=True, dest="client_id")
    login.add_argument("--client-secret", required=True, dest="client_secret")

    sub.add_parser("logout", help="Forget stored credentials for the realm")
    sub.add_parser("status", help="Show the plan document state")
    sub.add_parser("reset", help="Forget the stored conversation id")
    sub.add_parser("tools", help="List the tools the agent can call")
    args = parser.parse_args(argv)
    if args.command is None:
        args = parser.parse_args([*(argv if argv is not None else sys.argv[1:]), "run"])
    return args


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    data: dict[str, Any] = settings.model_dump()
    if args.workspace:
        data["workspace_dir"] = args.workspace
    if args.realm:
        data["realm"] = args.realm
    if args.agent_id:
        data["agent_id"] = args.agent_id
    if args.plan_path:
        data["plan_path"] = args.plan_path
    if args.context_path:
        data["context_path"] = args.context_path
    if args.log_level:
        data["log_level"] = args.log_level
    if args.debug_log_path:
        data["debug_log_path"] = args.debug_log_path
    if getattr(args, "max_turns", None):
        data["max_turns"] = args.max_turns
    if getattr(args, "no_validation", False):
        data["validation_enabled"] = False
    if getattr(args, "knowledge", False):
        data["use_knowledge"] = True
    return Settings(**data)


async def _run(settings: Settings, args: argparse.Namespace) -> int:
    ui = ConsoleInterface()
    runner = build_runner(settings, build_agent(settings, use_mock=args.mock), ui)
    result = await runner.run(task_hint=args.goal, max_tasks=args.max_tasks)
    ui.notify(f"Session ended: {result.status.value} after {result.turns} turns.")
    if result.summary:
        ui.show(result.summary)
    return 0 if result.status in {LoopStatus.COMPLETED, LoopStatus.STOPPED} else 1


async def _login(settings: Settings, args: argparse.Namespace) -> int:
    realm = require_realm(settings)
    store = build_credentials(settings)
    token = await store.authenticate(realm, args.client_id, args.client_secret)
    store.save(
        realm,
        token["access_token"],
        expires_in=token.get("expires_in"),
        client_id=args.client_id,
        client_secret=args.client_secret,
    )
    print(f"Logged in to realm {realm}.")
    return 0


def _status(settings: Settings) -> int:
    state = build_tracker(settings).analyze()
    print(f"Plan {settings.plan_path}: {state.status.value}")
    for task in state.all_tasks:
        print(f"  {_STATUS_MARKS[task.status]} {task.label}")
    if state.next_task is not None:
        print(f"Next: {state.next_task.label}")
    return 0 if state.status is not PlanStatus.MISSING else 2


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = apply_overrides(Settings(), args)
        set_level(settings.log_level)
        if settings.debug_log_path:
            path = configure_file_logging(settings.debug_log_path)
            logger.info("Debug log at %s", path)
        if args.command == "login":
            return asyncio.run(_login(settings, args))
        if args.command == "logout":
            removed = build_credentials(settings).delete(require_realm(settings))
            print("Logged out." if removed else "No stored credentials for this realm.")
            return 0
        if args.command == "status":
            return _status(settings)
        if args.command == "tools":
            tools = build_tools(settings, Workspace(workspace_root(settings)))
            print(json.dumps(tools.describe(), indent=2))
            return 0
        if args.command == "reset":
            build_conversations(settings).clear(settings.agent_key)
            print("Conversation reset.")
            return 0
        return asyncio.run(_run(settings, args))
    except (TaskPilotError, ConfigurationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
