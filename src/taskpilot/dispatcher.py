"""Agent turn loop: execute actions in order and build the next prompt."""

from __future__ import annotations

import io
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath

from taskpilot.actions import (
    AgentResponse,
    AstEditAction,
    CreateFileAction,
    DeleteFileAction,
    ListFilesAction,
    ModifyFileAction,
    ReadFileAction,
    RunCommandAction,
    SearchFileAction,
    TalkAction,
    UseToolAction,
)
from taskpilot.api.base import BaseAgentClient
from taskpilot.editing.base import CodeEditor
from taskpilot.editing.registry import EditorRegistry, default_editors
from taskpilot.errors import TaskPilotError, UnsupportedEditError
from taskpilot.interaction import Approval, UserInterface
from taskpilot.tools.filesystem import Workspace
from taskpilot.tools.registry import ToolRegistry
from taskpilot.tools.shell import ShellRunner
from taskpilot.util.logging import get_logger
from taskpilot.validation.gate import ValidationGate
from taskpilot.validation.review import review_edit

logger = get_logger(__name__)

COMPLETE_SENTINEL = "[TASK_COMPLETE]"
FAILED_SENTINEL = "[TASK_FAILED]"
CONTINUE_DIRECTIVE = "Continue with the task based on the results above."
PREVIEW_CONTEXT_LINES = 3


class LoopState(str, Enum):
    AWAITING_RESPONSE = "awaiting_response"
    DISPATCHING_ACTIONS = "dispatching_actions"
    AWAITING_USER_INPUT = "awaiting_user_input"
    AWAITING_NEXT_TURN = "awaiting_next_turn"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


class LoopStatus(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"
    NO_ACTIONS = "NO_ACTIONS"


@dataclass
class LoopResult:
    status: LoopStatus
    summary: str = ""
    turns: int = 0


@dataclass
class Session:
    agent_key: str = "developer_agent"
    conversation_id: str | None = None
    auto_approve_files: bool = False
    auto_approve_commands: bool = False
    validation_enabled: bool = True
    # (path, start, end, content) -> text of the targeted lines when previewed
    previews: dict[tuple[str, int, int, str], str] = field(default_factory=dict)


@dataclass
class TurnOutcome:
    results: list[str] = field(default_factory=list)
    question: bool = False
    status: LoopStatus | None = None
    summary: str = ""

    @property
    def results_text(self) -> str:
        return "\n\n".join(self.results)


def _split_lines(text: str) -> list[str]:
    return io.StringIO(text, newline="").readlines()


def _match_newlines(text: str, reference: str) -> str:
    text = text.replace("\r\n", "\n")
    return text.replace("\n", "\r\n") if "\r\n" in reference else text


def detect_sentinel(response: AgentResponse) -> tuple[LoopStatus, str] | None:
    """Find a completion or failure marker in the turn's free text."""
    texts = [response.summary, response.message]
    texts.extend(a.content for a in response.actions if isinstance(a, TalkAction))
    for sentinel, status in (
        (FAILED_SENTINEL, LoopStatus.FAILED),
        (COMPLETE_SENTINEL, LoopStatus.COMPLETED),
    ):
        for text in texts:
            if text and sentinel in text:
                before, _, after = text.partition(sentinel)
                return status, after.strip() or before.strip()
    return None


def _require(value: str | None, name: str, operation: str) -> str:
    if not value:
        raise ValueError(f"{operation} requires '{name}'.")
    return value


class ActionDispatcher:
    """Runs the conversation loop against one agent for one goal."""

    def __init__(
        self,
        agent: BaseAgentClient,
        ui: UserInterface,
        workspace: Workspace,
        shell: ShellRunner,
        *,
        editors: EditorRegistry | None = None,
        tools: ToolRegistry | None = None,
        validator: ValidationGate | None = None,
        session: Session | None = None,
        max_turns: int = 50,
        command_timeout_seconds: float | None = None,
    ) -> None:
        self.agent = agent
        self.ui = ui
        self.workspace = workspace
        self.shell = shell
        self.editors = editors or default_editors()
        self.tools = tools or ToolRegistry()
        self.validator = validator
        self.session = session or Session()
        self.max_turns = max_turns
        self.command_timeout_seconds = command_timeout_seconds
        self.state = LoopState.AWAITING_RESPONSE

    async def run(self, prompt: str) -> LoopResult:
        turns = 0
        while turns < self.max_turns:
            self.state = LoopState.AWAITING_RESPONSE
            try:
                response = await self.agent.send(prompt, on_chunk=self.ui.stream_chunk)
                turns += 1
                if response.conversation_id:
                    self.session.conversation_id = response.conversation_id
                self.state = LoopState.DISPATCHING_ACTIONS
                outcome = await self.dispatch(response)
            except TaskPilotError as exc:
                self.state = LoopState.FAILED
                logger.error("Agent loop aborted: %s", exc)
                self.ui.notify(str(exc), "error")
                return LoopResult(LoopStatus.FAILED, str(exc), turns)

            if outcome.status is not None:
                self.state = (
                    LoopState.COMPLETED
                    if outcome.status is LoopStatus.COMPLETED
                    else LoopState.FAILED
                )
                logger.info("Loop finished as %s after %d turns.", outcome.status.value, turns)
                return LoopResult(outcome.status, outcome.summary, turns)

            next_prompt = await self._next_prompt(response, outcome)
            if isinstance(next_prompt, LoopStatus):
                self.state = LoopState.STOPPED
                if next_prompt is LoopStatus.NO_ACTIONS:
                    self.ui.notify("Agent took no actions.", "warning")
                return LoopResult(next_prompt, outcome.results_text, turns)
            prompt = next_prompt

        self.state = LoopState.STOPPED
        self.ui.notify(f"Stopped after {turns} turns without completion.", "warning")
        return LoopResult(LoopStatus.STOPPED, f"Turn limit of {self.max_turns} reached.", turns)

    async def _next_prompt(self, response: AgentResponse, outcome: TurnOutcome) -> str | LoopStatus:
        results = outcome.results_text
        if outcome.question:
            self.state = LoopState.AWAITING_USER_INPUT
            reply = await self.ui.ask("Your answer:")
            if reply is None:
                return LoopStatus.STOPPED
            return f"{results}\n\nUser Reply: {reply}" if results else reply
        if results:
            self.state = LoopState.AWAITING_NEXT_TURN
            self.ui.notify("Sending tool results to agent...")
            return f"{results}\n\n{CONTINUE_DIRECTIVE}"
        if response.message:
            self.ui.show(response.message)
            self.state = LoopState.AWAITING_USER_INPUT
            reply = await self.ui.ask("Your answer:")
            return LoopStatus.STOPPED if reply is None else reply
        return LoopStatus.NO_ACTIONS

    async def dispatch(self, response: AgentResponse) -> TurnOutcome:
        """Execute every action of one turn, in order."""
        outcome = TurnOutcome()
        for action in response.actions:
            logger.info("Executing action %s", action.type)
            try:
                result = await self._execute(action, outcome)
            except (OSError, ValueError, UnsupportedEditError) as exc:
                logger.warning("Action %s failed: %s", action.type, exc)
                result = f"[Action {action.type}{self._label(action)}]: Error: {exc}"
            if result:
                outcome.results.append(result)
        sentinel = detect_sentinel(response)
        if sentinel is not None:
            outcome.status, outcome.summary = sentinel
        return outcome

    @staticmethod
    def _label(action) -> str:
        if isinstance(action, RunCommandAction):
            subject = action.command
        elif isinstance(action, UseToolAction):
            subject = action.tool_name
        elif isinstance(action, AstEditAction):
            subject = action.target_path
        elif isinstance(action, TalkAction):
            subject = None
        else:
            subject = action.path
        return f"({subject})" if subject else ""

    async def _execute(self, action, outcome: TurnOutcome) -> str | None:
        if isinstance(action, TalkAction):
            self.ui.show(action.content or "")
            outcome.question = True
            return None
        if isinstance(action, ReadFileAction):
            path = _require(action.path, "path", "read_file")
            self.ui.notify(f"Reading: {path}")
            return f"[Action read_file({path}) Result]:\n{self.workspace.read_text(path)}"
        if isinstance(action, ListFilesAction):
            path = action.path or "."
            self.ui.notify(f"Scanning dir: {path}")
            return f"[Action list_files({path}) Result]:\n{self.workspace.list_dir(path)}"
        if isinstance(action, SearchFileAction):
            pattern = _require(action.path, "path", "search_file")
            self.ui.notify(f"Searching: {pattern}")
            return f"[Action search_file({pattern}) Result]:\n{self.workspace.search(pattern)}"
        if isinstance(action, RunCommandAction):
            return await self._run_command(action)
        if isinstance(action, CreateFileAction):
            return await self._create_file(action)
        if isinstance(action, ModifyFileAction):
            return await self._modify_file(action)
        if isinstance(action, DeleteFileAction):
            return await self._delete_file(action)
        if isinstance(action, AstEditAction):
            return await self._ast_edit(action)
        if isinstance(action, UseToolAction):
            return await self._use_tool(action)
        raise TypeError(f"Unhandled action type: {type(action).__name__}")

    async def _confirm(self, message: str, flag: str) -> bool:
        if getattr(self.session, flag):
            return True
        choice = await self.ui.confirm(message)
        if choice is Approval.APPROVE_SESSION:
            setattr(self.session, flag, True)
            self.ui.notify("Auto-approval enabled for the rest of this session.")
            return True
        return choice is Approval.APPROVE

    async def _approve_files(self, message: str) -> bool:
        return await self._confirm(message, "auto_approve_files")

    async def _approve_commands(self, message: str) -> bool:
        return await self._confirm(message, "auto_approve_commands")

    async def _validate(self, path: str) -> str:
        if not self.session.validation_enabled or self.validator is None:
            return ""
        result = await self.validator.validate(path, self.workspace.load(path))
        if result.skipped:
            return f"\nNote: {result.skipped}"
        if result.valid:
            return ""
        self.ui.notify(f"Validation failed for {path}", "warning")
        return "\n" + result.feedback(path)

    async def _run_command(self, action: RunCommandAction) -> str:
        command = _require(action.command, "command", "run_command")
        if not await self._approve_commands(f"Execute command: {command}?"):
            return f"[Action run_command({command})]: User denied execution."
        self.ui.notify(f"Executing: {command}")
        timeout = self.command_timeout_seconds or self.shell.timeout_seconds
        result = await self.shell.run(command, timeout)
        return f"[Action run_command({command}) Result]:\n{result.format(timeout)}"

    async def _create_file(self, action: CreateFileAction) -> str:
        path = _require(action.path, "path", "create_file")
        content = action.content or ""
        excerpt = content[:200] + ("..." if len(content) > 200 else "")
        if not await self._approve_files(f"Agent wants to CREATE {path}:\n{excerpt}\nApprove?"):
            return f"[Action create_file({path})]: User denied."
        self.workspace.write(path, content)
        self.ui.notify(f"Created: {path}")
        return f"[Action create_file({path})]: Success" + await self._validate(path)

    async def _delete_file(self, action: DeleteFileAction) -> str:
        path = _require(action.path, "path", "delete_file")
        if not self.workspace.exists(path):
            return f"[Action delete_file({path})]: Error: File {path} does not exist."
        if not await self._approve_files(f"Agent wants to DELETE {path}. Approve?"):
            return f"[Action delete_file({path})]: User denied."
        self.workspace.delete(path)
        self.ui.notify(f"Deleted: {path}")
        return f"[Action delete_file({path})]: Success"

    async def _modify_file(self, action: ModifyFileAction) -> str:
        path = _require(action.path, "path", "modify_file")
        if action.target_content:
            return await self._replace_anchor(path, action.target_content, action.content or "")
        if action.line_range:
            return await self._replace_range(path, action)
        return f"[Action modify_file({path})]: Failed. Missing target_content or line_range."

    async def _replace_anchor(self, path: str, anchor: str, content: str) -> str:
        source = self.workspace.load(path)
        normalized = source.replace("\r\n", "\n")
        needle = anchor.replace("\r\n", "\n")
        occurrences = normalized.count(needle)
        if occurrences == 0:
            return (
                f"[Action modify_file({path})]: Failed. target_content not found, aborted. "
                "Read the file again and copy the exact text to replace."
            )
        if occurrences > 1:
            return (
                f"[Action modify_file({path})]: Failed. target_content is ambiguous "
                f"({occurrences} occurrences), aborted. Include more surrounding lines."
            )
        if not await self._approve_files(f"Agent wants to MODIFY {path}. Approve?"):
            return f"[Action modify_file({path})]: User denied."
        updated = normalized.replace(needle, content.replace("\r\n", "\n"), 1)
        self.workspace.write(path, _match_newlines(updated, source))
        self.ui.notify(f"Modified: {path}")
        return f"[Action modify_file({path})]: Success" + await self._validate(path)

    async def _replace_range(self, path: str, action: ModifyFileAction) -> str:
        line_range = action.line_range or []
        if len(line_range) != 2:
            raise ValueError("line_range must be [start, end].")
        start, end = line_range
        source = self.workspace.load(path)
        lines = _split_lines(source)
        if start < 1 or end < start or end > len(lines):
            raise ValueError(
                f"line_range {start}-{end} is outside the file ({len(lines)} lines)."
            )
        content = action.content or ""
        segment = "".join(lines[start - 1 : end])
        key = (path, start, end, content)
        previewed = self.session.previews.get(key)

        if action.confirmed and previewed == segment:
            if not await self._approve_files(
                f"Agent wants to MODIFY {path} lines {start}-{end}. Approve?"
            ):
                return f"[Action modify_file({path})]: User denied."
            replacement = _match_newlines(content, source)
            if replacement and segment.endswith(("\n", "\r")) and not replacement.endswith("\n"):
                replacement += "\r\n" if segment.endswith("\r\n") else "\n"
            lines[start - 1 : end] = [replacement]
            self.workspace.write(path, "".join(lines))
            del self.session.previews[key]
            self.ui.notify(f"Modified: {path} (lines {start}-{end})")
            return (
                f"[Action modify_file({path})]: Success (replaced lines {start}-{end})"
                + await self._validate(path)
            )

        notice = ""
        if action.confirmed and previewed is not None:
            notice = "The targeted lines changed since the last preview. Review this fresh preview.\n"
        elif action.confirmed:
            notice = "No earlier preview matches this edit. Review the preview first.\n"
        self.session.previews[key] = segment
        return (
            f"[Action modify_file({path}) Preview]:\n{notice}"
            + self._render_preview(path, lines, start, end, content)
        )

    @staticmethod
    def _render_preview(path: str, lines: list[str], start: int, end: int, content: str) -> str:
        def numbered(first: int, chunk: list[str]) -> list[str]:
            stripped = [line.rstrip("\r\n") for line in chunk]
            return [f"{first + i:>5} | {line}" for i, line in enumerate(stripped)]

        before_start = max(1, start - PREVIEW_CONTEXT_LINES)
        after_end = min(len(lines), end + PREVIEW_CONTEXT_LINES)
        parts = ["Context before:"]
        parts.extend(numbered(before_start, lines[before_start - 1 : start - 1]) or ["  (start of file)"])
        parts.append(f"Lines {start}-{end} to be replaced:")
        parts.extend(numbered(start, lines[start - 1 : end]))
        parts.append("Context after:")
        parts.extend(numbered(end + 1, lines[end:after_end]) or ["  (end of file)"])
        parts.append("Proposed content:")
        parts.append(content)
        parts.append(review_edit(path, content))
        parts.append(
            'To apply, repeat this exact modify_file action with "confirmed": true.'
        )
        return "\n".join(parts)

    async def _ast_edit(self, action: AstEditAction) -> str:
        path = _require(action.target_path, "path", action.type)
        label = f"[Action {action.type}({path})]"
        editor = self.editors.for_path(path)
        if editor is None:
            extension = PurePath(path).suffix or "no extension"
            return f"{label}: Error: AST operations are not supported for this file type ({extension})."
        source = self.workspace.load(path)
        if not action.mutates:
            return f"{label} Result:\n{self._apply_ast(editor, action, source)}"
        updated = self._apply_ast(editor, action, source)
        if updated == source:
            return f"{label}: No changes needed."
        if not await self._approve_files(f"Agent wants to apply {action.type} to {path}. Approve?"):
            return f"{label}: User denied."
        self.workspace.write(path, updated)
        self.ui.notify(f"Edited: {path} ({action.type})")
        return f"{label}: Success" + await self._validate(path)

    @staticmethod
    def _apply_ast(editor: CodeEditor, action: AstEditAction, source: str) -> str:
        kind = action.type
        if kind == "ast_list_structure":
            return editor.list_structure(source)
        if kind == "search_ast":
            return editor.search(source, _require(action.pattern, "pattern", kind))
        if kind == "modify_ast":
            return editor.rewrite(
                source, _require(action.pattern, "pattern", kind), _require(action.fix, "fix", kind)
            )
        if kind == "ast_add_class":
            return editor.add_class(
                source,
                _require(action.class_name, "class_name", kind),
                action.extends_class,
                action.implements_interfaces,
            )
        if kind == "ast_add_method":
            return editor.add_method(
                source,
                _require(action.class_name, "class_name", kind),
                _require(action.method_code, "method_code", kind),
            )
        if kind == "ast_modify_method":
            return editor.modify_method(
                source,
                _require(action.class_name, "class_name", kind),
                _require(action.method_name, "method_name", kind),
                method_code=action.method_code,
                new_body=action.new_body,
            )
        if kind == "ast_remove_method":
            return editor.remove_method(
                source,
                _require(action.class_name, "class_name", kind),
                _require(action.method_name, "method_name", kind),
            )
        if kind == "ast_add_property":
            return editor.add_property(
                source,
                _require(action.class_name, "class_name", kind),
                _require(action.property_code, "property_code", kind),
            )
        if kind == "ast_remove_property":
            return editor.remove_property(
                source,
                _require(action.class_name, "class_name", kind),
                _require(action.property_name, "property_name", kind),
            )
        if kind == "ast_add_decorator":
            return editor.add_decorator(
                source,
                _require(action.decorator_code, "decorator_code", kind),
                class_name=action.class_name,
                function_name=action.method_name or action.function_name,
            )
        if kind == "ast_add_interface":
            return editor.add_interface(
                source, _require(action.interface_code, "interface_code", kind)
            )
        if kind == "ast_add_type_alias":
            return editor.add_type_alias(source, _require(action.type_code, "type_code", kind))
        if kind == "ast_add_function":
            return editor.add_function(
                source, _require(action.function_code, "function_code", kind)
            )
        if kind == "ast_remove_function":
            return editor.remove_function(
                source, _require(action.function_name, "function_name", kind)
            )
        if kind == "ast_add_import":
            return editor.add_import(
                source, _require(action.import_statement, "import_statement", kind)
            )
        if kind == "ast_remove_import":
            return editor.remove_import(
                source, import_statement=action.import_statement, module_path=action.module_path
            )
        if kind == "ast_organize_imports":
            return editor.organize_imports(source)
        raise ValueError(f"Unknown structured edit '{kind}'.")

    async def _use_tool(self, action: UseToolAction) -> str:
        name = _require(action.tool_name, "tool_name", "use_mcp_tool")
        if self.tools.get(name) is None:
            known = ", ".join(tool.name for tool in self.tools.list()) or "none"
            return f"[Action use_mcp_tool({name})]: Error: Unknown tool. Available tools: {known}"
        if not await self._approve_commands(f"Run tool {name} with {action.tool_args or '{}'}?"):
            return f"[Action use_mcp_tool({name})]: User denied execution."
        result = await self.tools.call(name, action.tool_args)
        output = result.output
        if not isinstance(output, str):
            output = json.dumps(output, ensure_ascii=False, indent=2, default=str)
        return f"[Action use_mcp_tool({name}) Result]:\n{output}"
