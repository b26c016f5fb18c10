"""Post-write validation of files touched by the agent."""

from __future__ import annotations

import asyncio
import json
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Any

from taskpilot.errors import ConfigurationError
from taskpilot.util.logging import get_logger
from taskpilot.validation.markup import check_tag_balance

logger = get_logger(__name__)

MARKUP_EXTENSIONS = (".html", ".htm", ".xml", ".vue", ".svg")
CASE_SENSITIVE_MARKUP = (".xml", ".svg")

DEFAULT_RULES: dict[str, list[str]] = {
    ".ts": ["npx", "--no-install", "tsc", "--noEmit", "--skipLibCheck", "{path}"],
    ".tsx": ["npx", "--no-install", "tsc", "--noEmit", "--skipLibCheck", "--jsx", "preserve", "{path}"],
    ".py": ["{python}", "-m", "py_compile", "{path}"],
}

# Shells report 127 and npx reports 1 with this text when the tool is absent.
_MISSING_TOOL_MARKERS = ("could not determine executable", "command not found", "not found: tsc")


@dataclass
class ValidationResult:
    valid: bool
    diagnostics: list[str] = field(default_factory=list)
    skipped: str | None = None

    def feedback(self, path: str) -> str:
        if self.valid:
            return ""
        lines = "\n".join(f"  {item}" for item in self.diagnostics)
        return (
            f"CRITICAL: validation failed for {path}:\n{lines}\n"
            "Re-read the file, fix these problems and verify again."
        )


def _import_yaml():
    try:
        import yaml  # type: ignore
    except ImportError as exc:  # pragma: no cover - exercised in integration
        raise ConfigurationError("Install taskpilot[yaml] to use YAML validation rules.") from exc
    return yaml


def _rule_argv(value: Any, context: str) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise ConfigurationError(f"{context} must be a command string, a list of strings or null.")


def load_validation_rules(path: Path) -> dict[str, list[str] | None]:
    """Load ``{extension: argv}`` overrides from a YAML or JSON file.

    A ``null`` command disables the external check for that extension.
    """
    if not path.exists():
        raise ConfigurationError(f"Validation rules file not found: {path}")
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yml", ".yaml"}:
        data = _import_yaml().safe_load(text) or {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError("Validation rules must be a mapping.")
    rules = data.get("rules", data)
    if not isinstance(rules, dict):
        raise ConfigurationError("'rules' must be a mapping of extension to command.")
    loaded: dict[str, list[str] | None] = {}
    for extension, command in rules.items():
        key = str(extension).lower()
        if not key.startswith("."):
            key = "." + key
        loaded[key] = _rule_argv(command, f"rules.{extension}")
    return loaded


class ValidationGate:
    """Checks written files by extension: external compiler or tag balance."""

    def __init__(
        self,
        root: str | Path,
        rules: dict[str, list[str] | None] | None = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        self.root = Path(root)
        self.rules: dict[str, list[str] | None] = {**DEFAULT_RULES, **(rules or {})}
        self.timeout_seconds = timeout_seconds

    async def validate(self, path: str, content: str) -> ValidationResult:
        extension = PurePath(path).suffix.lower()
        if extension in MARKUP_EXTENSIONS:
            diagnostics = check_tag_balance(
                content, case_sensitive=extension in CASE_SENSITIVE_MARKUP
            )
            return ValidationResult(valid=not diagnostics, diagnostics=diagnostics)
        argv = self.rules.get(extension)
        if not argv:
            return ValidationResult(valid=True)
        return await self._compile(path, argv)

    async def _compile(self, path: str, template: list[str]) -> ValidationResult:
        argv = [part.format(path=path, python=sys.executable) for part in template]
        logger.debug("Validating %s with: %s", path, " ".join(argv))
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.root),
            )
        except FileNotFoundError:
            note = f"{argv[0]} is not installed; skipped validation of {path}."
            logger.info(note)
            return ValidationResult(valid=True, skipped=note)
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            note = f"Validation of {path} timed out after {self.timeout_seconds:g}s."
            logger.warning(note)
            return ValidationResult(valid=True, skipped=note)
        output = (stdout + stderr).decode("utf-8", errors="replace").strip()
        if process.returncode == 127 or any(
            marker in output.lower() for marker in _MISSING_TOOL_MARKERS
        ):
            note = f"{argv[0]} could not run its checker; skipped validation of {path}."
            logger.info(note)
            return ValidationResult(valid=True, skipped=note)
        if process.returncode == 0 and not output:
            return ValidationResult(valid=True)
        diagnostics = output.splitlines() or [f"exited with code {process.returncode}"]
        return ValidationResult(valid=False, diagnostics=diagnostics)
