"""Shell execution with captured output and a hard wall-clock timeout."""

from __future__ import annotations

import asyncio
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path

from taskpilot.util.logging import get_logger

logger = get_logger(__name__)

MAX_OUTPUT_CHARS = 50_000
READER_GRACE_SECONDS = 2.0


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int | None
    timed_out: bool = False
    duration: float = 0.0

    def format(self, timeout_seconds: float | None = None) -> str:
        if self.timed_out:
            limit = f" after {timeout_seconds:g}s" if timeout_seconds else ""
            return (
                f"Error: Command timed out{limit}.\n"
                f"Output so far:\n{self.stdout}\n{self.stderr}"
            ).rstrip()
        if self.exit_code == 0:
            return self.stdout.strip() or "Command executed successfully (no output)."
        return (
            f"Command failed with exit code {self.exit_code}.\n"
            f"STDERR:\n{self.stderr}\nSTDOUT:\n{self.stdout}"
        ).rstrip()


def sanitize_env(env: dict[str, str]) -> dict[str, str]:
    """Drop credentials from the environment handed to agent commands."""
    return {key: value for key, value in env.items() if not _is_sensitive_key(key)}


def _is_sensitive_key(key: str) -> bool:
    upper = key.upper()
    return (
        upper.startswith("TASKPILOT_ACCESS_TOKEN")
        or upper.startswith("API_KEY")
        or upper.startswith("TOKEN")
        or upper.startswith("SECRET")
    )


def _clip(text: str) -> str:
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    return text[:MAX_OUTPUT_CHARS] + f"\n[output truncated, {len(text)} chars total]"


class ShellRunner:
    """Runs agent commands through the system shell inside the workspace."""

    def __init__(self, cwd: str | Path, timeout_seconds: float = 300.0) -> None:
        self.cwd = Path(cwd)
        self.timeout_seconds = timeout_seconds

    async def run(self, command: str, timeout_seconds: float | None = None) -> CommandResult:
        timeout = timeout_seconds or self.timeout_seconds
        started = time.monotonic()
        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self.cwd),
            env=sanitize_env(dict(os.environ)),
            start_new_session=True,
        )
        stdout_parts: list[bytes] = []
        stderr_parts: list[bytes] = []
        readers = [
            asyncio.ensure_future(_drain(process.stdout, stdout_parts)),
            asyncio.ensure_future(_drain(process.stderr, stderr_parts)),
        ]
        timed_out = False
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning("Command exceeded %.0fs, killing: %s", timeout, command)
            _kill_group(process)
            await process.wait()
        try:
            await asyncio.wait_for(asyncio.gather(*readers), timeout=READER_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Output pipes still open after the command ended; abandoning them.")
        return CommandResult(
            stdout=_clip(b"".join(stdout_parts).decode("utf-8", errors="replace")),
            stderr=_clip(b"".join(stderr_parts).decode("utf-8", errors="replace")),
            exit_code=None if timed_out else process.returncode,
            timed_out=timed_out,
            duration=time.monotonic() - started,
        )


async def _drain(stream: asyncio.StreamReader | None, sink: list[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            return
        sink.append(chunk)


def _kill_group(process: asyncio.subprocess.Process) -> None:
    # The shell leads its own session, so its children share the group id.
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        logger.debug("Process group %s already exited.", process.pid)
