"""Single help probes against a target executable.

`HelpFetcher.fetch_help` runs, in order:

    <binary> <args...> --help
    <binary> <args...> -h
    <binary> <args...> help        (only when both flag forms print nothing)

Each invocation has its own timeout, no stdin, pagers disabled, and stdout and
stderr captured together (plenty of tools print help on stderr). Output that
says it is not the full help (curl) triggers one retry with `--help all`.
"""

from __future__ import annotations

import os
import re
import shlex
import shutil
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Protocol

from .config import DEFAULT_TIMEOUT_S, trace
from .errors import (
    BinaryNotFoundError,
    HelptreeError,
    ProbeCancelledError,
    ProbeError,
    ProbeTimeoutError,
)

PAGER_ENV: Final[dict[str, str]] = {
    "PAGER": "cat",
    "MANPAGER": "cat",
    "GIT_PAGER": "cat",
    "AWS_PAGER": "",
}

TRUNCATED_HELP_RE: Final = re.compile(
    r"not the full help|[\"']--help[ =]all[\"']", re.IGNORECASE
)
EXPANDED_HELP_ARGS: Final[tuple[str, ...]] = ("--help", "all")

_UNKNOWN_COMMAND_RE: Final = re.compile(
    r"\b(?:unknown|unrecognized|invalid|no such)\s+(?:sub)?command\b"
    r"|is not a [\w-]+ command|did you mean",
    re.IGNORECASE,
)
_BOILERPLATE_MAX_LINES: Final[int] = 5

VERSION_MAX_CHARS: Final[int] = 64


@dataclass(frozen=True, slots=True)
class RunResult:
    returncode: int
    output: str


class CommandRunner(Protocol):
    def run(
        self,
        argv: list[str],
        *,
        env: dict[str, str],
        timeout_s: float,
        cancel: threading.Event | None = None,
    ) -> RunResult: ...


def help_env() -> dict[str, str]:
    return {**os.environ, **PAGER_ENV}


def _kill(proc: subprocess.Popen) -> None:
    # The child runs in its own session, so take down anything it spawned too.
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except (ProcessLookupError, PermissionError):
        proc.kill()
    try:
        proc.communicate(timeout=1)
    except subprocess.TimeoutExpired:
        pass


@dataclass(frozen=True, slots=True)
class SubprocessRunner:
    """Runs a command, polling so cancellation is noticed mid-run."""

    poll_interval_s: float = 0.05

    def run(
        self,
        argv: list[str],
        *,
        env: dict[str, str],
        timeout_s: float,
        cancel: threading.Event | None = None,
    ) -> RunResult:
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=env,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise BinaryNotFoundError(argv[0]) from e
        except OSError as e:
            raise ProbeError(f"could not run {argv[0]}: {e}") from e

        deadline = time.monotonic() + timeout_s
        while True:
            if cancel is not None and cancel.is_set():
                _kill(proc)
                raise ProbeCancelledError(f"cancelled: {shlex.join(argv)}")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                _kill(proc)
                raise ProbeTimeoutError(argv, timeout_s)
            try:
                output, _ = proc.communicate(
                    timeout=min(self.poll_interval_s, remaining)
                )
            except subprocess.TimeoutExpired:
                continue
            return RunResult(returncode=proc.returncode, output=output or "")


def is_help_boilerplate(text: str) -> bool:
    """True for "unknown command / run --help" replies that carry no content."""
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) > _BOILERPLATE_MAX_LINES:
        return False
    lowered = text.lower()
    if _UNKNOWN_COMMAND_RE.search(lowered):
        return True
    return len(lines) <= 2 and (
        "--help" in lowered or "for more information" in lowered
    )


def _is_fuller_help(expanded: str, original: str) -> bool:
    # A tool that rejects `--help all` answers with a short error instead.
    return (
        bool(expanded)
        and len(expanded) >= len(original)
        and not is_help_boilerplate(expanded)
    )


@dataclass(frozen=True, slots=True)
class HelpFetcher:
    timeout_s: float = DEFAULT_TIMEOUT_S
    runner: CommandRunner = field(default_factory=SubprocessRunner)

    def _invoke(
        self, binary: str, args: list[str], *, cancel: threading.Event | None
    ) -> str:
        argv = [binary, *args]
        if cancel is not None and cancel.is_set():
            raise ProbeCancelledError(f"cancelled: {shlex.join(argv)}")
        trace(f"probe: {shlex.join(argv)}", level=2)
        result = self.runner.run(
            argv, env=help_env(), timeout_s=self.timeout_s, cancel=cancel
        )
        return result.output.strip()

    def fetch_help(
        self,
        binary: str,
        args_prefix: Sequence[str] = (),
        *,
        cancel: threading.Event | None = None,
    ) -> str | None:
        """Return the help text for `binary args_prefix...`, or None if silent.

        Raises ProbeTimeoutError / ProbeCancelledError / BinaryNotFoundError;
        a timed-out form is not retried with the other forms.
        """
        prefix = list(args_prefix)
        for help_flag in ("--help", "-h"):
            text = self._invoke(binary, [*prefix, help_flag], cancel=cancel)
            if not text:
                continue
            if TRUNCATED_HELP_RE.search(text):
                trace(f"truncated help from {shlex.join([binary, *prefix])}, retrying")
                try:
                    expanded = self._invoke(
                        binary, [*prefix, *EXPANDED_HELP_ARGS], cancel=cancel
                    )
                except ProbeTimeoutError:
                    expanded = ""
                if _is_fuller_help(expanded, text):
                    return expanded
            return text

        text = self._invoke(binary, [*prefix, "help"], cancel=cancel)
        if text and not is_help_boilerplate(text):
            return text
        return None


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def resolve_binary(command: str) -> str:
    """Locate `command`: PATH, then the cwd, then next to the running program."""
    if not command:
        raise BinaryNotFoundError(command)
    if "/" in command or os.sep in command:
        path = Path(command).expanduser()
        if _is_executable(path):
            return str(path)
        raise BinaryNotFoundError(command)

    found = shutil.which(command)
    if found:
        return found

    for directory in (Path.cwd(), Path(sys.argv[0] or ".").resolve().parent):
        candidate = directory / command
        if _is_executable(candidate):
            return str(candidate)
    raise BinaryNotFoundError(command)


def probe_version(
    binary: str,
    *,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    runner: CommandRunner | None = None,
) -> str:
    """First line of `<binary> --version`, or "unknown"."""
    runner = runner or SubprocessRunner()
    try:
        result = runner.run(
            [binary, "--version"], env=help_env(), timeout_s=timeout_s
        )
    except HelptreeError:
        return "unknown"
    output = result.output.strip()
    if result.returncode != 0 or not output:
        return "unknown"
    return output.splitlines()[0].strip()[:VERSION_MAX_CHARS] or "unknown"
