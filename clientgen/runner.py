"""
runner.py

Responsibility: the single place that spawns external processes.

`flutter`, `firebase`, `flutterfire` and `dart` are all invoked through
`CommandRunner.run`, which makes the whole pipeline replaceable by a fake
runner in tests.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127
COMMAND_TIMED_OUT = 124


class CommandError(RuntimeError):
    def __init__(self, result: CommandResult) -> None:
        super().__init__(f"Command failed ({result.returncode}): {' '.join(result.args)}\n\n{result.output}")
        self.result = result


@dataclass(frozen=True)
class CommandResult:
    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout/stderr, which is where the CLIs put their diagnostics."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


def _text(output: str | bytes | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


class CommandRunner:
    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    def run(
        self,
        cmd: list[str],
        *,
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
        check: bool = False,
    ) -> CommandResult:
        """
        Run a command to completion and capture its output.

        A missing executable is reported as return code 127 rather than raised,
        so "is this tool installed?" checks stay uniform.
        A command that outlives the timeout is reported as return code 124.
        """
        logger.debug("Running: %s (cwd=%s)", " ".join(cmd), cwd or ".")
        try:
            proc = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd is not None else None,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self._timeout,
            )
            result = CommandResult(args=list(cmd), returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)
        except FileNotFoundError:
            result = CommandResult(args=list(cmd), returncode=COMMAND_NOT_FOUND, stderr=f"command not found: {cmd[0]}")
        except subprocess.TimeoutExpired as e:
            result = CommandResult(
                args=list(cmd),
                returncode=COMMAND_TIMED_OUT,
                stdout=_text(e.stdout),
                stderr=f"timed out after {e.timeout:g}s: {cmd[0]}",
            )

        if result.ok:
            logger.debug("Succeeded: %s", cmd[0])
        else:
            logger.debug("Failed with code %s: %s\n%s", result.returncode, " ".join(cmd), result.output)

        if check and not result.ok:
            raise CommandError(result)
        return result
