"""
steps.py

Responsibility: record the outcome of every pipeline step.

Each step moves through a small state machine:

    pending -> running -> succeeded | failed
    pending -> skipped

The provisioner drives the transitions; tests and the final summary read them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, TypeVar

T = TypeVar("T")


class StepStateError(RuntimeError):
    pass


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.RUNNING, StepStatus.SKIPPED}),
    StepStatus.RUNNING: frozenset({StepStatus.SUCCEEDED, StepStatus.FAILED}),
    StepStatus.SUCCEEDED: frozenset(),
    StepStatus.FAILED: frozenset(),
    StepStatus.SKIPPED: frozenset(),
}


@dataclass
class StepResult:
    name: str
    status: StepStatus = StepStatus.PENDING
    detail: str = ""

    @property
    def done(self) -> bool:
        return not _TRANSITIONS[self.status]


class StepLog:
    def __init__(self, names: Iterable[str]) -> None:
        self._steps: dict[str, StepResult] = {}
        for name in names:
            if name in self._steps:
                raise StepStateError(f"Duplicate step name: {name}")
            self._steps[name] = StepResult(name=name)

    def __getitem__(self, name: str) -> StepResult:
        try:
            return self._steps[name]
        except KeyError:
            raise StepStateError(f"Unknown step: {name}") from None

    def status(self, name: str) -> StepStatus:
        return self[name].status

    @property
    def results(self) -> list[StepResult]:
        return list(self._steps.values())

    def _move(self, name: str, status: StepStatus, detail: str | None = None) -> StepResult:
        step = self[name]
        if status not in _TRANSITIONS[step.status]:
            raise StepStateError(f"Step {name!r} cannot go from {step.status.value} to {status.value}")
        step.status = status
        if detail is not None:
            step.detail = detail
        return step

    def start(self, name: str) -> None:
        self._move(name, StepStatus.RUNNING)

    def succeed(self, name: str, detail: str = "") -> None:
        self._move(name, StepStatus.SUCCEEDED, detail)

    def fail(self, name: str, detail: str = "") -> None:
        self._move(name, StepStatus.FAILED, detail)

    def skip(self, name: str, reason: str = "") -> None:
        self._move(name, StepStatus.SKIPPED, reason)

    def run(self, name: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run `fn` as step `name`. The step fails (and the exception propagates)
        if `fn` raises; otherwise it succeeds.
        """
        self.start(name)
        try:
            value = fn(*args, **kwargs)
        except BaseException as e:
            self.fail(name, str(e).splitlines()[0] if str(e) else type(e).__name__)
            raise
        self.succeed(name)
        return value

    def skip_remaining(self, reason: str) -> None:
        for step in self._steps.values():
            if step.status is StepStatus.PENDING:
                self.skip(step.name, reason)

    def summary_lines(self) -> list[str]:
        width = max((len(name) for name in self._steps), default=0)
        lines = []
        for step in self._steps.values():
            line = f"{step.name.ljust(width)}  {step.status.value}"
            if step.detail:
                line += f"  ({step.detail})"
            lines.append(line)
        return lines
