from __future__ import annotations

from pathlib import Path

import pytest

from pushci.model import TriggerEvent
from pushci.runner import StepResult
from pushci.ui.console import Console, set_console


@pytest.fixture(autouse=True)
def console() -> Console:
    c = Console(debug=False)
    set_console(c)
    return c


class Recorder:
    """Step function that records calls instead of spawning processes."""

    def __init__(self, fail: str | None = None, code: int = 101, output: str = ""):
        self.calls: list[str] = []
        self.cwds: list[Path] = []
        self.fail = fail
        self.code = code
        self.output = output

    def __call__(self, job, step, cwd, env) -> StepResult:
        self.calls.append(step.name)
        self.cwds.append(cwd)
        if step.name == self.fail:
            return StepResult(job.name, step.name, step.phase, self.code, output=self.output)
        return StepResult(job.name, step.name, step.phase, 0)


def fake_checkout(event: TriggerEvent, dest: Path) -> str:
    (dest / "src").mkdir()
    return event.sha or "0" * 40


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
