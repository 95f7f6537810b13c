# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# Step phases, in the only order a job may contain them.
PHASE_ORDER = ("checkout", "toolchain", "build", "run")


class PipelineState(str, Enum):
    """Where a pipeline run currently stands."""
    IDLE = "idle"
    SOURCE_ACQUIRED = "source_acquired"
    TOOLCHAIN_READY = "toolchain_ready"
    BUILT = "built"
    RAN = "ran"
    FAILED = "failed"


# phase -> state reached once a step of that phase succeeds
PHASE_STATE = {
    "checkout": PipelineState.SOURCE_ACQUIRED,
    "toolchain": PipelineState.TOOLCHAIN_READY,
    "build": PipelineState.BUILT,
    "run": PipelineState.RAN,
}


@dataclass(frozen=True)
class Step:
    """A single step inside a pipeline job."""
    name: str
    run: str = ""
    cwd: str | None = None

    # typed steps ("checkout", "toolchain", "cargo") are compiled by actions.py
    kind: str | None = None
    data: Optional[Dict[str, Any]] = None

    phase: str | None = None


@dataclass
class Job:
    """
    A pipeline job: ordered steps executed in one workspace.

    `working_directory` is the default cwd (relative to the workspace root)
    for every step that does not set its own.
    """
    name: str
    steps: list[Step]

    runs_on: str = "local"
    working_directory: str | None = None
    env: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        check_phase_order(self)


@dataclass(frozen=True)
class PushTrigger:
    """Push filter: only pushes to these branches (glob patterns) trigger."""
    branches: tuple[str, ...] = ("develop",)


@dataclass
class Workflow:
    name: str
    jobs: List[Job]
    on: PushTrigger = field(default_factory=PushTrigger)


@dataclass(frozen=True)
class TriggerEvent:
    """
    A push to a named branch.

    repo: clone URL or local path of the repository the push went to.
    sha:  commit to acquire; None means the branch tip.
    """
    branch: str
    sha: str | None = None
    repo: str | None = None
    event: str = "push"

    @property
    def ref(self) -> str:
        return self.sha or self.branch


def check_phase_order(job: Job) -> None:
    """Raise ValueError if the job's phased steps are out of order."""
    last = -1
    last_step = None
    for step in job.steps:
        if step.phase is None:
            continue
        if step.phase not in PHASE_ORDER:
            raise ValueError(
                f"Job '{job.name}' step '{step.name}' has unknown phase {step.phase!r}. "
                f"Known phases: {list(PHASE_ORDER)}"
            )
        idx = PHASE_ORDER.index(step.phase)
        if idx < last:
            raise ValueError(
                f"Job '{job.name}': step '{step.name}' ({step.phase}) "
                f"must not come after '{last_step}' ({PHASE_ORDER[last]})"
            )
        last = idx
        last_step = step.name
