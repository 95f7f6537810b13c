# runner.py
from __future__ import annotations

import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .actions import compile_job
from .environment import Workspace
from .git_facts import git
from .model import PHASE_STATE, Job, PipelineState, Step, TriggerEvent, Workflow
from .trigger import branch_from_ref, describe, should_trigger
from .ui.console import get_console


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

# step phase -> error kind reported when that step fails
ERROR_KINDS = {
    "checkout": "provision",
    "toolchain": "toolchain",
    "build": "compile",
    "run": "run",
}

TOOL_HINTS = {
    "cargo": "Install Rust (rustup installs cargo) or fix PATH.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "git": "Install Git or fix PATH.",
}


@dataclass
class PipelineError(Exception):
    """
    Structured pipeline error with enough context for:
      - clean CLI output
      - the webhook server's run records
      - debugging without full tracebacks

    kind is one of: provision, toolchain, compile, run, step
    """
    kind: str
    job: str
    step: str | None
    message: str
    exit_code: int = 1
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"job={self.job}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(PipelineError):
    """A step ran and exited non-zero."""
    cmd: str = ""
    output: str = ""


def error_kind(step: Step) -> str:
    return ERROR_KINDS.get(step.phase or "", "step")


def _exit_code(returncode: int) -> int:
    # killed by signal N -> 128 + N, as a shell reports it
    if returncode < 0:
        return 128 - returncode
    return returncode


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

@dataclass
class StepResult:
    job: str
    step: str
    phase: str | None
    exit_code: int
    output: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class PipelineResult:
    workflow: str
    event: TriggerEvent
    triggered: bool = True
    state: PipelineState = PipelineState.IDLE
    steps: List[StepResult] = field(default_factory=list)
    exit_code: int = 0
    error: Optional[PipelineError] = None
    sha: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def failed_step(self) -> str | None:
        return self.error.step if self.error else None

    def to_dict(self) -> dict:
        return {
            "workflow": self.workflow,
            "branch": self.event.branch,
            "sha": self.sha or self.event.sha,
            "triggered": self.triggered,
            "state": self.state.value,
            "exit_code": self.exit_code,
            "steps": [
                {"job": s.job, "step": s.step, "phase": s.phase, "exit_code": s.exit_code,
                 "duration": round(s.duration, 3)}
                for s in self.steps
            ],
            "error": None if self.error is None else {
                "kind": self.error.kind,
                "job": self.error.job,
                "step": self.error.step,
                "message": self.error.message,
                "output": getattr(self.error, "output", ""),
            },
        }


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

StepFn = Callable[[Job, Step, Path, Dict[str, str]], StepResult]
CheckoutFn = Callable[[TriggerEvent, Path], str]


def run_step(job: Job, step: Step, cwd: Path, env: Dict[str, str]) -> StepResult:
    """
    Run a shell step, streaming its combined stdout/stderr verbatim to the
    console. Raises StepFailure on a non-zero exit.
    """
    console = get_console()
    started = time.monotonic()

    proc = subprocess.Popen(
        step.run,
        shell=True,
        cwd=str(cwd),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        errors="replace",
    )
    chunks: List[str] = []
    assert proc.stdout is not None
    with proc.stdout:
        for line in proc.stdout:
            chunks.append(line)
            console.print_output(line)
    returncode = proc.wait()

    output = "".join(chunks)
    code = _exit_code(returncode)
    if code != 0:
        details = {"cwd": str(cwd)}
        tool = step.run.split()[0] if step.run.split() else ""
        if code == 127 and tool in TOOL_HINTS:
            details["hint"] = TOOL_HINTS[tool]
        raise StepFailure(
            kind=error_kind(step),
            job=job.name,
            step=step.name,
            message=f"step '{step.name}' failed (exit={code}): {step.run}",
            exit_code=code,
            details=details,
            cmd=step.run,
            output=output,
        )
    return StepResult(
        job=job.name,
        step=step.name,
        phase=step.phase,
        exit_code=0,
        output=output,
        duration=time.monotonic() - started,
    )


def checkout_source(event: TriggerEvent, dest: Path) -> str:
    """Clone the event's repository into `dest` and check out its commit."""
    if not event.repo:
        raise ValueError("trigger event has no repository to check out")
    git.clone(event.repo, dest)
    ref = event.sha or f"origin/{branch_from_ref(event.branch) or event.branch}"
    return git.checkout(ref, dest)


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

class PipelineRunner:
    """
    Runs a workflow for one trigger event.

    Jobs run in declaration order, each in a fresh Workspace; steps run in
    order and the first failure ends the run (no retries).
    """

    def __init__(
        self,
        workflow: Workflow,
        *,
        work_root: Optional[str | Path] = None,
        keep_workspace: Optional[bool] = None,
        step_fn: Optional[StepFn] = None,
        checkout_fn: Optional[CheckoutFn] = None,
    ):
        self.workflow = workflow
        self.work_root = work_root
        self.keep_workspace = keep_workspace
        self.step_fn = step_fn or run_step
        self.checkout_fn = checkout_fn or checkout_source

    def triggers_on(self, event: TriggerEvent) -> bool:
        return should_trigger(self.workflow.on, event)

    def run(self, event: TriggerEvent) -> PipelineResult:
        console = get_console()
        result = PipelineResult(workflow=self.workflow.name, event=event)

        if not self.triggers_on(event):
            result.triggered = False
            console.print_not_triggered(event.branch, describe(self.workflow.on))
            return result

        console.print_run_started(
            workflow=self.workflow.name,
            branch=event.branch,
            ref=event.ref,
            repository=event.repo,
        )

        for job in self.workflow.jobs:
            try:
                self._run_job(job, event, result)
            except PipelineError as e:
                result.state = PipelineState.FAILED
                result.error = e
                result.exit_code = e.exit_code or 1
                console.print_failure(
                    e.step or job.name,
                    e.message,
                    exit_code=e.exit_code,
                    hint=e.details.get("hint"),
                    is_job=e.step is None,
                )
                break

        console.print_result(
            result.state.value,
            result.exit_code,
            [(s.step, "SUCCESS") for s in result.steps]
            + ([(result.failed_step or "?", "FAILED")] if result.error else []),
        )
        return result

    def _run_job(self, job: Job, event: TriggerEvent, result: PipelineResult) -> None:
        console = get_console()
        steps = compile_job(job)

        workspace = Workspace(self.work_root, keep=self.keep_workspace)
        try:
            workspace.provision()
        except OSError as e:
            raise PipelineError(
                kind="provision",
                job=job.name,
                step=None,
                message=f"could not provision workspace: {e}",
            ) from e

        try:
            console.print_job_start(job.name, str(workspace.path))
            env = os.environ.copy()
            env.update(job.env)
            env["PUSHCI_WORKSPACE"] = str(workspace.path)
            env["PUSHCI_BRANCH"] = branch_from_ref(event.branch) or event.branch
            if event.sha:
                env["PUSHCI_SHA"] = event.sha

            for step in steps:
                console.print_step(step.name, step.run or None)
                if step.kind == "checkout":
                    step_result = self._checkout(job, step, event, workspace, result)
                else:
                    cwd = workspace.resolve(step.cwd)
                    if not cwd.is_dir():
                        raise PipelineError(
                            kind=error_kind(step),
                            job=job.name,
                            step=step.name,
                            message=f"working directory not found: {step.cwd}",
                            details={"cwd": str(cwd)},
                        )
                    step_result = self.step_fn(job, step, cwd, env)
                    if not step_result.ok:
                        # custom step functions may report instead of raising
                        raise StepFailure(
                            kind=error_kind(step),
                            job=job.name,
                            step=step.name,
                            message=f"step '{step.name}' failed (exit={step_result.exit_code}): {step.run}",
                            exit_code=step_result.exit_code,
                            cmd=step.run,
                            output=step_result.output,
                        )

                result.steps.append(step_result)
                if step.phase in PHASE_STATE:
                    result.state = PHASE_STATE[step.phase]
                console.print_step_ok(step.name, step_result.duration)
        finally:
            workspace.destroy()

    def _checkout(
        self,
        job: Job,
        step: Step,
        event: TriggerEvent,
        workspace: Workspace,
        result: PipelineResult,
    ) -> StepResult:
        started = time.monotonic()
        try:
            sha = self.checkout_fn(event, workspace.path)
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip() if isinstance(e.stderr, str) else ""
            raise PipelineError(
                kind="provision",
                job=job.name,
                step=step.name,
                message=f"source acquisition failed: {stderr or e}",
                exit_code=_exit_code(e.returncode) or 1,
            ) from e
        except (OSError, ValueError) as e:
            raise PipelineError(
                kind="provision",
                job=job.name,
                step=step.name,
                message=f"source acquisition failed: {e}",
            ) from e
        result.sha = sha
        return StepResult(
            job=job.name,
            step=step.name,
            phase=step.phase,
            exit_code=0,
            output=sha,
            duration=time.monotonic() - started,
        )
