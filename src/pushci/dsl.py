# src/pushci/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional

from .model import Job, PushTrigger, Step, Workflow


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None, phase: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd, phase=phase)


def checkout(name: str = "Checkout") -> Step:
    """Acquire the source at the triggering commit."""
    return Step(name=name, kind="checkout", phase="checkout")


def toolchain(
    name: str = "Install Rust",
    *,
    toolchain: str = "stable",
    profile: str | None = "minimal",
    override: bool = True,
) -> Step:
    """Install a Rust toolchain with rustup."""
    return Step(
        name=name,
        kind="toolchain",
        data={"toolchain": toolchain, "profile": profile, "override": override},
        phase="toolchain",
    )


def cargo(name: str, command: str, args: str = "", *, phase: str | None = None) -> Step:
    """
    Run `cargo <command> <args>`.

    build/check steps default to the "build" phase, run to "run".
    """
    if phase is None:
        phase = {"build": "build", "check": "build", "run": "run"}.get(command)
    return Step(
        name=name,
        kind="cargo",
        data={"command": command, "args": args},
        phase=phase,
    )


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,
    env: Optional[Dict[str, str]] = None,
    runs_on: str = "local",
    working_directory: str | None = None,
    cwd: str | None = None,  # applied to steps missing cwd
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    return Job(
        name=name,
        steps=steps_final,
        runs_on=runs_on,
        working_directory=working_directory,
        env={k: str(v) for k, v in (env or {}).items()},
    )


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*jobs: Job, name: str = "workflow", branches: Optional[List[str]] = None) -> Workflow:
    """
    Workflow definition helper.

    Users can write:
        from pushci import wf, job, sh

        def workflow():
            return wf(job(...), branches=["develop"])
    """
    trigger = PushTrigger(tuple(branches)) if branches else PushTrigger()
    return Workflow(name=name, jobs=list(jobs), on=trigger)


workflow = wf  # alias (avoid naming your function workflow if you use it)


def rust_workflow(branch: str = "develop", profile: str = "release") -> Workflow:
    """Build and run a Rust project in `src` on every push to `branch`."""
    return wf(
        job(
            "build",
            checkout(),
            toolchain("Install Rust", toolchain="stable", profile="minimal", override=True),
            cargo("Build", "build", f"--{profile}"),
            sh("Run", "cargo run", phase="run"),
            runs_on="ubuntu-latest",
            working_directory="src",
        ),
        name="Rust - Build and Run",
        branches=[branch],
    )
