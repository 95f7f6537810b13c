# actions.py
from __future__ import annotations

import shlex
from dataclasses import replace

from .model import Job, Step


KNOWN_ACTIONS = ("checkout", "toolchain", "cargo")


def _truthy(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def compile_toolchain(step: Step) -> list[Step]:
    """
    Turn a toolchain step into rustup commands.

    Inputs (step.data): toolchain, profile, override.
    """
    data = step.data or {}
    toolchain = str(data.get("toolchain") or "stable")
    profile = data.get("profile")

    cmd = f"rustup toolchain install {shlex.quote(toolchain)}"
    if profile:
        cmd += f" --profile {shlex.quote(str(profile))}"

    out = [Step(name=step.name, run=cmd, cwd=step.cwd, phase=step.phase)]
    if _truthy(data.get("override", False)):
        out.append(
            Step(
                name=f"{step.name} (override)",
                run=f"rustup override set {shlex.quote(toolchain)}",
                cwd=step.cwd,
                phase=step.phase,
            )
        )
    return out


def compile_cargo(step: Step) -> list[Step]:
    """Turn a cargo step into `cargo <command> <args>`."""
    data = step.data or {}
    command = data.get("command")
    if not command:
        raise ValueError(f"cargo step '{step.name}' needs a 'command' input")
    args = str(data.get("args") or "").strip()
    cmd = f"cargo {shlex.quote(str(command))} {args}".strip()
    return [Step(name=step.name, run=cmd, cwd=step.cwd, phase=step.phase)]


def compile_step(step: Step) -> list[Step]:
    """
    Turn a typed step into runnable shell steps.

    Plain shell steps and checkout steps pass through unchanged; checkout
    needs the trigger event and is executed by the runner itself.
    """
    if step.kind is None or step.kind == "checkout":
        return [step]
    if step.kind == "toolchain":
        return compile_toolchain(step)
    if step.kind == "cargo":
        return compile_cargo(step)
    raise ValueError(f"Unknown action kind: {step.kind!r}. Known: {list(KNOWN_ACTIONS)}")


def compile_job(job: Job) -> list[Step]:
    """All runnable steps of a job, with the job's default cwd applied."""
    out: list[Step] = []
    for step in job.steps:
        for s in compile_step(step):
            if s.cwd is None and s.kind != "checkout" and job.working_directory:
                s = replace(s, cwd=job.working_directory)
            out.append(s)
    return out
