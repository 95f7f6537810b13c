# loader.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .model import Job, PushTrigger, Step, Workflow


# ----------------------------------------------------------------------
# Python workflows
# ----------------------------------------------------------------------

def _as_workflow(obj: Any, default_name: str) -> Workflow:
    if isinstance(obj, Workflow):
        return obj
    if isinstance(obj, list) and all(isinstance(j, Job) for j in obj):
        return Workflow(name=default_name, jobs=obj)
    raise TypeError(
        "Workflow must return/define a Workflow or a List[Job]. "
        "Define workflow() -> Workflow, WORKFLOW = wf(...) or JOBS = [Job, ...]."
    )


def load_python_workflow(path: Path) -> Workflow:
    """
    Load a workflow from a python file.

    The file must define one of:
      - workflow() -> Workflow | List[Job]
      - WORKFLOW = Workflow(...)
      - JOBS = [Job, ...]
    """
    module_name = f"pushci_workflow_{path.stem}"
    globals_dict = runpy.run_path(str(path), run_name=module_name)

    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        try:
            obj = globals_dict["workflow"]()
        except TypeError as e:
            if "positional argument" in str(e):
                raise TypeError(
                    "Your workflow() is being called with arguments (name collision with the helper). "
                    "Use the 'wf' helper instead: `from pushci import wf, job, sh` then "
                    "`def workflow(): return wf(job(...))`"
                ) from e
            raise
    elif "WORKFLOW" in globals_dict:
        obj = globals_dict["WORKFLOW"]
    elif "JOBS" in globals_dict:
        obj = globals_dict["JOBS"]
    else:
        obj = None

    return _as_workflow(obj, path.stem)


# ----------------------------------------------------------------------
# YAML workflows (GitHub Actions subset)
# ----------------------------------------------------------------------

# `uses:` prefix -> step kind
USES_KINDS = {
    "actions/checkout": "checkout",
    "actions-rs/toolchain": "toolchain",
    "actions-rs/cargo": "cargo",
}


def _push_branches(on: Any) -> tuple[str, ...]:
    if on is None:
        raise ValueError("workflow has no 'on' section")
    if isinstance(on, str):
        on = [on]
    if isinstance(on, list):
        if "push" not in on:
            raise ValueError("workflow is not triggered by push")
        return ("*",)
    if not isinstance(on, dict) or "push" not in on:
        raise ValueError("workflow is not triggered by push")

    push = on["push"] or {}
    if not isinstance(push, dict):
        raise ValueError("'on.push' must be a mapping")
    branches = push.get("branches")
    if branches is None:
        return ("*",)
    if isinstance(branches, str):
        branches = [branches]
    return tuple(str(b) for b in branches)


def _phase_for(kind: str | None, data: Dict[str, Any], run: str) -> str | None:
    if kind == "checkout":
        return "checkout"
    if kind == "toolchain":
        return "toolchain"
    if kind == "cargo":
        return {"build": "build", "check": "build", "run": "run"}.get(str(data.get("command")))
    # plain `run:` steps: cargo invocations still get a phase
    words = run.split()
    if len(words) >= 2 and words[0] == "cargo":
        return {"build": "build", "run": "run"}.get(words[1])
    return None


def _parse_step(job_id: str, idx: int, raw: Dict[str, Any]) -> Step:
    if not isinstance(raw, dict):
        raise ValueError(f"job '{job_id}' step #{idx + 1} must be a mapping")

    uses = raw.get("uses")
    run = str(raw.get("run") or "").strip()
    data = dict(raw.get("with") or {})
    cwd = raw.get("working-directory")

    kind = None
    if uses:
        action = str(uses).split("@", 1)[0]
        kind = USES_KINDS.get(action)
        if kind is None:
            raise ValueError(f"job '{job_id}' step #{idx + 1}: unsupported action {uses!r}")
    elif not run:
        raise ValueError(f"job '{job_id}' step #{idx + 1} needs 'uses' or 'run'")

    name = raw.get("name") or (uses if uses else run.splitlines()[0])
    return Step(
        name=str(name),
        run=run,
        cwd=cwd,
        kind=kind,
        data=data or None,
        phase=_phase_for(kind, data, run),
    )


def load_yaml_workflow(path: Path) -> Workflow:
    with open(path, encoding="utf-8") as f:
        try:
            doc = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"{path.name}: invalid YAML: {e}") from e

    if not isinstance(doc, dict) or not doc.get("jobs"):
        raise ValueError(f"{path.name}: workflow defines no jobs")

    # YAML 1.1 reads a bare `on:` key as boolean True
    on = doc.get("on", doc.get(True))
    trigger = PushTrigger(_push_branches(on))

    jobs: List[Job] = []
    if not isinstance(doc["jobs"], dict):
        raise ValueError(f"{path.name}: 'jobs' must be a mapping of job id to job")

    for job_id, raw in doc["jobs"].items():
        raw = raw or {}
        if not isinstance(raw, dict):
            raise ValueError(f"{path.name}: job '{job_id}' must be a mapping")
        defaults = raw.get("defaults") or {}
        run_defaults = (defaults.get("run") if isinstance(defaults, dict) else None) or {}
        if not isinstance(run_defaults, dict):
            raise ValueError(f"{path.name}: job '{job_id}' has an invalid 'defaults.run' section")
        raw_steps = raw.get("steps") or []
        if not isinstance(raw_steps, list):
            raise ValueError(f"{path.name}: job '{job_id}' 'steps' must be a list")
        env = raw.get("env") or {}
        if not isinstance(env, dict):
            raise ValueError(f"{path.name}: job '{job_id}' 'env' must be a mapping")
        steps = [_parse_step(job_id, i, s) for i, s in enumerate(raw_steps)]
        if not steps:
            raise ValueError(f"job '{job_id}' has no steps")
        jobs.append(
            Job(
                name=str(job_id),
                steps=steps,
                runs_on=str(raw.get("runs-on") or "local"),
                working_directory=run_defaults.get("working-directory"),
                env={str(k): str(v) for k, v in env.items()},
            )
        )

    return Workflow(name=str(doc.get("name") or path.stem), jobs=jobs, on=trigger)


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> Workflow:
    """Load a workflow from a .py or .yml/.yaml file."""
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix == ".py":
        return load_python_workflow(wf_path)
    if wf_path.suffix in (".yml", ".yaml"):
        return load_yaml_workflow(wf_path)
    raise ValueError(f"Workflow must be a .py, .yml or .yaml file, got: {wf_path.name}")
