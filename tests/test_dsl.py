from __future__ import annotations

import pytest

from pushci.dsl import cargo, checkout, job, rust_workflow, sh, toolchain, wf
from pushci.model import Job, Step


def test_rust_workflow_contract() -> None:
    workflow = rust_workflow()

    assert workflow.on.branches == ("develop",)
    assert len(workflow.jobs) == 1

    build = workflow.jobs[0]
    assert build.working_directory == "src"
    assert [s.phase for s in build.steps] == ["checkout", "toolchain", "build", "run"]

    install = build.steps[1]
    assert install.data == {"toolchain": "stable", "profile": "minimal", "override": True}

    compile_step = build.steps[2]
    assert compile_step.data == {"command": "build", "args": "--release"}

    assert build.steps[3].run == "cargo run"


def test_cargo_phase_defaults() -> None:
    assert cargo("Build", "build").phase == "build"
    assert cargo("Run", "run").phase == "run"
    assert cargo("Test", "test").phase is None


def test_job_requires_steps() -> None:
    with pytest.raises(ValueError, match="at least one step"):
        job("empty")


def test_job_cwd_applies_to_steps_without_one() -> None:
    j = job("x", sh("a", "true"), sh("b", "true", cwd="other"), cwd="src")
    assert [s.cwd for s in j.steps] == ["src", "other"]


def test_out_of_order_phases_rejected() -> None:
    with pytest.raises(ValueError, match="must not come after"):
        job("bad", checkout(), cargo("Build", "build", "--release"), toolchain())

    with pytest.raises(ValueError, match="must not come after"):
        Job(name="bad", steps=[Step("Run", "cargo run", phase="run"), Step("Build", "cargo build", phase="build")])


def test_unknown_phase_rejected() -> None:
    with pytest.raises(ValueError, match="unknown phase"):
        job("bad", sh("x", "true", phase="deploy"))


def test_wf_branches() -> None:
    workflow = wf(job("x", sh("a", "true")), name="demo", branches=["main", "release/*"])
    assert workflow.name == "demo"
    assert workflow.on.branches == ("main", "release/*")
