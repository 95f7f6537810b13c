from __future__ import annotations

import pytest

from pushci.actions import compile_job, compile_step
from pushci.dsl import cargo, rust_workflow, toolchain
from pushci.model import Step


def test_toolchain_with_override() -> None:
    steps = compile_step(toolchain("Install Rust", toolchain="stable", profile="minimal", override=True))
    assert [s.run for s in steps] == [
        "rustup toolchain install stable --profile minimal",
        "rustup override set stable",
    ]
    assert all(s.phase == "toolchain" for s in steps)


def test_toolchain_without_override() -> None:
    steps = compile_step(toolchain(toolchain="1.75.0", profile=None, override=False))
    assert [s.run for s in steps] == ["rustup toolchain install 1.75.0"]


def test_toolchain_override_string_input() -> None:
    step = Step("Install", kind="toolchain", data={"toolchain": "stable", "override": "false"})
    assert len(compile_step(step)) == 1


def test_cargo_build_release() -> None:
    (step,) = compile_step(cargo("Build", "build", "--release"))
    assert step.run == "cargo build --release"
    assert step.phase == "build"


def test_cargo_requires_command() -> None:
    with pytest.raises(ValueError, match="command"):
        compile_step(Step("Build", kind="cargo", data={"args": "--release"}))


def test_unknown_kind() -> None:
    with pytest.raises(ValueError, match="Unknown action kind"):
        compile_step(Step("Deploy", kind="docker"))


def test_compile_job_applies_working_directory() -> None:
    steps = compile_job(rust_workflow().jobs[0])

    assert [s.name for s in steps] == ["Checkout", "Install Rust", "Install Rust (override)", "Build", "Run"]
    assert steps[0].kind == "checkout"
    assert steps[0].cwd is None
    assert all(s.cwd == "src" for s in steps[1:])
    assert [s.run for s in steps[1:]] == [
        "rustup toolchain install stable --profile minimal",
        "rustup override set stable",
        "cargo build --release",
        "cargo run",
    ]
