from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from conftest import Recorder, fake_checkout
from pushci.dsl import job, rust_workflow, sh, wf
from pushci.model import PipelineState, TriggerEvent
from pushci.runner import PipelineRunner, StepFailure, run_step

RUST_STEPS = ["Install Rust", "Install Rust (override)", "Build", "Run"]


def make_runner(tmp_path: Path, recorder: Recorder, workflow=None) -> PipelineRunner:
    return PipelineRunner(
        workflow or rust_workflow(),
        work_root=tmp_path,
        step_fn=recorder,
        checkout_fn=fake_checkout,
    )


def test_push_to_develop_runs_steps_in_order(tmp_path: Path, recorder: Recorder) -> None:
    result = make_runner(tmp_path, recorder).run(TriggerEvent(branch="develop", sha="def456", repo="repo"))

    assert result.triggered
    assert result.ok
    assert result.exit_code == 0
    assert result.state == PipelineState.RAN
    assert result.sha == "def456"
    assert [s.step for s in result.steps] == ["Checkout", *RUST_STEPS]
    assert recorder.calls == RUST_STEPS
    assert all(cwd.name == "src" for cwd in recorder.cwds)


def test_push_to_other_branch_does_not_run(tmp_path: Path, recorder: Recorder) -> None:
    result = make_runner(tmp_path, recorder).run(TriggerEvent(branch="main", sha="abc123", repo="repo"))

    assert not result.triggered
    assert result.exit_code == 0
    assert result.state == PipelineState.IDLE
    assert result.steps == []
    assert recorder.calls == []


def test_compile_failure_halts_before_run(tmp_path: Path, capsys) -> None:
    recorder = Recorder(fail="Build", code=101, output="error[E0425]: cannot find value `x`\n")
    result = make_runner(tmp_path, recorder).run(TriggerEvent(branch="develop", sha="abc123", repo="repo"))

    assert not result.ok
    assert result.exit_code == 101
    assert result.state == PipelineState.FAILED
    assert result.failed_step == "Build"
    assert result.error.kind == "compile"
    assert isinstance(result.error, StepFailure)
    assert "cannot find value" in result.error.output
    assert "Run" not in recorder.calls
    assert recorder.calls == ["Install Rust", "Install Rust (override)", "Build"]
    assert "STEP FAILED: Build" in capsys.readouterr().out


def test_run_failure_reports_run_kind(tmp_path: Path) -> None:
    recorder = Recorder(fail="Run", code=101)
    result = make_runner(tmp_path, recorder).run(TriggerEvent(branch="develop", repo="repo"))

    assert result.error.kind == "run"
    assert result.exit_code == 101
    assert recorder.calls == RUST_STEPS


def test_toolchain_failure(tmp_path: Path) -> None:
    recorder = Recorder(fail="Install Rust", code=1)
    result = make_runner(tmp_path, recorder).run(TriggerEvent(branch="develop", repo="repo"))

    assert result.error.kind == "toolchain"
    assert recorder.calls == ["Install Rust"]


def test_checkout_failure_is_provisioning_error(tmp_path: Path, recorder: Recorder) -> None:
    runner = PipelineRunner(rust_workflow(), work_root=tmp_path, step_fn=recorder)
    result = runner.run(TriggerEvent(branch="develop", sha="abc123"))

    assert result.error.kind == "provision"
    assert result.failed_step == "Checkout"
    assert result.exit_code == 1
    assert result.state == PipelineState.FAILED
    assert recorder.calls == []


def test_checkout_killed_by_signal(tmp_path: Path, recorder: Recorder) -> None:
    def killed_checkout(event: TriggerEvent, dest: Path) -> str:
        raise subprocess.CalledProcessError(-9, ["git", "clone"], stderr="")

    runner = PipelineRunner(rust_workflow(), work_root=tmp_path, step_fn=recorder, checkout_fn=killed_checkout)
    result = runner.run(TriggerEvent(branch="develop", sha="abc123", repo="repo"))

    assert result.error.kind == "provision"
    assert result.exit_code == 137
    assert result.error.exit_code == 137
    assert recorder.calls == []


def test_missing_working_directory(tmp_path: Path, recorder: Recorder) -> None:
    runner = PipelineRunner(
        rust_workflow(),
        work_root=tmp_path,
        step_fn=recorder,
        checkout_fn=lambda event, dest: "abc123",
    )
    result = runner.run(TriggerEvent(branch="develop", repo="repo"))

    assert result.error.kind == "toolchain"
    assert "working directory not found" in result.error.message
    assert recorder.calls == []


def test_workspaces_are_removed(tmp_path: Path, recorder: Recorder) -> None:
    make_runner(tmp_path, recorder).run(TriggerEvent(branch="develop", repo="repo"))
    make_runner(tmp_path, Recorder(fail="Build")).run(TriggerEvent(branch="develop", repo="repo"))
    assert list(tmp_path.iterdir()) == []


def test_jobs_run_in_order_and_stop_on_failure(tmp_path: Path) -> None:
    recorder = Recorder(fail="b1")
    workflow = wf(job("a", sh("a1", "true")), job("b", sh("b1", "false")), job("c", sh("c1", "true")))
    result = make_runner(tmp_path, recorder, workflow).run(TriggerEvent(branch="develop"))

    assert recorder.calls == ["a1", "b1"]
    assert result.error.kind == "step"
    assert result.error.job == "b"
    # plain shell steps do not move the state machine
    assert result.state == PipelineState.FAILED


# ----------------------------------------------------------------------
# Real subprocesses
# ----------------------------------------------------------------------

def test_run_step_streams_output_verbatim(tmp_path: Path, capsys) -> None:
    j = job("x", sh("Echo", "echo hello; echo warning: unused 1>&2"))
    result = run_step(j, j.steps[0], tmp_path, {"PATH": "/usr/bin:/bin"})

    assert result.ok
    assert "hello\n" in result.output
    assert "warning: unused\n" in result.output
    out = capsys.readouterr().out
    assert "hello\n" in out
    assert "warning: unused\n" in out


def test_run_step_failure_keeps_exit_code(tmp_path: Path) -> None:
    j = job("x", sh("Build", "echo 'error: could not compile'; exit 3", phase="build"))
    with pytest.raises(StepFailure) as excinfo:
        run_step(j, j.steps[0], tmp_path, {"PATH": "/usr/bin:/bin"})

    err = excinfo.value
    assert err.exit_code == 3
    assert err.kind == "compile"
    assert err.output == "error: could not compile\n"


def test_run_step_killed_by_signal(tmp_path: Path) -> None:
    j = job("x", sh("Run", "kill -9 $$", phase="run"))
    with pytest.raises(StepFailure) as excinfo:
        run_step(j, j.steps[0], tmp_path, {"PATH": "/usr/bin:/bin"})
    assert excinfo.value.exit_code == 137


def test_shell_workflow_end_to_end(tmp_path: Path) -> None:
    workflow = wf(
        job(
            "build",
            sh("Prepare", "mkdir -p out && echo built > out/bin"),
            sh("Run", "cat out/bin && exit 4", phase="run"),
        )
    )
    result = PipelineRunner(workflow, work_root=tmp_path).run(TriggerEvent(branch="develop"))

    assert result.exit_code == 4
    assert result.error.kind == "run"
    assert result.error.output == "built\n"


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_checkout_from_local_repository(tmp_path: Path) -> None:
    origin = tmp_path / "origin"
    (origin / "src").mkdir(parents=True)
    (origin / "src" / "hello.txt").write_text("hi\n", encoding="utf-8")

    def git(*args: str) -> str:
        return subprocess.check_output(
            ["git", "-c", "user.name=t", "-c", "user.email=t@example.com", *args],
            cwd=origin,
            text=True,
        ).strip()

    git("init", "--quiet")
    git("checkout", "--quiet", "-b", "develop")
    git("add", ".")
    git("commit", "--quiet", "-m", "init")
    sha = git("rev-parse", "HEAD")

    workflow = wf(job("build", *rust_workflow().jobs[0].steps[:1], sh("Check", "test -f hello.txt"), working_directory="src"))
    work = tmp_path / "work"
    runner = PipelineRunner(workflow, work_root=work)

    by_sha = runner.run(TriggerEvent(branch="develop", sha=sha, repo=str(origin)))
    assert by_sha.ok, by_sha.error
    assert by_sha.sha == sha
    assert by_sha.state == PipelineState.SOURCE_ACQUIRED

    by_branch = runner.run(TriggerEvent(branch="develop", repo=str(origin)))
    assert by_branch.ok, by_branch.error
    assert by_branch.sha == sha

    missing = runner.run(TriggerEvent(branch="develop", sha="f" * 40, repo=str(origin)))
    assert missing.error.kind == "provision"
