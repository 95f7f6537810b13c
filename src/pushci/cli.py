# cli.py
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import click

from pushci import settings
from pushci.actions import compile_job
from pushci.dispatch import Dispatcher
from pushci.dsl import rust_workflow
from pushci.git_facts.git import current_branch, head_sha, repo_root
from pushci.loader import load_workflow
from pushci.model import TriggerEvent, Workflow
from pushci.runner import PipelineRunner
from pushci.trigger import branch_from_ref, describe
from pushci.ui.console import Console, get_console, set_console


def discover_workflow(workflow_arg: str | None) -> Workflow:
    """
    Resolve the workflow to run.

    Order: --workflow, then the default workflow file in the current
    directory (PUSHCI_WORKFLOW, pushci_workflow.py), then the built-in
    Rust build-and-run workflow.

    Raises:
        SystemExit: If an explicit workflow file cannot be found
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and not workflow_path.suffix:
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  pushci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return load_workflow(workflow_path)

    default_path = Path(settings.DEFAULT_WORKFLOW)
    if default_path.exists():
        console.print_debug(f"Using workflow file {default_path}")
        return load_workflow(default_path)

    console.print_debug("No workflow file found, using the built-in Rust workflow")
    return rust_workflow()


def build_event(branch: str | None, sha: str | None, repo: str | None) -> TriggerEvent:
    """
    Build a push event from CLI options, filling gaps from the local git
    repository (current branch, HEAD, repository root).
    """
    console = get_console()
    try:
        if repo is None:
            repo = str(repo_root())
            console.print_debug(f"Using local repository: {repo}")
        if branch is None:
            branch = current_branch(cwd=repo if Path(repo).exists() else None)
            if branch is None:
                console.print_error(
                    "Could not determine branch",
                    "HEAD is detached and no --branch was given.",
                    suggestion="Specify the pushed branch explicitly:\n  pushci run --branch develop",
                )
                sys.exit(1)
        if sha is None and Path(repo).exists():
            sha = head_sha(cwd=repo)
    except subprocess.CalledProcessError:
        console.print_error(
            "Not a git repository",
            "Could not read branch/commit from the current directory.",
            suggestion="Run inside a git repository or pass --repo, --branch and --sha.",
        )
        sys.exit(1)
    except FileNotFoundError:
        console.print_error(
            "Git command not found",
            "Could not find git command.",
            suggestion="Install Git or pass --repo, --branch and --sha explicitly.",
        )
        sys.exit(1)

    return TriggerEvent(branch=branch_from_ref(branch) or branch, sha=sha, repo=repo)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """pushci: build and run a project on every push to a branch."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py/.yml); defaults to the built-in Rust workflow")
@click.option("--branch", default=None, help="Pushed branch (defaults to the current branch)")
@click.option("--sha", default=None, help="Pushed commit (defaults to HEAD)")
@click.option("--repo", default=None, help="Repository URL or path (defaults to the current repository)")
@click.option("--work-root", default=None, help="Directory for ephemeral workspaces (defaults to PUSHCI_WORK_ROOT or the temp dir)")
@click.option("--keep-workspace/--no-keep-workspace", default=None, help="Keep the workspace after the run")
@click.pass_context
def run(ctx, workflow, branch, sha, repo, work_root, keep_workspace):
    """Run the workflow for a push event."""
    console = get_console()

    try:
        wf = discover_workflow(workflow)
        event = build_event(branch, sha, repo)

        runner = PipelineRunner(wf, work_root=work_root, keep_workspace=keep_workspace)
        dispatcher = Dispatcher(runner)
        try:
            record = dispatcher.submit(event)
            result = dispatcher.wait(record.id)
        finally:
            dispatcher.shutdown()

        sys.exit(result.exit_code)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except (FileNotFoundError, ValueError, TypeError) as e:
        console.print_error("Invalid workflow", str(e))
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py/.yml); defaults to the built-in Rust workflow")
@click.pass_context
def plan(ctx, workflow):
    """Print the trigger and ordered steps without running anything."""
    console = get_console()
    try:
        wf = discover_workflow(workflow)
        jobs = []
        for job in wf.jobs:
            steps = []
            for step in compile_job(job):
                label = step.name
                if step.run:
                    label += f": {step.run}"
                if step.kind == "checkout":
                    label += ": <checkout triggering commit>"
                steps.append(label)
            jobs.append((job.name, job.working_directory, steps))
        console.print_plan(wf.name, describe(wf.on), jobs)
    except (FileNotFoundError, ValueError, TypeError) as e:
        console.print_error("Invalid workflow", str(e))
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py/.yml); defaults to the built-in Rust workflow")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, type=int, show_default=True)
@click.pass_context
def serve(ctx, workflow, host, port):
    """Receive push webhooks and run the workflow for matching branches."""
    import uvicorn

    from pushci.server import create_app

    console = get_console()
    try:
        wf = discover_workflow(workflow)
    except (FileNotFoundError, ValueError, TypeError) as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(1)

    console.print_server_started(host, port, wf.name, describe(wf.on))
    try:
        uvicorn.run(create_app(wf), host=host, port=port)
    except KeyboardInterrupt:
        console.print_info("\nServer stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    cli()
