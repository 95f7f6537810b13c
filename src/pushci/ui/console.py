"""Console output formatting utilities for pushci."""

from __future__ import annotations

import sys
import threading
from typing import Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # runs from the dispatcher share one console
        self._lock = threading.Lock()

    def _print(self, *lines: str, file=None) -> None:
        with self._lock:
            for line in lines:
                print(line, file=file or sys.stdout)

    def print_run_started(
        self,
        workflow: str,
        branch: str,
        ref: str,
        repository: Optional[str] = None,
    ) -> None:
        """Print run start information."""
        lines = ["\nRUN STARTED", f"Workflow: {workflow}", f"Branch: {branch}", f"Ref: {ref}"]
        if repository:
            lines.append(f"Repository: {repository}")
        self._print(*lines, "")

    def print_not_triggered(self, branch: str, trigger: str) -> None:
        """Print why an event did not start a run."""
        self._print(f"NOT TRIGGERED: {branch} (workflow runs on {trigger})")

    def print_job_start(self, name: str, workspace: str) -> None:
        self._print(f"\nJOB STARTED: {name}", f"Workspace: {workspace}")

    def print_step(self, name: str, cmd: str | None = None) -> None:
        """Print step start message."""
        self._print(f"STEP: {name}")
        if cmd and self.debug:
            self._print(f"[DEBUG] $ {cmd}", file=sys.stderr)

    def print_output(self, text: str) -> None:
        """Write step output exactly as the step produced it."""
        with self._lock:
            sys.stdout.write(text)
            sys.stdout.flush()

    def print_step_ok(self, name: str, duration: float) -> None:
        self._print(f"STATUS: success ({duration:.1f}s)")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
        is_job: bool = False,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Job or step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
            is_job: If True, print "JOB FAILED", otherwise "STEP FAILED"
        """
        prefix = "JOB FAILED" if is_job else "STEP FAILED"
        lines = [f"{prefix}: {name}"]
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        if hint:
            lines.append(f"Hint: {hint}")
        if reason:
            lines.append(f"Error: {reason}")
        self._print(*lines)

    def print_result(self, state: str, exit_code: int, steps: list[tuple[str, str]]) -> None:
        """Print final results summary."""
        lines = ["\n" + "=" * 40, "RESULTS", "=" * 40]
        for step, status in steps:
            lines.append(f"  {step}: {status}")
        lines.append(f"State: {state}")
        lines.append(f"Exit code: {exit_code}")
        self._print(*lines)

    def print_plan(self, workflow: str, trigger: str, jobs: list[tuple[str, str | None, list[str]]]) -> None:
        """Print the ordered steps of a workflow without running them."""
        lines = [f"\nWORKFLOW: {workflow}", f"Trigger: {trigger}"]
        for name, workdir, steps in jobs:
            lines.append(f"\nJob: {name}" + (f" (working directory: {workdir})" if workdir else ""))
            for i, step in enumerate(steps, start=1):
                lines.append(f"  {i}. {step}")
        self._print(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._print(*lines, file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._print(f"Error: {exc}", file=sys.stderr)

    def print_server_started(self, host: str, port: int, workflow: str, trigger: str) -> None:
        self._print(
            "\nSERVER STARTED",
            f"Listening on: http://{host}:{port}",
            f"Workflow: {workflow}",
            f"Trigger: {trigger}",
            "",
        )

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (initialized by the CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
