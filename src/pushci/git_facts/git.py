# git.py
# Small, focused wrapper around the Git CLI.
# All Git interactions go through here so the runner and the CLI
# never build `git ...` command lines themselves.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Every other function builds on top of this one so that git is always
    invoked the same way (text output, stripped, non-zero exit raises
    subprocess.CalledProcessError).

    Args:
        args: git arguments, e.g. ["rev-parse", "HEAD"]
        cwd: optional directory to run in; defaults to the process cwd.

    Returns:
        Stdout of the command with surrounding whitespace removed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.PIPE,
    )
    return out.strip()


def repo_root(cwd: Optional[str | Path] = None) -> Path:
    """Absolute path of the repository containing `cwd`."""
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def head_sha(cwd: Optional[str | Path] = None) -> str:
    """
    Full SHA of the current HEAD commit.

    Used as the commit reference of a locally built trigger event.
    """
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def current_branch(cwd: Optional[str | Path] = None) -> Optional[str]:
    """
    Name of the checked out branch, or None on a detached HEAD.
    """
    # `--abbrev-ref HEAD` prints "HEAD" on a detached checkout
    ref = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    return None if ref == "HEAD" else ref


def clone(repo: str, dest: str | Path) -> Path:
    """
    Clone `repo` (URL or local path) into `dest`.

    `dest` may exist as long as it is empty, which is how the runner hands
    over a freshly provisioned workspace.
    """
    dest = Path(dest)
    _git(["clone", "--quiet", repo, str(dest)])
    return dest


def checkout(ref: str, cwd: str | Path) -> str:
    """
    Check out `ref` (sha, branch or tag) in `cwd` with a detached HEAD and
    return the resolved commit sha.
    """
    _git(["checkout", "--quiet", "--detach", ref], cwd=cwd)
    return head_sha(cwd=cwd)
