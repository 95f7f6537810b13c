# trigger.py
from __future__ import annotations

from fnmatch import fnmatchcase

from .model import PushTrigger, TriggerEvent

BRANCH_REF_PREFIX = "refs/heads/"


def branch_from_ref(ref: str) -> str | None:
    """
    "refs/heads/develop" -> "develop"; a bare branch name is returned as is.
    Tag and other refs return None.
    """
    ref = ref.strip()
    if ref.startswith(BRANCH_REF_PREFIX):
        return ref[len(BRANCH_REF_PREFIX):]
    if ref.startswith("refs/"):
        return None
    return ref or None


def _matches_any(branch: str, patterns: tuple[str, ...]) -> bool:
    return any(fnmatchcase(branch, p) for p in patterns)


def should_trigger(trigger: PushTrigger, event: TriggerEvent) -> bool:
    """True if the event is a push to a branch the trigger accepts."""
    if event.event != "push":
        return False
    branch = branch_from_ref(event.branch)
    if branch is None:
        return False
    return _matches_any(branch, trigger.branches)


def describe(trigger: PushTrigger) -> str:
    return "push to " + ", ".join(trigger.branches)
