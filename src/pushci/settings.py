from __future__ import annotations
import os

# Where ephemeral workspaces are created (defaults to the system temp dir)
WORK_ROOT = os.environ.get("PUSHCI_WORK_ROOT") or None
KEEP_WORKSPACE = os.environ.get("PUSHCI_KEEP_WORKSPACE", "0").lower() in ("1", "true", "yes")
WEBHOOK_SECRET = os.environ.get("PUSHCI_WEBHOOK_SECRET") or None
DEFAULT_WORKFLOW = os.environ.get("PUSHCI_WORKFLOW", "pushci_workflow.py")
