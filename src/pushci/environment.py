# environment.py
from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Optional

from . import settings


class Workspace:
    """
    Ephemeral execution environment for one job run.

    The directory is created on enter and removed on exit, whether the job
    succeeded or not. Nothing in it survives across runs unless `keep` is set
    (useful when debugging a failing build locally).

        with Workspace() as ws:
            ...  # ws.path is an empty directory owned by this job
    """

    def __init__(
        self,
        root: Optional[str | Path] = None,
        *,
        prefix: str = "pushci-",
        keep: Optional[bool] = None,
    ):
        self.root = Path(root) if root is not None else (
            Path(settings.WORK_ROOT) if settings.WORK_ROOT else None
        )
        self.prefix = prefix
        self.keep = settings.KEEP_WORKSPACE if keep is None else keep
        self._path: Optional[Path] = None

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("Workspace is not provisioned")
        return self._path

    def provision(self) -> Path:
        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)
        self._path = Path(
            tempfile.mkdtemp(prefix=self.prefix, dir=str(self.root) if self.root else None)
        ).resolve()
        return self._path

    def destroy(self) -> None:
        if self._path is None:
            return
        if not self.keep:
            shutil.rmtree(self._path, ignore_errors=True)
        self._path = None

    def resolve(self, rel: str | None) -> Path:
        """Path of `rel` inside the workspace (the root for None)."""
        return (self.path / (rel or ".")).resolve()

    def __enter__(self) -> "Workspace":
        self.provision()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.destroy()
