# dispatch.py
from __future__ import annotations

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .model import TriggerEvent
from .runner import PipelineResult, PipelineRunner
from .trigger import branch_from_ref
from .ui.console import get_console


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunRecord:
    """Bookkeeping for one submitted push: queued -> running -> ok|failed|skipped."""
    id: str
    event: TriggerEvent
    status: str = "queued"
    created_at: datetime = field(default_factory=now_utc)
    finished_at: Optional[datetime] = None
    result: Optional[PipelineResult] = None
    future: Optional[Future] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict:
        return {
            "run_id": self.id,
            "branch": self.event.branch,
            "sha": self.event.sha,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "result": self.result.to_dict() if self.result else None,
        }


class Dispatcher:
    """
    Queues pipeline runs for overlapping pushes.

    Each branch gets its own single-worker executor, so pushes to the same
    branch run one at a time in arrival order while different branches do
    not wait on each other. Nothing is cancelled or superseded. A branch's
    executor is dropped once its last queued run has finished.
    """

    def __init__(self, runner: PipelineRunner):
        self.runner = runner
        self._lock = threading.Lock()
        self._queues: Dict[str, ThreadPoolExecutor] = {}
        self._pending: Dict[str, int] = {}
        self._runs: Dict[str, RunRecord] = {}

    def submit(self, event: TriggerEvent) -> RunRecord:
        record = RunRecord(id=uuid.uuid4().hex, event=event)
        branch = branch_from_ref(event.branch) or event.branch

        with self._lock:
            self._runs[record.id] = record
            pool = self._queues.get(branch)
            if pool is None:
                pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"pushci-{branch}")
                self._queues[branch] = pool
            self._pending[branch] = self._pending.get(branch, 0) + 1
            record.future = pool.submit(self._execute, record, branch)
        return record

    def _release(self, branch: str) -> None:
        with self._lock:
            self._pending[branch] -= 1
            if self._pending[branch]:
                return
            del self._pending[branch]
            pool = self._queues.pop(branch, None)
        if pool is not None:
            # called from the pool's own worker: must not wait for it
            pool.shutdown(wait=False)

    def active_branches(self) -> List[str]:
        """Branches with queued or running pushes."""
        with self._lock:
            return sorted(self._queues)

    def _execute(self, record: RunRecord, branch: str) -> PipelineResult:
        try:
            return self._run_record(record)
        finally:
            self._release(branch)

    def _run_record(self, record: RunRecord) -> PipelineResult:
        record.status = "running"
        try:
            result = self.runner.run(record.event)
        except Exception as e:
            # anything that is not a PipelineError is a bug; keep the queue alive
            record.status = "failed"
            record.finished_at = now_utc()
            get_console().print_exception(e)
            raise
        record.result = result
        if not result.triggered:
            record.status = "skipped"
        else:
            record.status = "ok" if result.ok else "failed"
        record.finished_at = now_utc()
        return result

    def get(self, run_id: str) -> Optional[RunRecord]:
        with self._lock:
            return self._runs.get(run_id)

    def runs(self) -> List[RunRecord]:
        with self._lock:
            return sorted(self._runs.values(), key=lambda r: r.created_at)

    def wait(self, run_id: str, timeout: Optional[float] = None) -> PipelineResult:
        record = self.get(run_id)
        if record is None or record.future is None:
            raise KeyError(run_id)
        return record.future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            queues = list(self._queues.values())
            self._queues.clear()
        for pool in queues:
            pool.shutdown(wait=wait)
