"""In-process state of device-import commits: jobs, idempotent results, row locks, metrics.

Single-instance only. Nothing here survives a restart and nothing is shared
between worker processes.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..common.datetime_utils import now_utc
from ..core.enums import ImportJobStatus
from .model import ImportJob


@dataclass
class ImportMetrics:
    total_runs: int = 0
    total_success: int = 0
    total_failed: int = 0
    total_synced: int = 0
    total_latency_ms: float = 0.0
    retry_runs: int = 0


class ImportRuntime:
    def __init__(self, clock: Callable[[], datetime] = now_utc):
        self._clock = clock
        self._lock = threading.Lock()
        self._jobs: Dict[str, ImportJob] = {}
        self._results: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._held: Set[Tuple[str, str]] = set()
        self._metrics: Dict[str, ImportMetrics] = {}

    # Jobs
    def create_job(self, job_id: str, school_id: str, total_rows: int) -> ImportJob:
        job = ImportJob(
            id=job_id,
            school_id=school_id,
            started_at=self._clock(),
            total_rows=total_rows,
            created_at=self._clock(),
        )
        with self._lock:
            self._jobs[job.id] = job
        return replace(job)

    def get_job(self, job_id: str) -> Optional[ImportJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job else None

    def update_job(self, job_id: str, **changes: Any) -> Optional[ImportJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            for key, value in changes.items():
                setattr(job, key, value)
            return replace(job)

    def finish_job(self, job_id: str, *, status: ImportJobStatus, **changes: Any) -> Optional[ImportJob]:
        return self.update_job(job_id, status=status, finished_at=self._clock(), **changes)

    def increment_retry(self, job_id: str) -> Optional[ImportJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            job.retry_count += 1
            job.status = ImportJobStatus.PENDING
            job.last_error = None
            return replace(job)

    # Idempotency
    def get_result(self, school_id: str, key: Optional[str]) -> Optional[Dict[str, Any]]:
        key = (key or "").strip()
        if not key:
            return None
        with self._lock:
            result = self._results.get((school_id, key))
            return dict(result) if result else None

    def set_result(self, school_id: str, key: Optional[str], result: Dict[str, Any]) -> None:
        key = (key or "").strip()
        if not key:
            return
        with self._lock:
            self._results[(school_id, key)] = dict(result)

    # Locks
    def acquire(self, school_id: str, employee_nos: Iterable[str]) -> Tuple[bool, List[str]]:
        """Take every lock or none; returns ``(ok, conflicting employee numbers)``."""

        keys = [(school_id, no) for no in dict.fromkeys(employee_nos)]
        with self._lock:
            conflicts = [no for (_, no) in keys if (school_id, no) in self._held]
            if conflicts:
                return False, conflicts
            self._held.update(keys)
        return True, []

    def release(self, school_id: str, employee_nos: Iterable[str]) -> None:
        with self._lock:
            for no in employee_nos:
                self._held.discard((school_id, no))

    def is_locked(self, school_id: str, employee_no: str) -> bool:
        with self._lock:
            return (school_id, employee_no) in self._held

    # Metrics
    def record_run(
        self,
        school_id: str,
        *,
        success: int,
        failed: int,
        synced: int,
        latency_ms: float,
        is_retry: bool,
    ) -> None:
        with self._lock:
            metrics = self._metrics.setdefault(school_id, ImportMetrics())
            metrics.total_runs += 1
            metrics.total_success += success
            metrics.total_failed += failed
            metrics.total_synced += synced
            metrics.total_latency_ms += max(0.0, latency_ms)
            if is_retry:
                metrics.retry_runs += 1

    def metrics_view(self, school_id: str) -> Dict[str, Any]:
        with self._lock:
            metrics = replace(self._metrics.get(school_id) or ImportMetrics())
        runs = max(1, metrics.total_runs)
        processed = metrics.total_success + metrics.total_failed
        return {
            "totalRuns": metrics.total_runs,
            "totalSuccess": metrics.total_success,
            "totalFailed": metrics.total_failed,
            "totalSynced": metrics.total_synced,
            "successRate": metrics.total_success / processed if processed > 0 else 0,
            "retryRate": metrics.retry_runs / runs,
            "meanLatencyMs": metrics.total_latency_ms / runs,
        }
