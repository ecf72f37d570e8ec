"""
In-memory job table.
Thread-safe via one lock; records are replaced, never mutated, so readers
always see a consistent snapshot.
"""

import dataclasses
import logging
import threading
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Callable, Optional

from factchecker.core.constants import ACTIVE_STATUSES, MAX_JOBS
from factchecker.core.models import Job

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobStore:
    """
    Bounded job table ordered by last write (least recent first).

    When a put pushes the table past ``max_jobs`` the least recently updated
    job that no task owns is evicted and ``on_evict`` is called with it.
    Jobs in an active state are never evicted.
    """

    def __init__(self, max_jobs: int = MAX_JOBS,
                 on_evict: Optional[Callable[[Job], None]] = None):
        self.max_jobs = max_jobs
        self.on_evict = on_evict
        self._jobs: "OrderedDict[str, Job]" = OrderedDict()
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def put(self, job: Job) -> Job:
        now = utc_now()
        job = dataclasses.replace(job, created_at=job.created_at or now, updated_at=now)
        with self._lock:
            self._jobs[job.id] = job
            self._jobs.move_to_end(job.id)
            evicted = self._evict_locked()

        for old in evicted:
            logger.info("Evicted job %s (retention limit %d)", old.id, self.max_jobs)
            if self.on_evict:
                try:
                    self.on_evict(old)
                except Exception as e:
                    logger.warning("Eviction hook failed for job %s: %s", old.id, e)
        return job

    def update(self, job_id: str, **changes) -> Optional[Job]:
        """
        Replace the job with a copy carrying ``changes``.
        Returns the new snapshot, or None if the job no longer exists.
        """
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                return None
            updated = dataclasses.replace(current, updated_at=utc_now(), **changes)
            self._jobs[job_id] = updated
            self._jobs.move_to_end(job_id)
            return updated

    def modify(self, job_id: str, fn: Callable[[Job], dict]) -> Optional[Job]:
        """
        Compute changes from the current record and apply them under one
        lock acquisition. ``fn`` may raise to reject the transition.
        """
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                return None
            return self.update(job_id, **fn(current))

    def delete(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.pop(job_id, None)

    def jobs(self) -> list[Job]:
        with self._lock:
            return list(self._jobs.values())

    def _evict_locked(self) -> list[Job]:
        evicted = []
        while len(self._jobs) > self.max_jobs:
            victim = next((j for j in self._jobs.values()
                           if j.status not in ACTIVE_STATUSES), None)
            if victim is None:
                break
            del self._jobs[victim.id]
            evicted.append(victim)
        return evicted
