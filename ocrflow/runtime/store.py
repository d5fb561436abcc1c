from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Sequence, Tuple

from ocrflow.core.audit import AuditLog
from ocrflow.core.exceptions import JobNotFoundError
from ocrflow.domain.models import Job

logger = logging.getLogger(__name__)

Listener = Callable[[Tuple[Job, ...]], None]


class JobStore:
    """
    Authoritative collection of jobs, most recent first.

    The collection is an immutable tuple. Every mutation builds a new tuple and
    publishes it with a single assignment, so a reader holding a snapshot never
    sees a half-applied change. All writes happen on the event loop thread and
    never await, which is what makes them atomic; a multi-threaded caller would
    need a lock around ``_publish`` and the read that precedes it.
    """

    def __init__(self, *, audit: AuditLog | None = None) -> None:
        self._jobs: Tuple[Job, ...] = ()
        self._listeners: List[Listener] = []
        self.audit = audit or AuditLog()

    # -----------------------
    # reads
    # -----------------------

    def snapshot(self) -> Tuple[Job, ...]:
        return self._jobs

    def get(self, job_id: str) -> Job | None:
        for job in self._jobs:
            if job.id == job_id:
                return job
        return None

    def require(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return any(job.id == job_id for job in self._jobs)

    # -----------------------
    # writes
    # -----------------------

    def insert_head(self, jobs: Sequence[Job]) -> None:
        if not jobs:
            return
        existing = {job.id for job in self._jobs}
        incoming = [job.id for job in jobs]
        if len(set(incoming)) != len(incoming) or existing.intersection(incoming):
            raise ValueError("duplicate job ids")
        self._publish(tuple(jobs) + self._jobs)

    def update(self, job_id: str, fn: Callable[[Job], Job]) -> Job | None:
        """Replace one job with ``fn(job)``. Unknown ids are ignored and return None."""
        updated = self.update_many([job_id], fn)
        return updated[0] if updated else None

    def update_many(self, job_ids: Iterable[str], fn: Callable[[Job], Job]) -> List[Job]:
        targets = set(job_ids)
        changed: List[Job] = []
        result: List[Job] = []
        for job in self._jobs:
            if job.id in targets:
                new = fn(job)
                if new.id != job.id:
                    raise ValueError("job id is immutable")
                if new is not job:
                    changed.append(new)
                result.append(new)
            else:
                result.append(job)
        if changed:
            self._publish(tuple(result))
        return [job for job in result if job.id in targets]

    def remove(self, job_id: str) -> Job | None:
        removed = self.remove_where(lambda job: job.id == job_id)
        return removed[0] if removed else None

    def remove_where(self, predicate: Callable[[Job], bool]) -> List[Job]:
        removed = [job for job in self._jobs if predicate(job)]
        if removed:
            self._publish(tuple(job for job in self._jobs if not predicate(job)))
        return removed

    def replace_all(self, jobs: Sequence[Job]) -> None:
        ids = [job.id for job in jobs]
        if len(ids) != len(set(ids)):
            raise ValueError("duplicate job ids")
        self._publish(tuple(jobs))

    # -----------------------
    # subscriptions
    # -----------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, jobs: Tuple[Job, ...]) -> None:
        self._jobs = jobs
        for listener in list(self._listeners):
            try:
                listener(jobs)
            except Exception:
                logger.exception("store listener failed")
