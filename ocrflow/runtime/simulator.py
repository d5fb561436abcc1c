from __future__ import annotations

import asyncio
import logging
from typing import Dict

from ocrflow.domain.models import Job, JobStatus
from ocrflow.runtime.store import JobStore

logger = logging.getLogger(__name__)


class ProgressSimulator:
    """
    Fake progress for single extractions, which have no byte-level signal.

    Every ``period_s`` a job's progress grows by ``step`` up to ``ceiling``
    while the job is PROCESSING. Whoever applies the real result must call
    ``cancel`` first so a late tick cannot touch a finished job.
    """

    def __init__(self, store: JobStore, *, period_s: float = 0.5, step: int = 10, ceiling: int = 90) -> None:
        if not 0 <= ceiling < 100:
            raise ValueError("ceiling must be below 100")
        self.store = store
        self.period_s = period_s
        self.step = step
        self.ceiling = ceiling
        self._tasks: Dict[str, asyncio.Task] = {}

    def start(self, job_id: str) -> None:
        self.cancel(job_id)
        task = asyncio.get_running_loop().create_task(self._run(job_id), name=f"simulate-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._forget(job_id, t))

    def tick(self, job_id: str) -> Job | None:
        def _bump(job: Job) -> Job:
            if job.status != JobStatus.PROCESSING:
                return job
            progress = min(job.progress + self.step, self.ceiling)
            if progress <= job.progress:
                return job
            return job.model_copy(update={"progress": progress})

        return self.store.update(job_id, _bump)

    def cancel(self, job_id: str) -> bool:
        task = self._tasks.pop(job_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        for job_id in list(self._tasks):
            self.cancel(job_id)

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    async def _run(self, job_id: str) -> None:
        while True:
            await asyncio.sleep(self.period_s)
            if self.tick(job_id) is None:
                logger.debug("job %s left the store, stopping progress simulation", job_id)
                return

    def _forget(self, job_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
