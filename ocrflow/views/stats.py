from __future__ import annotations

import math
from datetime import datetime
from typing import Sequence

from pydantic import BaseModel

from ocrflow.domain.models import Job, JobStatus

DEFAULT_CONFIDENCE = 0.9


class JobStats(BaseModel):
    total_jobs: int = 0
    completed_count: int = 0
    failed_count: int = 0
    pending_or_processing_count: int = 0
    average_confidence_percent: int = 0
    completed_today_count: int = 0


def _is_today(ts: datetime | None, today) -> bool:
    if ts is None:
        return False
    # naive timestamps are taken as local time
    return ts.astimezone().date() == today


def aggregate_stats(
    jobs: Sequence[Job],
    *,
    default_confidence: float = DEFAULT_CONFIDENCE,
    now: datetime | None = None,
) -> JobStats:
    today = (now or datetime.now()).astimezone().date()

    completed = [job for job in jobs if job.status == JobStatus.COMPLETED]
    failed = sum(1 for job in jobs if job.status == JobStatus.FAILED)
    in_flight = sum(1 for job in jobs if job.status in (JobStatus.PENDING, JobStatus.PROCESSING))

    average = 0
    if completed:
        total = sum(
            job.confidence if job.confidence is not None else default_confidence
            for job in completed
        )
        # half rounds up
        average = math.floor(total / len(completed) * 100 + 0.5)

    return JobStats(
        total_jobs=len(jobs),
        completed_count=len(completed),
        failed_count=failed,
        pending_or_processing_count=in_flight,
        average_confidence_percent=average,
        completed_today_count=sum(1 for job in completed if _is_today(job.completed_at, today)),
    )
