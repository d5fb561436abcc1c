from __future__ import annotations
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from ocrflow.domain.models import Job, JobStatus


class FilterCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Optional[JobStatus] = None
    search_query: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.status is None and not self.search_query


def matches(job: Job, criteria: FilterCriteria) -> bool:
    if criteria.status is not None and job.status != criteria.status:
        return False

    query = (criteria.search_query or "").lower()
    if query:
        in_name = query in job.file_name.lower()
        in_text = query in (job.result_text or "").lower()
        if not (in_name or in_text):
            return False

    return True


def filter_jobs(jobs: Sequence[Job], criteria: FilterCriteria) -> List[Job]:
    """Jobs satisfying ``criteria`` in store order. The input is never reordered."""
    if criteria.is_empty:
        return list(jobs)
    return [job for job in jobs if matches(job, criteria)]


def jobs_with_status(jobs: Sequence[Job], status: JobStatus) -> List[Job]:
    return [job for job in jobs if job.status == status]
