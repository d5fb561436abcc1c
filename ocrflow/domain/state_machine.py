from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Set

from ocrflow.domain.models import JobStatus

# Leaving a terminal status (and PROCESSING -> PENDING) is only reachable
# through job_service.reset_for_retry.
_ALLOWED: Dict[JobStatus, Set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.PENDING},
    JobStatus.COMPLETED: {JobStatus.PENDING},
    JobStatus.FAILED: {JobStatus.PENDING},
}

@dataclass(frozen=True)
class TransitionError(Exception):
    from_status: JobStatus
    to_status: JobStatus
    def __str__(self) -> str:
        return f"invalid transition: {self.from_status.value} -> {self.to_status.value}"

def is_transition_allowed(from_status: JobStatus, to_status: JobStatus) -> bool:
    return to_status in _ALLOWED.get(from_status, set())

def ensure_transition_allowed(from_status: JobStatus, to_status: JobStatus) -> None:
    if not is_transition_allowed(from_status, to_status):
        raise TransitionError(from_status=from_status, to_status=to_status)
