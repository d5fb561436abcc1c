from __future__ import annotations
from collections import deque
from typing import Any, Deque, Dict, List

from ocrflow.domain.models import AuditEvent, AuditEventType

class AuditLog:
    """Bounded in-memory trail of job lifecycle events, oldest dropped first."""

    def __init__(self, *, max_events: int = 1000) -> None:
        self._events: Deque[AuditEvent] = deque(maxlen=max_events)
        self._seq = 0

    def append(self, *, job_id: str, event_type: AuditEventType, payload: Dict[str, Any]) -> AuditEvent:
        self._seq += 1
        event = AuditEvent(seq=self._seq, job_id=job_id, event_type=event_type, payload=payload)
        self._events.append(event)
        return event

    def for_job(self, job_id: str) -> List[AuditEvent]:
        return [e for e in self._events if e.job_id == job_id]

    def __len__(self) -> int:
        return len(self._events)

def write_audit_event(
    audit: AuditLog,
    *,
    job_id: str,
    event_type: AuditEventType,
    payload: Dict[str, Any],
) -> AuditEvent:
    return audit.append(job_id=job_id, event_type=event_type, payload=payload)
