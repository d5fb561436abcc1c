from __future__ import annotations

from typing import Any, Iterable, List

from ocrflow.core.audit import write_audit_event
from ocrflow.domain.models import AuditEventType, Job, JobStatus, utcnow
from ocrflow.domain.state_machine import ensure_transition_allowed
from ocrflow.runtime.store import JobStore


def _transition(job: Job, to_status: JobStatus, **changes: Any) -> Job:
    if job.status != to_status:
        ensure_transition_allowed(job.status, to_status)
    return job.model_copy(update={"status": to_status, **changes})


def set_job_status(
    store: JobStore,
    *,
    job_id: str,
    to_status: JobStatus,
    reason: str | None = None,
    **changes: Any,
) -> Job | None:
    """
    Move one job to ``to_status`` and apply ``changes`` in the same write.

    Raises TransitionError for a disallowed move; returns None when the job is
    no longer in the store.
    """
    before = store.get(job_id)
    if before is None:
        return None

    job = store.update(job_id, lambda j: _transition(j, to_status, **changes))

    if job is not None and before.status != to_status:
        write_audit_event(
            store.audit,
            job_id=job_id,
            event_type=AuditEventType.STATUS_CHANGED,
            payload={
                "from": before.status.value,
                "to": to_status.value,
                "reason": reason,
            },
        )
    return job


def create_jobs(store: JobStore, jobs: List[Job]) -> List[Job]:
    store.insert_head(jobs)
    for job in jobs:
        write_audit_event(
            store.audit,
            job_id=job.id,
            event_type=AuditEventType.JOB_CREATED,
            payload={
                "file_name": job.file_name,
                "batch_id": job.batch_id,
                "status": job.status.value,
            },
        )
    return jobs


def mark_processing(store: JobStore, job_id: str, *, reason: str) -> Job | None:
    job = store.get(job_id)
    if job is None or job.status != JobStatus.PENDING:
        return job
    return set_job_status(
        store,
        job_id=job_id,
        to_status=JobStatus.PROCESSING,
        reason=reason,
        started_at=job.started_at or utcnow(),
    )


def raise_progress(store: JobStore, job_ids: Iterable[str], progress: int) -> List[Job]:
    """Raise progress of the given non-terminal jobs, never lowering it."""
    target = max(0, min(int(progress), 100))

    def _raise(job: Job) -> Job:
        if job.is_terminal or job.progress >= target:
            return job
        return job.model_copy(update={"progress": target})

    return store.update_many(job_ids, _raise)


def bind_remote(
    store: JobStore,
    job_id: str,
    *,
    group_id: str,
    item_id: str,
    progress: int,
) -> Job | None:
    before = store.get(job_id)
    if before is None or before.is_terminal:
        return before

    def _bind(job: Job) -> Job:
        return job.model_copy(
            update={
                "group_id": group_id,
                "item_id": item_id or job.item_id,
                "progress": max(job.progress, progress),
            }
        )

    job = store.update(job_id, _bind)
    if job is not None:
        write_audit_event(
            store.audit,
            job_id=job_id,
            event_type=AuditEventType.JOB_BOUND,
            payload={"group_id": group_id, "item_id": item_id},
        )
    return job


def complete_job(
    store: JobStore,
    job_id: str,
    *,
    result_text: str | None,
    confidence: float | None,
    language: str | None = None,
    note: str | None = None,
    reason: str,
) -> Job | None:
    """Terminal success. A job that already reached a terminal status is left untouched."""
    job = store.get(job_id)
    if job is None or job.is_terminal:
        return job
    return set_job_status(
        store,
        job_id=job_id,
        to_status=JobStatus.COMPLETED,
        reason=reason,
        progress=100,
        result_text=result_text,
        confidence=confidence,
        language=language,
        error_message=note,
        completed_at=utcnow(),
    )


def fail_job(store: JobStore, job_id: str, *, error_message: str, reason: str) -> Job | None:
    job = store.get(job_id)
    if job is None or job.is_terminal:
        return job
    failed = set_job_status(
        store,
        job_id=job_id,
        to_status=JobStatus.FAILED,
        reason=reason,
        progress=100,
        error_message=error_message,
        completed_at=utcnow(),
    )
    write_audit_event(
        store.audit,
        job_id=job_id,
        event_type=AuditEventType.ERROR,
        payload={"error": error_message, "kind": reason},
    )
    return failed


def reset_for_retry(store: JobStore, job_id: str) -> Job | None:
    """Put a job back at the start of the state machine, keeping its id and remote binding."""
    job = store.get(job_id)
    if job is None:
        return None
    reset = set_job_status(
        store,
        job_id=job_id,
        to_status=JobStatus.PENDING,
        reason="retry",
        progress=0,
        error_message=None,
        result_text=None,
        confidence=None,
        language=None,
        started_at=None,
        completed_at=None,
    )
    write_audit_event(
        store.audit,
        job_id=job_id,
        event_type=AuditEventType.JOB_RETRIED,
        payload={"previous_status": job.status.value},
    )
    return reset


def remove_job(store: JobStore, job_id: str) -> Job | None:
    removed = store.remove(job_id)
    if removed is not None:
        _record_removed(store, [removed], reason="removed")
    return removed


def remove_with_status(store: JobStore, status: JobStatus) -> List[Job]:
    removed = store.remove_where(lambda job: job.status == status)
    return _record_removed(store, removed, reason=f"clear_{status.value.lower()}")


def _record_removed(store: JobStore, removed: List[Job], *, reason: str) -> List[Job]:
    for job in removed:
        write_audit_event(
            store.audit,
            job_id=job.id,
            event_type=AuditEventType.JOB_REMOVED,
            payload={"status": job.status.value, "reason": reason},
        )
    return removed


def attach_result(
    store: JobStore,
    job_id: str,
    *,
    result_text: str,
    confidence: float | None,
) -> Job | None:
    """Fill in OCR output fetched after the fact for a job that already COMPLETED."""

    def _attach(job: Job) -> Job:
        if job.status != JobStatus.COMPLETED:
            return job
        return job.model_copy(
            update={
                "result_text": result_text,
                "confidence": confidence if confidence is not None else job.confidence,
            }
        )

    return store.update(job_id, _attach)
