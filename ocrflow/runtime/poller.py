from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from ocrflow.core.exceptions import TransportError
from ocrflow.domain.job_service import complete_job, fail_job, mark_processing
from ocrflow.domain.models import JobStatus
from ocrflow.runtime.store import JobStore
from ocrflow.transport.base import OcrTransport
from ocrflow.transport.contracts import BatchStatus

logger = logging.getLogger(__name__)

EXTRACTION_FAILED = "Text extraction failed"
STATUS_CHECK_FAILED = "Status check failed"


@dataclass(frozen=True)
class PollPolicy:
    initial_delay_s: float = 2.0
    interval_s: float = 3.0
    max_attempts: int = 20


@dataclass
class PollState:
    attempts: int = 0
    errors: int = 0
    resolved: bool = False
    last_error: str | None = None


class PollingCoordinator:
    """
    Asks the remote for a batch's status until it resolves or the attempt
    budget runs out.

    Transport errors do not end the sequence. When the budget runs out the
    watched jobs keep their last state, except when the final attempt itself
    failed: then the ones still unresolved are marked FAILED.
    """

    def __init__(self, store: JobStore, transport: OcrTransport, *, policy: PollPolicy) -> None:
        self.store = store
        self.transport = transport
        self.policy = policy

    async def watch(self, group_id: str, job_ids: Sequence[str]) -> PollState:
        state = PollState()
        watched = list(job_ids)
        last_failed = False

        await asyncio.sleep(self.policy.initial_delay_s)

        while state.attempts < self.policy.max_attempts:
            state.attempts += 1
            try:
                status = await self.transport.query_batch_status(group_id)
            except TransportError as e:
                state.errors += 1
                state.last_error = str(e)
                last_failed = True
                logger.warning(
                    "status query for %s failed (attempt %d/%d): %s",
                    group_id, state.attempts, self.policy.max_attempts, e,
                )
            else:
                last_failed = False
                self.apply_status(status, watched)
                if status.is_resolved:
                    state.resolved = True
                    break

            if state.attempts < self.policy.max_attempts:
                await asyncio.sleep(self.policy.interval_s)

        if not state.resolved:
            if last_failed:
                self._fail_unresolved(watched)
            logger.info(
                "stopped polling %s after %d attempts without resolution", group_id, state.attempts
            )
        return state

    def apply_status(self, status: BatchStatus, job_ids: Iterable[str]) -> List[str]:
        """Apply per-item statuses to still-running jobs; returns the ids that changed."""
        changed: List[str] = []
        for job_id in job_ids:
            job = self.store.get(job_id)
            if job is None or job.is_terminal or not job.item_id:
                continue
            item = status.item(job.item_id)
            if item is None:
                continue

            if item.status == JobStatus.COMPLETED:
                complete_job(
                    self.store,
                    job_id,
                    result_text=item.result_text or "",
                    confidence=item.confidence,
                    language=item.language,
                    note=item.error_message,
                    reason="poll_completed",
                )
            elif item.status == JobStatus.FAILED:
                fail_job(
                    self.store,
                    job_id,
                    error_message=item.error_message or EXTRACTION_FAILED,
                    reason="poll_failed",
                )
            elif item.status == JobStatus.PROCESSING:
                mark_processing(self.store, job_id, reason="poll_processing")
            else:
                continue

            if self.store.get(job_id) is not job:
                changed.append(job_id)
        return changed

    def _fail_unresolved(self, job_ids: Iterable[str]) -> None:
        for job_id in job_ids:
            job = self.store.get(job_id)
            if job is not None and not job.is_terminal:
                fail_job(self.store, job_id, error_message=STATUS_CHECK_FAILED, reason="poll_exhausted")
