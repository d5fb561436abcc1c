from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from ocrflow.core.exceptions import TransportError
from ocrflow.domain.job_service import (
    bind_remote,
    complete_job,
    create_jobs,
    fail_job,
    mark_processing,
    raise_progress,
)
from ocrflow.domain.models import Job, JobStatus
from ocrflow.runtime.poller import EXTRACTION_FAILED, PollingCoordinator
from ocrflow.runtime.store import JobStore
from ocrflow.transport.base import OcrTransport
from ocrflow.transport.contracts import InputFile, UploadProgress, UploadResult

logger = logging.getLogger(__name__)

# Upload is the first half of the perceived pipeline
UPLOAD_PROGRESS_CAP = 50
ACCEPTED_PROGRESS = 75

UPLOAD_FAILED = "Upload failed"
UPLOAD_REJECTED = "Upload rejected by server"

StartPolling = Callable[[str, List[str]], None]


@dataclass
class UploadBatch:
    batch_id: str
    files: List[InputFile]
    job_ids: List[str]
    auto_extract: bool = True
    group_id: str | None = None
    watched: List[str] = field(default_factory=list)


class UploadOrchestrator:
    """
    Creates one job per file, drives the batched upload and binds the
    remote ids back onto the jobs.
    """

    def __init__(
        self,
        store: JobStore,
        transport: OcrTransport,
        *,
        poller: PollingCoordinator,
        start_polling: StartPolling,
    ) -> None:
        self.store = store
        self.transport = transport
        self.poller = poller
        self.start_polling = start_polling

    def create_batch(self, files: Sequence[InputFile], *, auto_extract: bool = True) -> UploadBatch | None:
        if not files:
            return None

        batch_id = f"batch-{uuid.uuid4().hex[:8]}"
        jobs = [
            Job(
                batch_id=batch_id,
                file_name=f.name,
                file_size=f.size or len(f.content) or None,
                mime_type=f.content_type,
            )
            for f in files
        ]
        create_jobs(self.store, jobs)
        return UploadBatch(
            batch_id=batch_id,
            files=list(files),
            job_ids=[job.id for job in jobs],
            auto_extract=auto_extract,
        )

    async def run(self, batch: UploadBatch) -> UploadResult:
        """Upload the batch. On any failure every job of the batch is FAILED and the error re-raised."""
        result: UploadResult | None = None
        try:
            async for event in self.transport.submit_upload(batch.files, auto_extract=batch.auto_extract):
                if isinstance(event, UploadProgress):
                    self._on_progress(batch, event)
                elif isinstance(event, UploadResult):
                    result = event
            if result is None:
                raise TransportError("upload finished without a response", operation="upload")
        except Exception:
            self.fail_batch(batch)
            raise

        await self._on_result(batch, result)
        return result

    def fail_batch(self, batch: UploadBatch) -> None:
        for job_id in batch.job_ids:
            fail_job(self.store, job_id, error_message=UPLOAD_FAILED, reason="upload_failed")

    def _on_progress(self, batch: UploadBatch, event: UploadProgress) -> None:
        for job_id in batch.job_ids:
            mark_processing(self.store, job_id, reason="upload_progress")
        raise_progress(self.store, batch.job_ids, min(event.percent, UPLOAD_PROGRESS_CAP))

    async def _on_result(self, batch: UploadBatch, result: UploadResult) -> None:
        batch.group_id = result.group_id
        overall = result.overall_status

        for index, job_id in enumerate(batch.job_ids):
            # items come back in the order the files were sent
            item = result.items[index] if index < len(result.items) else None
            job = bind_remote(
                self.store,
                job_id,
                group_id=result.group_id,
                item_id=item.item_id if item else "",
                progress=ACCEPTED_PROGRESS,
            )
            if job is None or job.is_terminal:
                continue

            if item is not None and item.status == JobStatus.FAILED:
                fail_job(self.store, job_id, error_message=result.message or UPLOAD_REJECTED, reason="upload_rejected")
            elif overall == JobStatus.FAILED:
                fail_job(self.store, job_id, error_message=result.message or EXTRACTION_FAILED, reason="remote_failed")
            else:
                mark_processing(self.store, job_id, reason="upload_accepted")
                if item is not None and overall is not None and not overall.is_terminal:
                    batch.watched.append(job_id)

        if overall == JobStatus.COMPLETED:
            await self._collect_finished(batch)
        elif batch.watched:
            self.start_polling(result.group_id, list(batch.watched))

    async def _collect_finished(self, batch: UploadBatch) -> None:
        """The remote finished during the upload call; fetch the results once."""
        try:
            status = await self.transport.query_batch_status(batch.group_id)
        except TransportError as e:
            logger.warning("could not fetch results for finished batch %s: %s", batch.group_id, e)
        else:
            self.poller.apply_status(status, batch.job_ids)

        for job_id in batch.job_ids:
            job = self.store.get(job_id)
            if job is None or job.is_terminal:
                continue
            text, confidence = "", None
            if job.is_bound:
                try:
                    data = await self.transport.fetch_document_data(job.group_id, job.item_id)
                except TransportError as e:
                    logger.warning("could not fetch OCR data for %s: %s", job_id, e)
                else:
                    text, confidence = data.result_text, data.confidence
            # empty text stays loadable later through load_job_data
            complete_job(
                self.store,
                job_id,
                result_text=text,
                confidence=confidence,
                reason="remote_completed",
            )
