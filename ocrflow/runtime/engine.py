from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, List, Literal, Optional, Sequence, Set, Tuple

from ocrflow.core.audit import AuditLog
from ocrflow.core.config import Settings
from ocrflow.core.exceptions import InvalidPageSizeError, JobNotReadyError, TransportError
from ocrflow.domain import job_service
from ocrflow.domain.models import AuditEvent, Job, JobStatus
from ocrflow.runtime.notices import Notice, NoticeBoard
from ocrflow.runtime.poller import PollingCoordinator, PollPolicy
from ocrflow.runtime.simulator import ProgressSimulator
from ocrflow.runtime.store import JobStore, Listener
from ocrflow.runtime.uploader import UploadBatch, UploadOrchestrator
from ocrflow.transport.base import OcrTransport
from ocrflow.transport.contracts import InputFile
from ocrflow.views.pagination import PAGE_SIZE_OPTIONS, Page, clamp_page, paginate, total_pages
from ocrflow.views.projection import FilterCriteria, filter_jobs, jobs_with_status
from ocrflow.views.stats import JobStats, aggregate_stats

logger = logging.getLogger(__name__)

ExportFormat = Literal["txt", "json"]


@dataclass(frozen=True)
class ExportedFile:
    file_name: str
    media_type: str
    content: str


def _stem(file_name: str) -> str:
    return re.sub(r"\.[^/.]+$", "", file_name) or file_name


class JobEngine:
    """
    Read model and command surface for OCR jobs.

    Owns the job store and wires the upload orchestrator, progress simulator
    and polling coordinator onto it. Commands return immediately; the remote
    work runs as tasks on the current event loop and reports back through
    store mutations and the notice board, never by raising to the caller.
    """

    def __init__(self, *, settings: Settings, transport: OcrTransport, store: JobStore | None = None) -> None:
        self.settings = settings
        self.transport = transport
        self.store = store or JobStore(audit=AuditLog(max_events=settings.audit_log_size))
        self.notices = NoticeBoard(ttl_s=settings.notice_ttl_s)
        self.simulator = ProgressSimulator(
            self.store,
            period_s=settings.simulator_period_s,
            step=settings.simulator_step,
            ceiling=settings.simulator_ceiling,
        )
        self.poller = PollingCoordinator(
            self.store,
            transport,
            policy=PollPolicy(
                initial_delay_s=settings.poll_initial_delay_s,
                interval_s=settings.poll_interval_s,
                max_attempts=settings.poll_max_attempts,
            ),
        )
        self.uploader = UploadOrchestrator(
            self.store,
            transport,
            poller=self.poller,
            start_polling=self._start_polling,
        )

        if settings.default_page_size not in PAGE_SIZE_OPTIONS:
            raise InvalidPageSizeError(settings.default_page_size, PAGE_SIZE_OPTIONS)
        self._filter = FilterCriteria()
        self._page = 1
        self._page_size = settings.default_page_size
        self._selected_id: Optional[str] = None

        self._tasks: Set[asyncio.Task] = set()
        self._in_flight = 0
        self._extracting: Set[str] = set()

    # -----------------------
    # read model
    # -----------------------

    @property
    def jobs(self) -> Tuple[Job, ...]:
        return self.store.snapshot()

    @property
    def filter(self) -> FilterCriteria:
        return self._filter

    @property
    def filtered_jobs(self) -> List[Job]:
        return filter_jobs(self.store.snapshot(), self._filter)

    @property
    def page(self) -> Page[Job]:
        return paginate(self.filtered_jobs, self._page, self._page_size)

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def stats(self) -> JobStats:
        return aggregate_stats(self.store.snapshot(), default_confidence=self.settings.default_confidence)

    @property
    def busy(self) -> bool:
        return self._in_flight > 0

    @property
    def message(self) -> Optional[Notice]:
        return self.notices.current

    @property
    def selected_job(self) -> Optional[Job]:
        if self._selected_id is None:
            return None
        return self.store.get(self._selected_id)

    def jobs_with_status(self, status: JobStatus) -> List[Job]:
        return jobs_with_status(self.store.snapshot(), status)

    def get_job(self, job_id: str) -> Job:
        return self.store.require(job_id)

    def events(self, job_id: str) -> List[AuditEvent]:
        return self.store.audit.for_job(job_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.store.subscribe(listener)

    # -----------------------
    # commands: remote work
    # -----------------------

    def start_batch_upload(self, files: Sequence[InputFile], *, auto_extract: bool = True) -> List[Job]:
        batch = self.uploader.create_batch(files, auto_extract=auto_extract)
        if batch is None:
            return []
        self._spawn(self._run_upload(batch), name=f"upload-{batch.batch_id}")
        return [self.store.require(job_id) for job_id in batch.job_ids]

    def start_single_extraction(
        self,
        group_id: str,
        item_id: str,
        file_name: str,
        *,
        file_size: int | None = None,
        mime_type: str | None = None,
    ) -> Job:
        job = Job(group_id=group_id, item_id=item_id, file_name=file_name, file_size=file_size, mime_type=mime_type)
        job_service.create_jobs(self.store, [job])
        return self._begin_extraction(job.id)

    def extract_job(self, job_id: str) -> Job:
        """Run extraction for a job that is already bound to a remote document."""
        job = self.store.require(job_id)
        if not job.is_bound:
            raise JobNotReadyError(job_id, "no remote document yet")
        if job.is_terminal:
            job_service.reset_for_retry(self.store, job_id)
        return self._begin_extraction(job_id)

    def retry_job(self, job_id: str) -> Optional[Job]:
        """Reset the job on the same id and extract again. Jobs never bound remotely are left alone."""
        job = self.store.require(job_id)
        if not job.is_bound:
            logger.info("retry ignored for %s: no remote document", job_id)
            return None
        if job_id in self._extracting:
            return job
        self.simulator.cancel(job_id)
        job_service.reset_for_retry(self.store, job_id)
        return self._begin_extraction(job_id)

    async def load_job_data(self, job_id: str) -> Job:
        job = self.store.require(job_id)
        if not job.is_bound:
            return job
        try:
            data = await self.transport.fetch_document_data(job.group_id, job.item_id)
        except TransportError as e:
            logger.warning("loading OCR data for %s failed: %s", job_id, e)
            self.notices.error("Failed to load OCR data")
            return job

        updated = job_service.attach_result(
            self.store, job_id, result_text=data.result_text, confidence=data.confidence
        )
        self._selected_id = job_id
        return updated or job

    # -----------------------
    # commands: local state
    # -----------------------

    def remove_job(self, job_id: str) -> Optional[Job]:
        self.simulator.cancel(job_id)
        removed = job_service.remove_job(self.store, job_id)
        if removed is not None and self._selected_id == job_id:
            self._selected_id = None
        return removed

    def clear_completed(self) -> int:
        return self._clear(JobStatus.COMPLETED)

    def clear_failed(self) -> int:
        return self._clear(JobStatus.FAILED)

    def _clear(self, status: JobStatus) -> int:
        removed = job_service.remove_with_status(self.store, status)
        for job in removed:
            self.simulator.cancel(job.id)
            if self._selected_id == job.id:
                self._selected_id = None
        return len(removed)

    def select_job(self, job_id: Optional[str]) -> Optional[Job]:
        if job_id is not None:
            self.store.require(job_id)
        self._selected_id = job_id
        return self.selected_job

    def set_filter(self, criteria: FilterCriteria) -> FilterCriteria:
        self._filter = criteria
        self._page = 1
        return self._filter

    def update_filter(self, **changes: Any) -> FilterCriteria:
        return self.set_filter(FilterCriteria.model_validate({**self._filter.model_dump(), **changes}))

    def clear_filter(self) -> FilterCriteria:
        return self.set_filter(FilterCriteria())

    def set_page(self, page: int) -> int:
        pages = total_pages(len(self.filtered_jobs), self._page_size)
        self._page = clamp_page(page, pages)
        return self._page

    def next_page(self) -> int:
        return self.set_page(self.page.current_page + 1)

    def previous_page(self) -> int:
        return self.set_page(self.page.current_page - 1)

    def set_page_size(self, page_size: int) -> int:
        if page_size not in PAGE_SIZE_OPTIONS:
            raise InvalidPageSizeError(page_size, PAGE_SIZE_OPTIONS)
        self._page_size = page_size
        self._page = 1
        return self._page_size

    def clear_message(self) -> None:
        self.notices.clear()

    def export_job(self, job_id: str, fmt: ExportFormat = "txt") -> ExportedFile:
        job = self.store.require(job_id)
        if not job.result_text:
            raise JobNotReadyError(job_id, "no extracted text")

        stem = _stem(job.file_name)
        if fmt == "json":
            payload = {
                "documentId": job.item_id,
                "fileName": job.file_name,
                "extractedText": job.result_text,
                "confidence": job.confidence or 0,
            }
            return ExportedFile(f"{stem}.json", "application/json", json.dumps(payload, indent=2))
        return ExportedFile(f"{stem}.txt", "text/plain; charset=utf-8", job.result_text)

    # -----------------------
    # lifecycle
    # -----------------------

    async def drain(self) -> None:
        """Wait until no background work is left, including work spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        self.simulator.cancel_all()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self.notices.clear()

    # -----------------------
    # background work
    # -----------------------

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._in_flight += 1
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._in_flight -= 1
        if not task.cancelled() and task.exception() is not None:
            logger.error("background task %s crashed", task.get_name(), exc_info=task.exception())

    def _begin_extraction(self, job_id: str) -> Job:
        if job_id in self._extracting:
            return self.store.require(job_id)
        self._extracting.add(job_id)
        job_service.mark_processing(self.store, job_id, reason="extraction_requested")
        self.simulator.start(job_id)
        self._spawn(self._run_extraction(job_id), name=f"extract-{job_id}")
        return self.store.require(job_id)

    async def _run_extraction(self, job_id: str) -> None:
        job = self.store.get(job_id)
        try:
            if job is None:
                return
            try:
                result = await self.transport.submit_single_extraction(job.group_id, job.item_id)
            except Exception as e:
                # the real result wins: stop fake progress before writing
                self.simulator.cancel(job_id)
                if isinstance(e, TransportError):
                    logger.warning("extraction for %s failed: %s", job_id, e)
                else:
                    logger.exception("extraction for %s crashed", job_id)
                failed = job_service.fail_job(
                    self.store, job_id, error_message="Extraction failed", reason="extract_failed"
                )
                if failed is not None:
                    self.notices.error(f'Failed to extract text from "{job.file_name}"')
                return

            self.simulator.cancel(job_id)
            done = job_service.complete_job(
                self.store,
                job_id,
                result_text=result.result_text,
                confidence=result.confidence,
                language=result.language,
                note=result.error_message,
                reason="extract_completed",
            )
            # removed mid-flight: nothing was written, nothing to announce
            if done is not None and done.status == JobStatus.COMPLETED:
                self.notices.success(f'Text extracted from "{job.file_name}" successfully!')
        finally:
            self._extracting.discard(job_id)

    async def _run_upload(self, batch: UploadBatch) -> None:
        try:
            await self.uploader.run(batch)
        except TransportError as e:
            logger.warning("upload of %s failed: %s", batch.batch_id, e)
            self.notices.error("Failed to process files")
            return
        except Exception:
            logger.exception("upload of %s crashed", batch.batch_id)
            self.notices.error("Failed to process files")
            return
        self.notices.success(f"{len(batch.job_ids)} files queued")

    def _start_polling(self, group_id: str, job_ids: List[str]) -> None:
        self._spawn(self._run_poll(group_id, job_ids), name=f"poll-{group_id}")

    async def _run_poll(self, group_id: str, job_ids: List[str]) -> None:
        try:
            state = await self.poller.watch(group_id, job_ids)
        except Exception:
            logger.exception("polling %s crashed", group_id)
            return
        logger.info(
            "polling %s finished: resolved=%s attempts=%d errors=%d",
            group_id, state.resolved, state.attempts, state.errors,
        )
