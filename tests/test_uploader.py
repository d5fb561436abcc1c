import pytest

from conftest import make_files, make_status, make_upload_result
from ocrflow.core.exceptions import TransportError
from ocrflow.domain.models import JobStatus
from ocrflow.runtime.poller import PollingCoordinator, PollPolicy
from ocrflow.runtime.uploader import ACCEPTED_PROGRESS, UPLOAD_FAILED, UPLOAD_REJECTED, UploadOrchestrator
from ocrflow.transport.contracts import UploadedItem, UploadResult


@pytest.fixture
def polls():
    """Records polling handoffs instead of starting them."""
    return []


@pytest.fixture
def uploader(store, transport, polls):
    poller = PollingCoordinator(store, transport, policy=PollPolicy(initial_delay_s=0, interval_s=0, max_attempts=3))
    return UploadOrchestrator(
        store,
        transport,
        poller=poller,
        start_polling=lambda group_id, job_ids: polls.append((group_id, job_ids)),
    )


class TestUploadOrchestrator:
    def test_empty_batch_creates_nothing(self, store, uploader):
        assert uploader.create_batch([]) is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_upload_without_extraction(self, store, transport, uploader, polls):
        transport.upload_result = make_upload_result("col-1", ["d1", "d2", "d3"], overall=None)
        seen_progress = []
        store.subscribe(lambda jobs: seen_progress.extend(j.progress for j in jobs if j.status == JobStatus.PROCESSING))

        batch = uploader.create_batch(make_files("a.pdf", "b.pdf", "c.pdf"), auto_extract=False)
        created = store.snapshot()
        assert [j.status for j in created] == [JobStatus.PENDING] * 3
        assert [j.file_name for j in created] == ["a.pdf", "b.pdf", "c.pdf"]

        await uploader.run(batch)

        jobs = [store.require(job_id) for job_id in batch.job_ids]
        assert [j.item_id for j in jobs] == ["d1", "d2", "d3"]
        assert all(j.group_id == "col-1" for j in jobs)
        assert all(j.status == JobStatus.PROCESSING for j in jobs)
        assert all(j.progress == ACCEPTED_PROGRESS for j in jobs)
        assert max(p for p in seen_progress if p != ACCEPTED_PROGRESS) <= 50
        assert polls == []
        assert transport.uploads == [False]

    @pytest.mark.asyncio
    async def test_processing_batch_hands_off_to_polling(self, store, transport, uploader, polls):
        transport.upload_result = make_upload_result("col-9", ["d1", "d2"], overall=JobStatus.PROCESSING)

        batch = uploader.create_batch(make_files("a.pdf", "b.pdf"))
        await uploader.run(batch)

        assert polls == [("col-9", batch.job_ids)]

    @pytest.mark.asyncio
    async def test_failed_upload_fails_every_job(self, store, transport, uploader):
        transport.upload_error = TransportError("connection reset", operation="upload")

        batch = uploader.create_batch(make_files("a.pdf", "b.pdf"))
        with pytest.raises(TransportError):
            await uploader.run(batch)

        jobs = [store.require(job_id) for job_id in batch.job_ids]
        assert all(j.status == JobStatus.FAILED for j in jobs)
        assert all(j.error_message == UPLOAD_FAILED for j in jobs)

    @pytest.mark.asyncio
    async def test_missing_response_is_a_failure(self, store, transport, uploader):
        batch = uploader.create_batch(make_files("a.pdf"))
        with pytest.raises(TransportError):
            await uploader.run(batch)
        assert store.require(batch.job_ids[0]).status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_rejected_item_fails_only_that_job(self, store, transport, uploader, polls):
        transport.upload_result = UploadResult(
            group_id="col-1",
            items=[UploadedItem(item_id="d1", status="success"), UploadedItem(item_id="d2", status="failed")],
            overall_status="processing",
        )

        batch = uploader.create_batch(make_files("a.pdf", "b.pdf"))
        await uploader.run(batch)

        ok, rejected = (store.require(job_id) for job_id in batch.job_ids)
        assert ok.status == JobStatus.PROCESSING
        assert rejected.status == JobStatus.FAILED
        assert rejected.error_message == UPLOAD_REJECTED
        assert polls == [("col-1", [ok.id])]

    @pytest.mark.asyncio
    async def test_remote_finished_during_upload(self, store, transport, uploader, polls):
        transport.upload_result = make_upload_result("col-1", ["d1", "d2"], overall=JobStatus.COMPLETED)
        transport.statuses = [make_status("col-1", JobStatus.COMPLETED, d1=JobStatus.COMPLETED)]

        batch = uploader.create_batch(make_files("a.pdf", "b.pdf"))
        await uploader.run(batch)

        first, second = (store.require(job_id) for job_id in batch.job_ids)
        assert first.status == JobStatus.COMPLETED
        assert first.result_text == "text of d1"
        assert second.status == JobStatus.COMPLETED
        assert second.result_text == "loaded text"
        assert polls == []

    @pytest.mark.asyncio
    async def test_finished_batch_completes_with_empty_text_when_data_is_missing(self, store, transport, uploader):
        transport.upload_result = make_upload_result("col-1", ["d1"], overall=JobStatus.COMPLETED)
        transport.statuses = [TransportError("down", operation="status")]
        transport.document = TransportError("gone", operation="ocr-data", status_code=404)

        batch = uploader.create_batch(make_files("a.pdf"))
        await uploader.run(batch)

        job = store.require(batch.job_ids[0])
        assert job.status == JobStatus.COMPLETED
        assert job.result_text == ""
