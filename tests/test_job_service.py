from ocrflow.domain import job_service
from ocrflow.domain.models import AuditEventType, Job, JobStatus


def _create(store, name="scan.png", **fields):
    job = Job(file_name=name, **fields)
    job_service.create_jobs(store, [job])
    return job.id


class TestJobService:
    """Status writes, progress rules and the audit trail they leave."""

    def test_create_writes_audit_event(self, store):
        job_id = _create(store)
        events = store.audit.for_job(job_id)
        assert [e.event_type for e in events] == [AuditEventType.JOB_CREATED]

    def test_mark_processing_sets_started_at_once(self, store):
        job_id = _create(store)
        job = job_service.mark_processing(store, job_id, reason="test")
        assert job.status == JobStatus.PROCESSING
        assert job.started_at is not None

        again = job_service.mark_processing(store, job_id, reason="test")
        assert again.started_at == job.started_at

    def test_raise_progress_is_monotonic(self, store):
        job_id = _create(store)
        job_service.raise_progress(store, [job_id], 40)
        job_service.raise_progress(store, [job_id], 20)
        assert store.require(job_id).progress == 40

    def test_complete_sets_full_progress(self, store):
        job_id = _create(store)
        job_service.mark_processing(store, job_id, reason="test")
        job = job_service.complete_job(store, job_id, result_text="abc", confidence=0.7, language="de", reason="test")

        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.result_text == "abc"
        assert job.completed_at is not None

    def test_terminal_jobs_are_not_overwritten(self, store):
        job_id = _create(store)
        job_service.fail_job(store, job_id, error_message="boom", reason="test")
        job_service.complete_job(store, job_id, result_text="late", confidence=0.5, reason="test")
        job_service.raise_progress(store, [job_id], 10)

        job = store.require(job_id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "boom"
        assert job.result_text is None

    def test_fail_records_error_event(self, store):
        job_id = _create(store)
        job_service.fail_job(store, job_id, error_message="boom", reason="upload_failed")
        types = [e.event_type for e in store.audit.for_job(job_id)]
        assert AuditEventType.STATUS_CHANGED in types
        assert types[-1] == AuditEventType.ERROR

    def test_reset_for_retry_keeps_id_and_binding(self, store):
        job_id = _create(store, group_id="col-1", item_id="doc-1")
        job_service.fail_job(store, job_id, error_message="boom", reason="test")

        job = job_service.reset_for_retry(store, job_id)

        assert job.id == job_id
        assert job.status == JobStatus.PENDING
        assert job.progress == 0
        assert job.error_message is None
        assert job.completed_at is None
        assert job.is_bound

    def test_bind_remote_skips_terminal_jobs(self, store):
        job_id = _create(store)
        job_service.fail_job(store, job_id, error_message="boom", reason="test")
        job_service.bind_remote(store, job_id, group_id="col-1", item_id="doc-1", progress=75)

        job = store.require(job_id)
        assert job.group_id == ""
        assert AuditEventType.JOB_BOUND not in [e.event_type for e in store.audit.for_job(job_id)]

    def test_remove_with_status(self, store):
        done = _create(store, "a.png")
        _create(store, "b.png")
        job_service.complete_job(store, done, result_text="x", confidence=None, reason="test")

        removed = job_service.remove_with_status(store, JobStatus.COMPLETED)

        assert [j.id for j in removed] == [done]
        assert len(store) == 1
        assert store.audit.for_job(done)[-1].event_type == AuditEventType.JOB_REMOVED

    def test_attach_result_only_for_completed(self, store):
        job_id = _create(store)
        job_service.attach_result(store, job_id, result_text="late", confidence=0.6)
        assert store.require(job_id).result_text is None

        job_service.complete_job(store, job_id, result_text="", confidence=None, reason="test")
        job = job_service.attach_result(store, job_id, result_text="late", confidence=0.6)
        assert job.result_text == "late"
        assert job.confidence == 0.6
