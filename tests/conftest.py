"""
Shared fixtures for the OCR job engine test suite.

Provides: fast settings, a scripted fake transport, a store and a wired engine
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, List, Sequence, Union

import pytest

from ocrflow.core.audit import AuditLog
from ocrflow.core.config import Settings
from ocrflow.core.exceptions import TransportError
from ocrflow.domain.models import JobStatus
from ocrflow.runtime.engine import JobEngine
from ocrflow.runtime.store import JobStore
from ocrflow.transport.contracts import (
    BatchStatus,
    DocumentData,
    ExtractionResult,
    InputFile,
    ItemStatus,
    UploadEvent,
    UploadedItem,
    UploadProgress,
    UploadResult,
)


class ScriptedTransport:
    """
    Fake remote whose answers are set up by each test.

    ``statuses`` is consumed one entry per status query; the last entry keeps
    being returned once the list is exhausted. Exceptions in the list are raised.
    """

    def __init__(self) -> None:
        self.progress: List[UploadProgress] = [
            UploadProgress(bytes_sent=50, bytes_total=200),
            UploadProgress(bytes_sent=200, bytes_total=200),
        ]
        self.upload_result: UploadResult | None = None
        self.upload_error: Exception | None = None
        self.statuses: List[Union[BatchStatus, Exception]] = []
        self.extraction: Union[ExtractionResult, Exception] = ExtractionResult(
            result_text="hello", confidence=0.95, language="en"
        )
        self.document: Union[DocumentData, Exception] = DocumentData(item_id="d1", result_text="loaded text")
        self.extract_gate: asyncio.Event | None = None

        self.uploads: List[bool] = []
        self.status_calls = 0
        self.extract_calls: List[tuple] = []
        self.closed = False

    async def submit_upload(self, files: Sequence[InputFile], *, auto_extract: bool) -> AsyncIterator[UploadEvent]:
        self.uploads.append(auto_extract)
        for event in self.progress:
            await asyncio.sleep(0)
            yield event
        if self.upload_error is not None:
            raise self.upload_error
        if self.upload_result is not None:
            yield self.upload_result

    async def submit_single_extraction(self, group_id: str, item_id: str) -> ExtractionResult:
        self.extract_calls.append((group_id, item_id))
        if self.extract_gate is not None:
            await self.extract_gate.wait()
        await asyncio.sleep(0)
        if isinstance(self.extraction, Exception):
            raise self.extraction
        return self.extraction

    async def query_batch_status(self, group_id: str) -> BatchStatus:
        self.status_calls += 1
        await asyncio.sleep(0)
        if not self.statuses:
            raise TransportError("no status scripted", operation="status")
        entry = self.statuses[0] if len(self.statuses) == 1 else self.statuses.pop(0)
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def fetch_document_data(self, group_id: str, item_id: str) -> DocumentData:
        await asyncio.sleep(0)
        if isinstance(self.document, Exception):
            raise self.document
        return self.document

    async def aclose(self) -> None:
        self.closed = True


def make_files(*names: str) -> List[InputFile]:
    return [InputFile(name=n, size=100, content_type="application/pdf", content=b"x" * 100) for n in names]


def make_upload_result(group_id: str, item_ids: Sequence[str], overall: JobStatus | None) -> UploadResult:
    return UploadResult(
        group_id=group_id,
        items=[UploadedItem(item_id=i, status=JobStatus.COMPLETED) for i in item_ids],
        overall_status=overall,
    )


def make_status(group_id: str, overall: JobStatus, **items: JobStatus) -> BatchStatus:
    return BatchStatus(
        group_id=group_id,
        overall_status=overall,
        items=[
            ItemStatus(
                item_id=item_id,
                status=status,
                result_text=f"text of {item_id}" if status == JobStatus.COMPLETED else None,
                confidence=0.8 if status == JobStatus.COMPLETED else None,
            )
            for item_id, status in items.items()
        ],
    )


@pytest.fixture
def settings():
    """Settings with zero delays so polling and simulation finish within a test."""
    return Settings(
        poll_initial_delay_s=0,
        poll_interval_s=0,
        poll_max_attempts=20,
        simulator_period_s=0.001,
        notice_ttl_s=60,
        default_page_size=5,
    )


@pytest.fixture
def transport():
    return ScriptedTransport()


@pytest.fixture
def store():
    return JobStore(audit=AuditLog(max_events=500))


@pytest.fixture
def engine(settings, transport, store):
    return JobEngine(settings=settings, transport=transport, store=store)
