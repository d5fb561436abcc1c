from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Sequence

from ocrflow.core.exceptions import TransportError
from ocrflow.domain.models import JobStatus
from ocrflow.transport.contracts import (
    BatchStatus,
    DocumentData,
    ExtractionResult,
    InputFile,
    ItemStatus,
    UploadedItem,
    UploadEvent,
    UploadProgress,
    UploadResult,
)

STUB_CONFIDENCE = 0.93


@dataclass
class _StubDocument:
    file_name: str
    extracted: bool = False


@dataclass
class _StubCollection:
    documents: Dict[str, _StubDocument] = field(default_factory=dict)
    polls_left: int = 0
    extracting: bool = False


def _stub_text(file_name: str) -> str:
    return f"Extracted text from {file_name}"


class StubTransport:
    """
    Deterministic in-memory remote.

    Uploads report progress in ``progress_steps`` increments. A collection
    uploaded with extraction finishes after ``polls_until_done`` status queries.
    """

    def __init__(self, *, progress_steps: int = 4, polls_until_done: int = 2) -> None:
        self.progress_steps = max(1, progress_steps)
        self.polls_until_done = polls_until_done
        self._collections: Dict[str, _StubCollection] = {}

    def _collection(self, group_id: str) -> _StubCollection:
        col = self._collections.get(group_id)
        if col is None:
            raise TransportError("collection not found", operation="status", status_code=404)
        return col

    def _document(self, group_id: str, item_id: str) -> _StubDocument:
        doc = self._collection(group_id).documents.get(item_id)
        if doc is None:
            raise TransportError("document not found", operation="extract", status_code=404)
        return doc

    async def submit_upload(self, files: Sequence[InputFile], *, auto_extract: bool) -> AsyncIterator[UploadEvent]:
        total = sum(len(f.content) or f.size for f in files)
        for step in range(1, self.progress_steps + 1):
            await asyncio.sleep(0)
            yield UploadProgress(bytes_sent=total * step // self.progress_steps, bytes_total=total)

        group_id = f"col-{uuid.uuid4().hex[:8]}"
        col = _StubCollection(polls_left=self.polls_until_done, extracting=auto_extract)
        items = []
        for f in files:
            item_id = f"doc-{uuid.uuid4().hex[:8]}"
            col.documents[item_id] = _StubDocument(file_name=f.name)
            items.append(UploadedItem(item_id=item_id, file_name=f.name, status="success"))
        self._collections[group_id] = col

        overall = None
        if auto_extract:
            overall = JobStatus.PROCESSING if self.polls_until_done > 0 else JobStatus.COMPLETED
            if overall == JobStatus.COMPLETED:
                for doc in col.documents.values():
                    doc.extracted = True

        yield UploadResult(group_id=group_id, items=items, overall_status=overall)

    async def submit_single_extraction(self, group_id: str, item_id: str) -> ExtractionResult:
        doc = self._document(group_id, item_id)
        await asyncio.sleep(0)
        doc.extracted = True
        return ExtractionResult(result_text=_stub_text(doc.file_name), confidence=STUB_CONFIDENCE, language="en")

    async def query_batch_status(self, group_id: str) -> BatchStatus:
        col = self._collection(group_id)
        await asyncio.sleep(0)
        if col.extracting and col.polls_left > 0:
            col.polls_left -= 1
            if col.polls_left == 0:
                for doc in col.documents.values():
                    doc.extracted = True

        items = [
            ItemStatus(
                item_id=item_id,
                file_name=doc.file_name,
                status=JobStatus.COMPLETED if doc.extracted else JobStatus.PROCESSING,
                result_text=_stub_text(doc.file_name) if doc.extracted else None,
                confidence=STUB_CONFIDENCE if doc.extracted else None,
                language="en" if doc.extracted else None,
            )
            for item_id, doc in col.documents.items()
        ]
        done = all(item.status == JobStatus.COMPLETED for item in items)
        return BatchStatus(
            group_id=group_id,
            overall_status=JobStatus.COMPLETED if done else JobStatus.PROCESSING,
            items=items,
        )

    async def fetch_document_data(self, group_id: str, item_id: str) -> DocumentData:
        doc = self._document(group_id, item_id)
        if not doc.extracted:
            raise TransportError("document has no OCR data yet", operation="ocr-data", status_code=404)
        return DocumentData(
            item_id=item_id,
            file_name=doc.file_name,
            result_text=_stub_text(doc.file_name),
            confidence=STUB_CONFIDENCE,
        )

    async def aclose(self) -> None:
        return None
