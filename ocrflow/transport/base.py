from __future__ import annotations
from typing import AsyncIterator, Protocol, Sequence

from ocrflow.transport.contracts import (
    BatchStatus,
    DocumentData,
    ExtractionResult,
    InputFile,
    UploadEvent,
)

class OcrTransport(Protocol):
    """
    Remote side of the engine. Implementations raise TransportError on failure.

    ``submit_upload`` yields UploadProgress events and ends with exactly one
    UploadResult.
    """

    def submit_upload(self, files: Sequence[InputFile], *, auto_extract: bool) -> AsyncIterator[UploadEvent]:
        ...

    async def submit_single_extraction(self, group_id: str, item_id: str) -> ExtractionResult:
        ...

    async def query_batch_status(self, group_id: str) -> BatchStatus:
        ...

    async def fetch_document_data(self, group_id: str, item_id: str) -> DocumentData:
        ...

    async def aclose(self) -> None:
        ...
