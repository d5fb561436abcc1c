from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Dict, List, Sequence

import httpx

from ocrflow.core.exceptions import TransportError, TransportTimeoutError
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
    parse_remote_status,
)

DEFAULT_TIMEOUT_S = 60.0
DEFAULT_CHUNK_SIZE = 64 * 1024

UPLOAD_PATH = "/documents/upload"
UPLOAD_EXTRACT_PATH = "/collections/upload/extract-all"


# -----------------------
# response mapping
# -----------------------

def _unwrap(response: httpx.Response, operation: str) -> Any:
    """Return ``data`` from the ``{statusCode, status, message, data}`` envelope."""
    if response.status_code >= 400:
        message = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message")
        raise TransportError(
            message or f"{operation} failed with HTTP {response.status_code}",
            operation=operation,
            status_code=response.status_code,
        )

    try:
        body = response.json()
    except ValueError as e:
        raise TransportError(f"{operation} returned a non-JSON body", operation=operation) from e

    if not isinstance(body, dict):
        raise TransportError(f"{operation} returned an unexpected payload", operation=operation)
    if body.get("status") == "error":
        raise TransportError(body.get("message") or f"{operation} failed", operation=operation)
    return body.get("data")


def _derive_overall(items: List[ItemStatus]) -> JobStatus:
    # the results endpoint has no collection-level status
    if items and all(item.status.is_terminal for item in items):
        if all(item.status == JobStatus.FAILED for item in items):
            return JobStatus.FAILED
        return JobStatus.COMPLETED
    return JobStatus.PROCESSING


def _upload_result(data: Dict[str, Any], *, auto_extract: bool) -> UploadResult:
    items = [
        UploadedItem(
            item_id=f["documentId"],
            file_name=f.get("originalFileName"),
            status=f.get("status"),
        )
        for f in data.get("files") or []
    ]
    return UploadResult(
        group_id=data["collectionId"],
        items=items,
        overall_status=data.get("overallStatus") if auto_extract else None,
    )


def _batch_status(group_id: str, data: Dict[str, Any]) -> BatchStatus:
    items = [
        ItemStatus(
            item_id=r["documentId"],
            file_name=r.get("fileName"),
            status=r.get("status") or JobStatus.PROCESSING,
            result_text=r.get("extractedText"),
            confidence=r.get("confidence"),
            language=r.get("language"),
            error_message=r.get("error"),
        )
        for r in data.get("results") or []
    ]
    overall = parse_remote_status(data.get("overallStatus")) or _derive_overall(items)
    return BatchStatus(group_id=data.get("collectionId") or group_id, overall_status=overall, items=items)


# -----------------------
# adapter
# -----------------------

class HttpTransport:
    """OcrTransport over the collection/document REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_s,
        )
        self._chunk_size = max(1, chunk_size)

    async def _send(self, request: httpx.Request, operation: str) -> httpx.Response:
        try:
            return await self._client.send(request)
        except httpx.TimeoutException as e:
            raise TransportTimeoutError(f"{operation} timed out", operation=operation) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{operation} failed: {type(e).__name__}: {e}", operation=operation) from e

    async def _call(self, method: str, path: str, *, operation: str, **kwargs: Any) -> Any:
        request = self._client.build_request(method, path, **kwargs)
        response = await self._send(request, operation)
        return _unwrap(response, operation)

    async def submit_upload(self, files: Sequence[InputFile], *, auto_extract: bool) -> AsyncIterator[UploadEvent]:
        path = UPLOAD_EXTRACT_PATH if auto_extract else UPLOAD_PATH
        encoded = self._client.build_request(
            "POST",
            path,
            files=[("files", (f.name, f.content, f.content_type)) for f in files],
        )
        body = encoded.read()
        total = len(body)

        # the body is streamed in chunks; each chunk handed to the connection
        # is reported as bytes sent
        sent_queue: asyncio.Queue[int | None] = asyncio.Queue()

        async def _chunks() -> AsyncIterator[bytes]:
            for start in range(0, total, self._chunk_size):
                chunk = body[start : start + self._chunk_size]
                yield chunk
                sent_queue.put_nowait(start + len(chunk))
            sent_queue.put_nowait(None)

        request = self._client.build_request(
            "POST",
            path,
            content=_chunks(),
            headers={
                "Content-Type": encoded.headers["Content-Type"],
                "Content-Length": str(total),
            },
        )
        send_task = asyncio.ensure_future(self._send(request, "upload"))
        try:
            while True:
                getter = asyncio.ensure_future(sent_queue.get())
                await asyncio.wait({getter, send_task}, return_when=asyncio.FIRST_COMPLETED)
                if not getter.done():
                    getter.cancel()
                    break
                sent = getter.result()
                if sent is None:
                    break
                yield UploadProgress(bytes_sent=sent, bytes_total=total)

            response = await send_task
        finally:
            if not send_task.done():
                send_task.cancel()

        data = _unwrap(response, "upload")
        if not isinstance(data, dict) or "collectionId" not in data:
            raise TransportError("upload response has no collection id", operation="upload")
        try:
            result = _upload_result(data, auto_extract=auto_extract)
        except (KeyError, ValueError) as e:
            raise TransportError(f"unexpected upload payload: {e}", operation="upload") from e
        yield result

    async def submit_single_extraction(self, group_id: str, item_id: str) -> ExtractionResult:
        data = await self._call(
            "POST",
            f"/collections/{group_id}/document/{item_id}/extract",
            operation="extract",
            json={},
        )
        data = data or {}
        try:
            return ExtractionResult(
                result_text=data.get("extractedText") or "",
                confidence=data.get("confidence"),
                language=data.get("language"),
                error_message=data.get("error"),
            )
        except ValueError as e:
            raise TransportError(f"unexpected extraction payload: {e}", operation="extract") from e

    async def query_batch_status(self, group_id: str) -> BatchStatus:
        data = await self._call("GET", f"/collections/{group_id}/document/results", operation="status")
        try:
            return _batch_status(group_id, data or {})
        except (KeyError, ValueError) as e:
            raise TransportError(f"unexpected status payload: {e}", operation="status") from e

    async def fetch_document_data(self, group_id: str, item_id: str) -> DocumentData:
        data = await self._call(
            "GET",
            f"/collections/{group_id}/document/{item_id}/ocr-data",
            operation="ocr-data",
        )
        data = data or {}
        try:
            return DocumentData(
                item_id=data.get("documentId") or item_id,
                file_name=data.get("fileName"),
                result_text=data.get("extractedText") or "",
                confidence=data.get("confidence"),
            )
        except ValueError as e:
            raise TransportError(f"unexpected ocr-data payload: {e}", operation="ocr-data") from e

    async def aclose(self) -> None:
        await self._client.aclose()
