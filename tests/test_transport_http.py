import httpx
import pytest

from conftest import make_files
from ocrflow.core.exceptions import TransportError, TransportTimeoutError
from ocrflow.domain.models import JobStatus
from ocrflow.transport.contracts import UploadProgress, UploadResult
from ocrflow.transport.http_adapter import HttpTransport


def _envelope(data, status="success", code=200):
    return httpx.Response(code, json={"statusCode": code, "status": status, "message": "", "data": data})


def _transport(handler):
    client = httpx.AsyncClient(base_url="http://ocr.test/api/v1", transport=httpx.MockTransport(handler))
    return HttpTransport(base_url="http://ocr.test/api/v1", client=client, chunk_size=16)


class TestHttpTransport:
    """Wire mapping of the REST adapter against a mocked server."""

    @pytest.mark.asyncio
    async def test_upload_with_extraction(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["type"] = request.headers["content-type"]
            seen["body"] = request.content
            return _envelope(
                {
                    "collectionId": "col-1",
                    "files": [
                        {"documentId": "d1", "originalFileName": "a.pdf", "status": "success"},
                        {"documentId": "d2", "originalFileName": "b.pdf", "status": "success"},
                    ],
                    "overallStatus": "processing",
                }
            )

        transport = _transport(handler)
        events = [e async for e in transport.submit_upload(make_files("a.pdf", "b.pdf"), auto_extract=True)]

        assert seen["path"] == "/api/v1/collections/upload/extract-all"
        assert seen["type"].startswith("multipart/form-data")
        assert b'filename="a.pdf"' in seen["body"]
        result = events[-1]
        assert isinstance(result, UploadResult)
        assert [i.item_id for i in result.items] == ["d1", "d2"]
        assert result.overall_status == JobStatus.PROCESSING
        for event in events[:-1]:
            assert isinstance(event, UploadProgress)
            assert 0 < event.bytes_sent <= event.bytes_total

    @pytest.mark.asyncio
    async def test_upload_without_extraction_has_no_overall_status(self):
        def handler(request):
            assert request.url.path == "/api/v1/documents/upload"
            return _envelope({"collectionId": "col-1", "files": [{"documentId": "d1"}], "overallStatus": "pending"})

        transport = _transport(handler)
        events = [e async for e in transport.submit_upload(make_files("a.pdf"), auto_extract=False)]

        assert events[-1].overall_status is None

    @pytest.mark.asyncio
    async def test_upload_http_error(self):
        transport = _transport(lambda request: httpx.Response(413, json={"message": "too large"}))

        with pytest.raises(TransportError) as exc:
            [e async for e in transport.submit_upload(make_files("a.pdf"), auto_extract=True)]

        assert exc.value.status_code == 413
        assert exc.value.message == "too large"

    @pytest.mark.asyncio
    async def test_batch_status_derives_overall(self):
        def handler(request):
            assert request.url.path == "/api/v1/collections/col-1/document/results"
            return _envelope(
                {
                    "collectionId": "col-1",
                    "results": [
                        {
                            "documentId": "d1",
                            "fileName": "a.pdf",
                            "extractedText": "hello",
                            "confidence": 0.9,
                            "language": "en",
                            "status": "processed",
                        },
                        {"documentId": "d2", "fileName": "b.pdf", "status": "failed_ocr"},
                    ],
                }
            )

        status = await _transport(handler).query_batch_status("col-1")

        assert status.overall_status == JobStatus.COMPLETED
        assert status.item("d1").result_text == "hello"
        assert status.item("d2").status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_unknown_remote_status_is_a_transport_error(self):
        def handler(request):
            return _envelope({"collectionId": "col-1", "results": [{"documentId": "d1", "status": "weird"}]})

        with pytest.raises(TransportError):
            await _transport(handler).query_batch_status("col-1")

    @pytest.mark.asyncio
    async def test_single_extraction(self):
        def handler(request):
            assert request.method == "POST"
            assert request.url.path == "/api/v1/collections/col-1/document/d1/extract"
            return _envelope({"extractedText": "Invoice", "confidence": 0.97, "language": "en"})

        result = await _transport(handler).submit_single_extraction("col-1", "d1")

        assert result.result_text == "Invoice"
        assert result.confidence == 0.97

    @pytest.mark.asyncio
    async def test_document_data(self):
        def handler(request):
            assert request.url.path == "/api/v1/collections/col-1/document/d1/ocr-data"
            return _envelope({"documentId": "d1", "fileName": "a.pdf", "extractedText": "text", "confidence": 0.5})

        data = await _transport(handler).fetch_document_data("col-1", "d1")

        assert data.file_name == "a.pdf"
        assert data.result_text == "text"

    @pytest.mark.asyncio
    async def test_bad_document_payload_is_a_transport_error(self):
        def handler(request):
            return _envelope({"documentId": "d1", "extractedText": "text", "confidence": 95})

        with pytest.raises(TransportError) as exc:
            await _transport(handler).fetch_document_data("col-1", "d1")
        assert exc.value.operation == "ocr-data"

    @pytest.mark.asyncio
    async def test_error_envelope(self):
        transport = _transport(lambda request: _envelope(None, status="error"))
        with pytest.raises(TransportError):
            await transport.fetch_document_data("col-1", "d1")

    @pytest.mark.asyncio
    async def test_timeout_and_connection_errors(self):
        def slow(request):
            raise httpx.ReadTimeout("slow", request=request)

        def down(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportTimeoutError):
            await _transport(slow).query_batch_status("col-1")
        with pytest.raises(TransportError) as exc:
            await _transport(down).query_batch_status("col-1")
        assert exc.value.operation == "status"

    @pytest.mark.asyncio
    async def test_token_sets_bearer_header(self):
        transport = HttpTransport(base_url="http://ocr.test", token="secret")
        assert transport._client.headers["Authorization"] == "Bearer secret"
        await transport.aclose()
