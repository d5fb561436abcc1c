from ocrflow.core.config import Settings
from ocrflow.transport.base import OcrTransport
from ocrflow.transport.http_adapter import HttpTransport
from ocrflow.transport.stubs import StubTransport


def build_transport(settings: Settings) -> OcrTransport:
    if settings.transport == "http":
        return HttpTransport(
            base_url=settings.api_base_url,
            token=settings.api_token,
            timeout_s=settings.request_timeout_s,
            chunk_size=settings.upload_chunk_size,
        )
    return StubTransport()
