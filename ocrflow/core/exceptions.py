"""
Exception hierarchy for the OCR job engine.

Every error carries a human-readable message plus a ``details`` dict of
context for logs and audit payloads.
"""

from typing import Any


class OcrFlowError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class JobNotFoundError(OcrFlowError):
    """Raised when a command names a job id that is not in the store."""

    def __init__(self, job_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["job_id"] = job_id
        super().__init__(f"Job not found: {job_id}", details)


class JobNotReadyError(OcrFlowError):
    """Raised when a command needs data the job does not have yet (remote ids, extracted text)."""

    def __init__(self, job_id: str, reason: str) -> None:
        super().__init__(f"Job {job_id} is not ready: {reason}", {"job_id": job_id})


class InvalidPageSizeError(OcrFlowError, ValueError):
    """Raised when a page size outside the allowed options is requested."""

    def __init__(self, page_size: int, allowed: tuple[int, ...]) -> None:
        super().__init__(
            f"Unsupported page size: {page_size}",
            {"page_size": page_size, "allowed": list(allowed)},
        )


class TransportError(OcrFlowError):
    """Raised by transports when a remote call fails."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Args:
            message: Error message
            operation: Transport operation that failed (upload, extract, status, ocr-data)
            status_code: HTTP status code when the remote answered with an error
            details: Additional context
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        if status_code is not None:
            details["status_code"] = status_code
        self.operation = operation
        self.status_code = status_code
        super().__init__(message, details)


class TransportTimeoutError(TransportError):
    """Raised when a remote call exceeds the configured timeout."""
