from __future__ import annotations
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ocrflow.domain.models import JobStatus

# Remote spellings seen on files, collections and OCR results
_REMOTE_STATUS = {
    "pending": JobStatus.PENDING,
    "uploaded": JobStatus.PENDING,
    "queued": JobStatus.PENDING,
    "processing": JobStatus.PROCESSING,
    "in_progress": JobStatus.PROCESSING,
    "running": JobStatus.PROCESSING,
    "success": JobStatus.COMPLETED,
    "processed": JobStatus.COMPLETED,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "failed_ocr": JobStatus.FAILED,
    "error": JobStatus.FAILED,
}


def parse_remote_status(value: Any) -> Optional[JobStatus]:
    if value is None or isinstance(value, JobStatus):
        return value
    status = _REMOTE_STATUS.get(str(value).strip().lower())
    if status is None:
        raise ValueError(f"unknown remote status: {value!r}")
    return status


class _RemoteModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class InputFile(_RemoteModel):
    name: str
    size: int = Field(default=0, ge=0)
    content_type: str = "application/octet-stream"
    content: bytes = b""


class UploadProgress(_RemoteModel):
    bytes_sent: int
    bytes_total: int

    @property
    def percent(self) -> int:
        if self.bytes_total <= 0:
            return 0
        return min(100, round(self.bytes_sent / self.bytes_total * 100))


class UploadedItem(_RemoteModel):
    item_id: str
    file_name: Optional[str] = None
    status: Optional[JobStatus] = None

    check_status = field_validator("status", mode="before")(parse_remote_status)


class UploadResult(_RemoteModel):
    group_id: str
    items: List[UploadedItem] = Field(default_factory=list)
    # None when extraction was not requested with the upload
    overall_status: Optional[JobStatus] = None
    message: Optional[str] = None

    check_overall_status = field_validator("overall_status", mode="before")(parse_remote_status)


UploadEvent = Union[UploadProgress, UploadResult]


class ExtractionResult(_RemoteModel):
    result_text: str = ""
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    language: Optional[str] = None
    # soft note on a successful extraction, e.g. partially unreadable pages
    error_message: Optional[str] = None


class ItemStatus(_RemoteModel):
    item_id: str
    status: JobStatus
    file_name: Optional[str] = None
    result_text: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    language: Optional[str] = None
    error_message: Optional[str] = None

    check_status = field_validator("status", mode="before")(parse_remote_status)


class BatchStatus(_RemoteModel):
    group_id: str
    overall_status: Optional[JobStatus] = None
    items: List[ItemStatus] = Field(default_factory=list)

    check_overall_status = field_validator("overall_status", mode="before")(parse_remote_status)

    @property
    def is_resolved(self) -> bool:
        return self.overall_status is not None and self.overall_status.is_terminal

    def item(self, item_id: str) -> Optional[ItemStatus]:
        for entry in self.items:
            if entry.item_id == item_id:
                return entry
        return None


class DocumentData(_RemoteModel):
    item_id: str
    file_name: Optional[str] = None
    result_text: str = ""
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
