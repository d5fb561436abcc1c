from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return f"ocr-{uuid.uuid4().hex[:12]}"


class JobStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class Job(BaseModel):
    """One extraction operation on one file. Instances are never mutated in place."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_job_id)
    group_id: str = ""  # remote collection id, empty until the upload is accepted
    item_id: str = ""  # remote document id
    batch_id: str | None = None

    file_name: str
    file_size: int | None = None
    mime_type: str | None = None

    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)

    # set on COMPLETED; may be "" when the remote finished without returning text yet
    result_text: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    language: str | None = None
    error_message: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_bound(self) -> bool:
        return bool(self.group_id and self.item_id)


class AuditEventType(str, enum.Enum):
    JOB_CREATED = "JOB_CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    JOB_BOUND = "JOB_BOUND"
    JOB_RETRIED = "JOB_RETRIED"
    JOB_REMOVED = "JOB_REMOVED"
    ERROR = "ERROR"


class AuditEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    seq: int
    job_id: str
    event_type: AuditEventType
    # structured details only: statuses, ids, reasons; never extracted text
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


SUPPORTED_LANGUAGES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "ar": "Arabic",
    "hi": "Hindi",
    "nl": "Dutch",
    "pl": "Polish",
    "tr": "Turkish",
    "vi": "Vietnamese",
    "th": "Thai",
    "id": "Indonesian",
    "unknown": "Unknown",
}


def language_name(code: str | None) -> str:
    return SUPPORTED_LANGUAGES.get(code or "unknown", SUPPORTED_LANGUAGES["unknown"])
