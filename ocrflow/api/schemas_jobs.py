from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from ocrflow.domain.models import Job, JobStatus, language_name
from ocrflow.views.stats import JobStats


class JobResponse(BaseModel):
    id: str
    group_id: str
    item_id: str
    batch_id: Optional[str] = None
    file_name: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    status: JobStatus
    progress: int
    result_text: Optional[str] = None
    confidence: Optional[float] = None
    language: Optional[str] = None
    language_name: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(
            **job.model_dump(),
            language_name=language_name(job.language) if job.language else None,
        )


class ExtractRequest(BaseModel):
    group_id: str = Field(min_length=1)
    item_id: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_size: Optional[int] = None
    mime_type: Optional[str] = None


class FilterRequest(BaseModel):
    status: Optional[JobStatus] = None
    search_query: Optional[str] = None


class PageRequest(BaseModel):
    page: int


class PageSizeRequest(BaseModel):
    page_size: int


class NoticeResponse(BaseModel):
    kind: Literal["success", "error"]
    text: str


class JobsViewResponse(BaseModel):
    items: List[JobResponse]
    current_page: int
    page_size: int
    total_pages: int
    total_items: int
    page_numbers: List[Union[int, str]]
    has_previous: bool
    has_next: bool
    start_index: int
    end_index: int
    filter: FilterRequest
    stats: JobStats
    busy: bool
    message: Optional[NoticeResponse] = None


class ClearResponse(BaseModel):
    removed: int
