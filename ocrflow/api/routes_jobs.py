from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response

from ocrflow.api.deps import get_engine
from ocrflow.api.schemas_events import AuditEventResponse
from ocrflow.api.schemas_jobs import (
    ClearResponse,
    ExtractRequest,
    FilterRequest,
    JobResponse,
    JobsViewResponse,
    NoticeResponse,
    PageRequest,
    PageSizeRequest,
)
from ocrflow.core.exceptions import InvalidPageSizeError, JobNotFoundError, JobNotReadyError
from ocrflow.domain.models import Job
from ocrflow.domain.state_machine import TransitionError
from ocrflow.runtime.engine import JobEngine
from ocrflow.transport.contracts import InputFile
from ocrflow.views.projection import FilterCriteria
from ocrflow.views.stats import JobStats


router = APIRouter(prefix="/jobs", tags=["jobs"])


def _job_or_404(engine: JobEngine, job_id: str) -> Job:
    try:
        return engine.get_job(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


def _view(engine: JobEngine) -> JobsViewResponse:
    page = engine.page
    notice = engine.message
    return JobsViewResponse(
        items=[JobResponse.from_job(j) for j in page.items],
        current_page=page.current_page,
        page_size=page.page_size,
        total_pages=page.total_pages,
        total_items=page.total_items,
        page_numbers=page.page_numbers,
        has_previous=page.has_previous,
        has_next=page.has_next,
        start_index=page.start_index,
        end_index=page.end_index,
        filter=FilterRequest(**engine.filter.model_dump()),
        stats=engine.stats,
        busy=engine.busy,
        message=NoticeResponse(kind=notice.kind, text=notice.text) if notice else None,
    )


# -----------------------
# snapshots
# -----------------------

@router.get("", response_model=list[JobResponse])
async def list_jobs(engine: JobEngine = Depends(get_engine)):
    return [JobResponse.from_job(j) for j in engine.jobs]


@router.get("/view", response_model=JobsViewResponse)
async def get_view(engine: JobEngine = Depends(get_engine)):
    return _view(engine)


@router.get("/stats", response_model=JobStats)
async def get_stats(engine: JobEngine = Depends(get_engine)):
    return engine.stats


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, engine: JobEngine = Depends(get_engine)):
    return JobResponse.from_job(_job_or_404(engine, job_id))


@router.get("/{job_id}/events", response_model=list[AuditEventResponse])
async def get_job_events(job_id: str, engine: JobEngine = Depends(get_engine)):
    _job_or_404(engine, job_id)
    return [AuditEventResponse.model_validate(e) for e in engine.events(job_id)]


@router.get("/{job_id}/export")
async def export_job(job_id: str, fmt: Literal["txt", "json"] = "txt", engine: JobEngine = Depends(get_engine)):
    _job_or_404(engine, job_id)
    try:
        exported = engine.export_job(job_id, fmt)
    except JobNotReadyError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.file_name}"'},
    )


# -----------------------
# commands
# -----------------------

@router.post("/upload", response_model=list[JobResponse], status_code=202)
async def upload_files(
    files: Optional[List[UploadFile]] = File(default=None),
    auto_extract: bool = Form(default=True),
    engine: JobEngine = Depends(get_engine),
):
    inputs = []
    for f in files or []:
        content = await f.read()
        inputs.append(
            InputFile(
                name=f.filename or "upload",
                size=len(content),
                content_type=f.content_type or "application/octet-stream",
                content=content,
            )
        )
    jobs = engine.start_batch_upload(inputs, auto_extract=auto_extract)
    return [JobResponse.from_job(j) for j in jobs]


@router.post("/extract", response_model=JobResponse, status_code=202)
async def start_extraction(req: ExtractRequest, engine: JobEngine = Depends(get_engine)):
    job = engine.start_single_extraction(
        req.group_id,
        req.item_id,
        req.file_name,
        file_size=req.file_size,
        mime_type=req.mime_type,
    )
    return JobResponse.from_job(job)


@router.post("/clear-completed", response_model=ClearResponse)
async def clear_completed(engine: JobEngine = Depends(get_engine)):
    return ClearResponse(removed=engine.clear_completed())


@router.post("/clear-failed", response_model=ClearResponse)
async def clear_failed(engine: JobEngine = Depends(get_engine)):
    return ClearResponse(removed=engine.clear_failed())


@router.post("/{job_id}/extract", response_model=JobResponse, status_code=202)
async def extract_job(job_id: str, engine: JobEngine = Depends(get_engine)):
    _job_or_404(engine, job_id)
    try:
        job = engine.extract_job(job_id)
    except (JobNotReadyError, TransitionError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JobResponse.from_job(job)


@router.post("/{job_id}/retry", response_model=JobResponse, status_code=202)
async def retry_job(job_id: str, engine: JobEngine = Depends(get_engine)):
    job = _job_or_404(engine, job_id)
    retried = engine.retry_job(job_id)
    return JobResponse.from_job(retried or job)


@router.post("/{job_id}/load", response_model=JobResponse)
async def load_job_data(job_id: str, engine: JobEngine = Depends(get_engine)):
    _job_or_404(engine, job_id)
    return JobResponse.from_job(await engine.load_job_data(job_id))


@router.delete("/{job_id}", status_code=204)
async def remove_job(job_id: str, engine: JobEngine = Depends(get_engine)):
    if engine.remove_job(job_id) is None:
        raise HTTPException(status_code=404, detail="job not found")
    return Response(status_code=204)


@router.put("/filter", response_model=JobsViewResponse)
async def set_filter(req: FilterRequest, engine: JobEngine = Depends(get_engine)):
    engine.set_filter(FilterCriteria(status=req.status, search_query=req.search_query))
    return _view(engine)


@router.put("/page", response_model=JobsViewResponse)
async def set_page(req: PageRequest, engine: JobEngine = Depends(get_engine)):
    engine.set_page(req.page)
    return _view(engine)


@router.put("/page-size", response_model=JobsViewResponse)
async def set_page_size(req: PageSizeRequest, engine: JobEngine = Depends(get_engine)):
    try:
        engine.set_page_size(req.page_size)
    except InvalidPageSizeError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return _view(engine)
