from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict

from ocrflow.domain.models import AuditEventType


class AuditEventResponse(BaseModel):
    """One entry of a job's lifecycle trail, oldest first."""

    model_config = ConfigDict(from_attributes=True)

    seq: int
    job_id: str
    event_type: AuditEventType
    payload: Dict[str, Any]
    created_at: datetime
