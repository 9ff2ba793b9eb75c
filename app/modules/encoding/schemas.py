"""Pydantic schemas for the encoding API."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class ProviderWebhookMetadata(BaseModel):
    """Metadata echoed back by the provider from the job submission."""
    video_id: Optional[str] = None
    input_blob_name: Optional[str] = None


class ProviderWebhookPayload(BaseModel):
    """Encoding provider callback body."""
    id: Optional[int | str] = Field(None, description="Provider job ID")
    event: str = Field(..., description="job.completed, job.failed, output.completed, ...")
    status: Optional[str] = None
    errors: Optional[dict[str, Any]] = None
    metadata: ProviderWebhookMetadata = Field(default_factory=ProviderWebhookMetadata)
    output_urls: Optional[dict[str, str]] = None


class WebhookAck(BaseModel):
    ok: bool = True


class QueueStatsResponse(BaseModel):
    """In-memory encoding queue counts."""
    pending: int
    processing: int
    completed: int
    failed: int
    total: int
    max_concurrent: int


class WatchdogReportResponse(BaseModel):
    """Result of a watchdog run."""
    started_at: datetime
    stuck_checked: int
    repaired_ready: int
    timed_out: int
    in_grace: int
    pending_checked: int
    requeued: int
    skipped_live_job: int
    skipped_missing_blob: int
    errors: int
    requeued_video_ids: list[str]

    class Config:
        from_attributes = True
