"""Encoding API router.

Provider callback, queue statistics and a manual watchdog trigger. The
operator routes require the ``X-API-Key`` header.
"""

import hmac
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_session
from app.core.logging import log_warning
from app.core.scheduler import TaskAlreadyRunning
from app.modules.encoding.runtime import EncodingRuntime, get_runtime
from app.modules.encoding.schemas import (
    ProviderWebhookPayload,
    QueueStatsResponse,
    WatchdogReportResponse,
    WebhookAck,
)
from app.modules.encoding.service import EncodingCallbackService

logger = logging.getLogger(__name__)

operator_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _secret_matches(secret: Optional[str], expected: str) -> bool:
    if not secret or not expected:
        return False
    return hmac.compare_digest(secret.encode(), expected.encode())


async def require_operator_key(api_key: Optional[str] = Depends(operator_key_header)) -> None:
    """Reject operator requests without the configured API key."""
    if not _secret_matches(api_key, settings.ENCODING_OPERATOR_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )


router = APIRouter(
    prefix="/encoding",
    tags=["encoding"],
    dependencies=[Depends(require_operator_key)],
)
webhook_router = APIRouter(prefix="/webhooks", tags=["encoding"])


@webhook_router.post("/encoding/{secret}", response_model=WebhookAck)
async def encoding_webhook(
    secret: str,
    payload: ProviderWebhookPayload,
    session: AsyncSession = Depends(get_session),
):
    """Receive an encoding provider callback."""
    if not _secret_matches(secret, settings.ENCODING_WEBHOOK_SECRET):
        log_warning(logger, "Rejected encoding webhook with invalid secret", event=payload.event)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid webhook secret")

    service = EncodingCallbackService(session)
    await service.handle_event(payload)
    return WebhookAck()


@router.get("/queue/stats", response_model=QueueStatsResponse)
async def get_queue_stats(runtime: EncodingRuntime = Depends(get_runtime)):
    """Get in-memory encoding queue counts."""
    stats = runtime.queue.get_stats()
    return QueueStatsResponse(**asdict(stats), max_concurrent=runtime.queue.max_concurrent)


@router.post("/watchdog/run", response_model=WatchdogReportResponse)
async def run_watchdog(runtime: EncodingRuntime = Depends(get_runtime)):
    """Run the encoding watchdog now.

    Returns 409 while a scheduled run is in progress.
    """
    try:
        report = await runtime.run_watchdog()
    except TaskAlreadyRunning:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Watchdog run already in progress",
        )
    return WatchdogReportResponse.model_validate(report)
