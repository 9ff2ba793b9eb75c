"""Video encoding module.

In-memory priority job queue, provider dispatch worker, provider callback
handling and the watchdog that repairs encodes the normal flow lost.
"""

from app.modules.encoding.events import QueueEvent, QueueEventBus
from app.modules.encoding.queue import (
    EncodingJob,
    EncodingJobQueue,
    JobStatus,
    QueueStats,
)
from app.modules.encoding.provider import EncodingProvider, ProviderConfig, ProviderError
from app.modules.encoding.watchdog import EncodingWatchdog, WatchdogReport
from app.modules.encoding.worker import EncodingWorker, enqueue_video
from app.modules.encoding.service import EncodingCallbackService
from app.modules.encoding.runtime import EncodingRuntime, get_runtime, set_runtime
from app.modules.encoding.router import router as encoding_router
from app.modules.encoding.router import webhook_router as encoding_webhook_router

__all__ = [
    # Queue
    "EncodingJob",
    "EncodingJobQueue",
    "JobStatus",
    "QueueStats",
    "QueueEvent",
    "QueueEventBus",
    # Provider
    "EncodingProvider",
    "ProviderConfig",
    "ProviderError",
    # Workers
    "EncodingWatchdog",
    "WatchdogReport",
    "EncodingWorker",
    "enqueue_video",
    "EncodingCallbackService",
    # Runtime
    "EncodingRuntime",
    "get_runtime",
    "set_runtime",
    # Routers
    "encoding_router",
    "encoding_webhook_router",
]
