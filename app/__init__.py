"""Video Encoding Backend.

Encodes uploaded videos through an external provider and publishes them on
schedule.

Modules:
    - core: Configuration, database, Redis, Celery, logging, metrics, storage
    - modules.video: Durable video record and its state transitions
    - modules.encoding: Job queue, provider worker, callbacks and watchdog
    - modules.publishing: Scheduled publishing passes
"""

__version__ = "0.1.0"
