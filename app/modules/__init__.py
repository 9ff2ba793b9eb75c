"""Application modules.

- video: Video record and repository
- encoding: Encoding queue, worker, provider callback and watchdog
- publishing: Scheduled publishing
"""
