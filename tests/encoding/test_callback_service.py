"""Tests for provider callback handling."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeVideoRepository

from app.modules.encoding.schemas import ProviderWebhookPayload
from app.modules.encoding.service import EncodingCallbackService
from app.modules.video.models import EncodingStatus, EncodingTiersStatus


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def payload(event: str, video_id, **kwargs) -> ProviderWebhookPayload:
    return ProviderWebhookPayload(
        id=1234,
        event=event,
        metadata={"video_id": str(video_id) if video_id is not None else None},
        **kwargs,
    )


def make_service(session_factory) -> EncodingCallbackService:
    return EncodingCallbackService(
        session_factory(),
        repository_cls=FakeVideoRepository,
        clock=lambda: NOW,
    )


class TestJobCompleted:
    @pytest.mark.asyncio
    async def test_completed_marks_ready_with_full_tiers(self, video_store, session_factory):
        video = video_store.add(
            encoding_status=EncodingStatus.ENCODING,
            encoding_started_at=NOW - timedelta(minutes=5),
            mp4_url="https://legacy.example.com/old.mp4",
        )

        result = await make_service(session_factory).handle_event(payload("job.completed", video.id))

        stored = video_store.get(video.id)
        assert result == "ready"
        assert stored.encoding_status == EncodingStatus.READY
        assert stored.encoding_tiers_status == EncodingTiersStatus.FULL
        assert stored.hls_manifest_url == (
            f"https://teststorage.blob.core.windows.net/videos-encoded/{video.id}/master.m3u8"
        )
        assert stored.mp4_url is None
        assert stored.encoding_completed_at == NOW

    @pytest.mark.asyncio
    async def test_late_completion_upgrades_watchdog_repair(self, video_store, session_factory):
        video = video_store.add(
            encoding_status=EncodingStatus.READY,
            encoding_tiers_status=EncodingTiersStatus.PARTIAL,
        )

        await make_service(session_factory).handle_event(payload("job.completed", video.id))

        assert video_store.get(video.id).encoding_tiers_status == EncodingTiersStatus.FULL

    @pytest.mark.asyncio
    async def test_completion_for_pending_video_is_ignored(self, video_store, session_factory):
        video = video_store.add(encoding_status=EncodingStatus.PENDING)

        result = await make_service(session_factory).handle_event(payload("job.completed", video.id))

        assert result is None
        assert video_store.get(video.id).encoding_status == EncodingStatus.PENDING

    @pytest.mark.asyncio
    async def test_completion_does_not_revive_timed_out_video(self, video_store, session_factory):
        video = video_store.add(
            encoding_status=EncodingStatus.FAILED,
            encoding_error="Encoding timed out",
        )

        result = await make_service(session_factory).handle_event(payload("job.completed", video.id))

        stored = video_store.get(video.id)
        assert result is None
        assert stored.encoding_status == EncodingStatus.FAILED
        assert stored.encoding_error == "Encoding timed out"
        assert stored.hls_manifest_url is None

    @pytest.mark.asyncio
    async def test_repeated_completion_leaves_full_video_alone(self, video_store, session_factory):
        video = video_store.add(
            encoding_status=EncodingStatus.READY,
            encoding_tiers_status=EncodingTiersStatus.FULL,
            encoding_completed_at=NOW - timedelta(hours=1),
        )

        result = await make_service(session_factory).handle_event(payload("job.completed", video.id))

        assert result is None
        assert video_store.get(video.id).encoding_completed_at == NOW - timedelta(hours=1)


class TestJobFailed:
    @pytest.mark.asyncio
    async def test_failed_marks_video_failed(self, video_store, session_factory):
        video = video_store.add(encoding_status=EncodingStatus.ENCODING)

        result = await make_service(session_factory).handle_event(
            payload("job.failed", video.id, errors={"input": "unreadable"})
        )

        stored = video_store.get(video.id)
        assert result == "failed"
        assert stored.encoding_status == EncodingStatus.FAILED
        assert "unreadable" in stored.encoding_error
        assert stored.encoding_tiers_status == EncodingTiersStatus.NONE

    @pytest.mark.asyncio
    async def test_failure_does_not_flap_ready_video(self, video_store, session_factory):
        video = video_store.add(encoding_status=EncodingStatus.READY)

        result = await make_service(session_factory).handle_event(payload("job.failed", video.id))

        assert result is None
        assert video_store.get(video.id).encoding_status == EncodingStatus.READY

    @pytest.mark.asyncio
    async def test_stale_failure_leaves_requeued_video_pending(self, video_store, session_factory):
        # Re-admitted for a fresh encode; the report belongs to the old job
        video = video_store.add(encoding_status=EncodingStatus.PENDING, original_blob_name="raw/a.mp4")

        result = await make_service(session_factory).handle_event(
            payload("job.failed", video.id, errors={"input": "unreadable"})
        )

        stored = video_store.get(video.id)
        assert result is None
        assert stored.encoding_status == EncodingStatus.PENDING
        assert stored.encoding_error is None


class TestOtherEvents:
    @pytest.mark.asyncio
    async def test_informational_event_changes_nothing(self, video_store, session_factory):
        video = video_store.add(encoding_status=EncodingStatus.ENCODING)

        result = await make_service(session_factory).handle_event(payload("output.completed", video.id))

        assert result is None
        assert video_store.get(video.id).encoding_status == EncodingStatus.ENCODING
        assert video_store.commits == 0

    @pytest.mark.asyncio
    async def test_missing_video_id_is_ignored(self, video_store, session_factory):
        result = await make_service(session_factory).handle_event(payload("job.completed", None))
        assert result is None

    @pytest.mark.asyncio
    async def test_malformed_video_id_is_ignored(self, video_store, session_factory):
        result = await make_service(session_factory).handle_event(payload("job.completed", "not-a-uuid"))
        assert result is None

    @pytest.mark.asyncio
    async def test_unknown_video_is_ignored(self, video_store, session_factory):
        result = await make_service(session_factory).handle_event(payload("job.completed", uuid.uuid4()))
        assert result is None
