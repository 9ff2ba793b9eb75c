"""Tests for storage keys, URL construction and local existence checks."""

import uuid
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from hypothesis import given, settings, strategies as st

import app.core.storage as storage_module
from app.core.config import settings as app_settings
from app.core.storage import (
    LocalStorage,
    S3Storage,
    StorageConfig,
    build_encoded_url,
    build_manifest_url,
    get_encoded_storage,
    manifest_key,
)


class TestManifestUrl:
    def test_manifest_key(self):
        video_id = uuid.UUID("12345678-1234-5678-1234-567812345678")
        assert manifest_key(video_id) == "12345678-1234-5678-1234-567812345678/master.m3u8"

    def test_cdn_endpoint_used_when_configured(self):
        assert build_manifest_url("abc", cdn_endpoint="https://cdn.example.com/") == (
            "https://cdn.example.com/abc/master.m3u8"
        )

    def test_storage_account_url_without_cdn(self):
        assert build_manifest_url("abc", cdn_endpoint="") == (
            "https://teststorage.blob.core.windows.net/videos-encoded/abc/master.m3u8"
        )

    def test_explicit_account_and_container(self):
        url = build_encoded_url(
            "abc",
            "720p/index.m3u8",
            cdn_endpoint="",
            account_name="media",
            container="hls",
        )
        assert url == "https://media.blob.core.windows.net/hls/abc/720p/index.m3u8"

    @given(video_id=st.uuids())
    @settings(max_examples=100)
    def test_manifest_url_ends_with_manifest_key(self, video_id):
        for cdn in ("", "https://cdn.example.com"):
            assert build_manifest_url(video_id, cdn_endpoint=cdn).endswith("/" + manifest_key(video_id))


class TestLocalStorage:
    @pytest.fixture
    def storage(self, tmp_path):
        return LocalStorage(StorageConfig(backend="local", bucket="videos-encoded", local_path=str(tmp_path)))

    def test_exists_for_written_file(self, storage):
        path = storage.base_path / "vid" / "master.m3u8"
        path.parent.mkdir(parents=True)
        path.write_text("#EXTM3U\n")

        assert storage.exists("vid/master.m3u8") is True

    def test_missing_file(self, storage):
        assert storage.exists("vid/master.m3u8") is False

    def test_directory_is_not_a_manifest(self, storage):
        (storage.base_path / "vid" / "master.m3u8").mkdir(parents=True)

        assert storage.exists("vid/master.m3u8") is False


class TestS3Exists:
    @pytest.fixture
    def storage(self):
        storage = S3Storage(StorageConfig(backend="s3", bucket="videos-encoded"))
        storage._client = MagicMock()
        return storage

    def test_head_success_means_exists(self, storage):
        assert storage.exists("vid/master.m3u8") is True
        storage._client.head_object.assert_called_once_with(Bucket="videos-encoded", Key="vid/master.m3u8")

    @pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
    def test_missing_key(self, storage, code):
        storage._client.head_object.side_effect = ClientError({"Error": {"Code": code}}, "HeadObject")
        assert storage.exists("vid/master.m3u8") is False

    def test_other_errors_propagate(self, storage):
        storage._client.head_object.side_effect = ClientError({"Error": {"Code": "403"}}, "HeadObject")
        with pytest.raises(ClientError):
            storage.exists("vid/master.m3u8")


class TestEncodedStorage:
    @pytest.fixture(autouse=True)
    def fresh_storage(self, monkeypatch, tmp_path):
        monkeypatch.setattr(storage_module, "_encoded_storage", None)
        monkeypatch.setattr(app_settings, "LOCAL_STORAGE_PATH", str(tmp_path))
        monkeypatch.setattr(app_settings, "ENCODED_CONTAINER", "hls-output")

    def test_existence_checks_use_the_url_container(self):
        storage = get_encoded_storage()

        assert storage.config.bucket == "hls-output"
        assert build_manifest_url("abc", cdn_endpoint="") == (
            "https://teststorage.blob.core.windows.net/hls-output/abc/master.m3u8"
        )

    def test_manifest_written_under_container_is_found(self, tmp_path):
        manifest = tmp_path / "hls-output" / manifest_key("abc")
        manifest.parent.mkdir(parents=True)
        manifest.write_text("#EXTM3U\n")

        assert get_encoded_storage().exists(manifest_key("abc")) is True
