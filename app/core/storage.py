"""Blob storage access for raw uploads and encoded output.

Supports: local filesystem, S3, MinIO, and other S3-compatible storage.
Encoded output lives in one container (bucket), raw uploads in another.
The encoding pipeline only needs cheap existence checks and readable URLs,
never the artifact bytes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app.core.config import settings

MANIFEST_FILENAME = "master.m3u8"


@dataclass
class StorageConfig:
    """Storage configuration."""
    backend: str  # local, s3, minio
    bucket: str = ""
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    use_ssl: bool = True
    local_path: str = "./storage"


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if a file exists in storage."""
        pass

    @abstractmethod
    def get_url(self, key: str, expires_in: int = 3600) -> str:
        """Get URL for a file (presigned for private storage)."""
        pass


class LocalStorage(StorageBackend):
    """Local filesystem storage backend.

    Each bucket maps to a sub-directory of the configured base path.
    """

    def __init__(self, config: StorageConfig):
        self.base_path = Path(config.local_path) / config.bucket
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, key: str) -> Path:
        return self.base_path / key

    def exists(self, key: str) -> bool:
        """Check if a file exists in local storage."""
        return self._get_full_path(key).is_file()

    def get_url(self, key: str, expires_in: int = 3600) -> str:
        """Get URL for a file."""
        return f"file://{self._get_full_path(key).absolute()}"


class S3Storage(StorageBackend):
    """S3/MinIO compatible storage backend."""

    def __init__(self, config: StorageConfig):
        self.config = config
        self._client = None

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            import boto3
            from botocore.config import Config as BotoConfig

            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
                "aws_access_key_id": self.config.access_key or None,
                "aws_secret_access_key": self.config.secret_key or None,
            }

            # For MinIO or other S3-compatible storage
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )

            if not self.config.use_ssl and self.config.endpoint_url:
                # Allow non-SSL for local MinIO
                client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)

        return self._client

    def exists(self, key: str) -> bool:
        """Check if a file exists using a HEAD request (no data transfer).

        Raises:
            botocore.exceptions.ClientError: For errors other than a missing key
        """
        from botocore.exceptions import ClientError

        client = self._get_client()
        try:
            client.head_object(Bucket=self.config.bucket, Key=key)
            return True
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise

    def get_url(self, key: str, expires_in: int = 3600) -> str:
        """Get a presigned URL for a file."""
        client = self._get_client()
        return client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.config.bucket, "Key": key},
            ExpiresIn=expires_in,
        )


class Storage:
    """Universal storage interface bound to one container.

    Automatically selects the appropriate backend based on configuration.
    """

    def __init__(self, config: StorageConfig):
        self.config = config
        self._backend = self._create_backend(config)

    @classmethod
    def for_container(cls, container: str) -> "Storage":
        """Build storage for a named container using application settings."""
        config = StorageConfig(
            backend=settings.STORAGE_BACKEND,
            bucket=container,
            region=settings.STORAGE_REGION,
            access_key=settings.STORAGE_ACCESS_KEY,
            secret_key=settings.STORAGE_SECRET_KEY,
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            use_ssl=settings.STORAGE_USE_SSL,
            local_path=settings.LOCAL_STORAGE_PATH,
        )
        return cls(config)

    def _create_backend(self, config: StorageConfig) -> StorageBackend:
        backend_type = config.backend.lower()

        if backend_type == "local":
            return LocalStorage(config)
        elif backend_type in ("s3", "minio", "aws"):
            return S3Storage(config)
        else:
            raise ValueError(f"Unsupported storage backend: {backend_type}")

    def exists(self, key: str) -> bool:
        """Check if a file exists in storage."""
        return self._backend.exists(key)

    def get_url(self, key: str, expires_in: int = 3600) -> str:
        """Get URL for a file."""
        return self._backend.get_url(key, expires_in)


_encoded_storage: Optional[Storage] = None
_raw_storage: Optional[Storage] = None


def get_encoded_storage() -> Storage:
    """Get storage bound to the encoded output container."""
    global _encoded_storage
    if _encoded_storage is None:
        _encoded_storage = Storage.for_container(settings.ENCODED_CONTAINER)
    return _encoded_storage


def get_raw_storage() -> Storage:
    """Get storage bound to the raw upload container."""
    global _raw_storage
    if _raw_storage is None:
        _raw_storage = Storage.for_container(settings.RAW_CONTAINER)
    return _raw_storage


def manifest_key(video_id) -> str:
    """Storage key of the HLS master manifest for a video."""
    return f"{video_id}/{MANIFEST_FILENAME}"


def build_encoded_url(
    video_id,
    filename: str,
    cdn_endpoint: Optional[str] = None,
    account_name: Optional[str] = None,
    container: Optional[str] = None,
) -> str:
    """Public URL of an encoded output file.

    Uses the CDN endpoint when one is configured, otherwise the direct
    storage account URL.
    """
    if cdn_endpoint is None:
        cdn_endpoint = settings.CDN_ENDPOINT
    key = f"{video_id}/{filename}"
    if cdn_endpoint:
        return f"{cdn_endpoint.rstrip('/')}/{key}"
    account_name = account_name if account_name is not None else settings.STORAGE_ACCOUNT_NAME
    container = container or settings.ENCODED_CONTAINER
    return f"https://{account_name}.blob.core.windows.net/{container}/{key}"


def build_manifest_url(video_id, cdn_endpoint: Optional[str] = None) -> str:
    """Public URL of the HLS master manifest for a video."""
    return build_encoded_url(video_id, MANIFEST_FILENAME, cdn_endpoint=cdn_endpoint)
