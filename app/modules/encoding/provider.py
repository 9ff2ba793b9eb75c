"""HTTP client for the external encoding provider.

The provider pulls the raw upload from a readable URL, writes HLS output
directly into the encoded container under ``{video_id}/`` and calls back the
encoding webhook when the job finishes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from app.core.config import settings
from app.core.logging import log_info
from app.core.metrics import PROVIDER_SUBMISSIONS_TOTAL
from app.core.storage import Storage, get_raw_storage

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when the encoding provider rejects or fails a submission."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ProviderConfig:
    """Configuration for the encoding provider API."""
    api_url: str
    api_key: str
    storage_account: str
    encoded_container: str
    webhook_base_url: str
    webhook_secret: str
    variants: list[str] = field(default_factory=list)
    timeout_seconds: float = 30.0

    @classmethod
    def from_settings(cls) -> "ProviderConfig":
        return cls(
            api_url=settings.ENCODING_PROVIDER_API_URL,
            api_key=settings.ENCODING_PROVIDER_API_KEY,
            storage_account=settings.STORAGE_ACCOUNT_NAME,
            encoded_container=settings.ENCODED_CONTAINER,
            webhook_base_url=settings.ENCODING_WEBHOOK_BASE_URL,
            webhook_secret=settings.ENCODING_WEBHOOK_SECRET,
            variants=list(settings.ENCODING_HLS_VARIANTS),
            timeout_seconds=settings.ENCODING_PROVIDER_TIMEOUT_SECONDS,
        )


class EncodingProvider:
    """Submits encoding jobs to the provider's REST API."""

    INPUT_URL_EXPIRY_SECONDS = 3600

    def __init__(
        self,
        config: ProviderConfig,
        raw_storage: Optional[Storage] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self._raw_storage = raw_storage
        self._client = client

    def is_available(self) -> bool:
        """Provider can be used only with an API key and a storage account."""
        return bool(self.config.api_key and self.config.storage_account)

    @property
    def raw_storage(self) -> Storage:
        if self._raw_storage is None:
            self._raw_storage = get_raw_storage()
        return self._raw_storage

    def callback_url(self) -> str:
        base = self.config.webhook_base_url.rstrip("/")
        return f"{base}/webhooks/encoding/{self.config.webhook_secret}"

    def build_payload(self, video_id: str, input_url: str, input_blob_name: str) -> dict[str, Any]:
        """Build a job request for one video."""
        return {
            "input": {"url": input_url},
            "storage": {
                "service": "azure",
                "container": self.config.encoded_container,
                "path": f"/{video_id}",
                "credentials": {"account": self.config.storage_account},
            },
            "outputs": {
                "httpstream": {
                    "hls": {"path": "/", "variants": list(self.config.variants)},
                },
            },
            "notification": {
                "type": "http",
                "url": self.callback_url(),
                "events": True,
                "metadata": {
                    "video_id": video_id,
                    "input_blob_name": input_blob_name,
                },
            },
        }

    async def submit(self, video_id: str, input_blob_name: str) -> str:
        """Submit an encoding job.

        Returns:
            Provider job ID

        Raises:
            ProviderError: On transport errors or non-2xx responses
        """
        if not self.is_available():
            PROVIDER_SUBMISSIONS_TOTAL.labels(status="unavailable").inc()
            raise ProviderError("Encoding provider is not configured")

        input_url = self.raw_storage.get_url(input_blob_name, self.INPUT_URL_EXPIRY_SECONDS)
        payload = self.build_payload(video_id, input_url, input_blob_name)

        try:
            if self._client is not None:
                response = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                    response = await self._post(client, payload)
        except httpx.HTTPError as e:
            PROVIDER_SUBMISSIONS_TOTAL.labels(status="error").inc()
            raise ProviderError(f"Encoding provider request failed: {e}") from e

        if response.status_code >= 400:
            PROVIDER_SUBMISSIONS_TOTAL.labels(status="rejected").inc()
            raise ProviderError(
                f"Encoding provider returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        data = response.json()
        provider_job_id = str(data.get("id", ""))
        if not provider_job_id:
            PROVIDER_SUBMISSIONS_TOTAL.labels(status="rejected").inc()
            raise ProviderError("Encoding provider response did not include a job id")

        PROVIDER_SUBMISSIONS_TOTAL.labels(status="accepted").inc()
        log_info(
            logger,
            "Encoding job submitted to provider",
            video_id=video_id,
            provider_job_id=provider_job_id,
        )
        return provider_job_id

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> httpx.Response:
        return await client.post(
            self.config.api_url,
            json=payload,
            auth=(self.config.api_key, ""),
        )


def get_default_provider() -> EncodingProvider:
    """Get provider configured from application settings."""
    return EncodingProvider(ProviderConfig.from_settings())
