"""Hot-tier object storage on Google Cloud Storage.

google-cloud-storage is blocking, so every call runs in the default
executor behind a bounded timeout. Failures surface as ProviderError.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import timedelta
from typing import TypeVar

import google.auth
from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.credentials import Credentials
from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.cloud import storage

from intake_service.config import GOOGLE_HTTP_TIMEOUT_SECONDS, INTAKE_HOT_BUCKET, INTAKE_URL_SIGNER_EMAIL
from intake_service.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


def gs_uri(bucket: str, name: str) -> str:
    return f"gs://{bucket}/{name}"


def hot_object_name(owner_id: str, document_id: str, filename: str) -> str:
    """Object key for a new upload: <owner>/<document>/<filename>."""
    safe_name = filename.replace("/", "_").strip() or "upload"
    return f"{owner_id}/{document_id}/{safe_name}"


class HotStorage:
    def __init__(
        self,
        client: storage.Client | None = None,
        *,
        bucket: str = INTAKE_HOT_BUCKET,
        timeout: float = GOOGLE_HTTP_TIMEOUT_SECONDS,
        signer_email: str | None = INTAKE_URL_SIGNER_EMAIL,
    ) -> None:
        self._client = client
        self._bucket = bucket
        self._timeout = timeout
        self._signer_email = signer_email
        self._signer_credentials: Credentials | None = None

    @property
    def bucket(self) -> str:
        return self._bucket

    def _blob(self, name: str) -> storage.Blob:
        if self._client is None:
            self._client = storage.Client()
        return self._client.bucket(self._bucket).blob(name)

    async def _run(self, what: str, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(None, fn), timeout=self._timeout)
        except TimeoutError as e:
            raise ProviderError(f"Storage {what} timed out", cause=e) from e
        except (GoogleAPIError, GoogleAuthError) as e:
            raise ProviderError(f"Storage {what} failed: {e}", cause=e) from e

    def _iam_signing_kwargs(self) -> dict[str, str]:
        """Sign via IAM signBlob as signer_email, using the runtime access token."""
        if not self._signer_email:
            return {}
        if self._signer_credentials is None:
            self._signer_credentials, _ = google.auth.default(scopes=[_CLOUD_PLATFORM_SCOPE])
        if not self._signer_credentials.valid:
            self._signer_credentials.refresh(google_requests.Request())
        return {
            "service_account_email": self._signer_email,
            "access_token": self._signer_credentials.token,
        }

    async def signed_url(self, name: str, ttl_seconds: int) -> str:
        """Time-limited v4 GET URL for a hot object.

        Without a configured signer the client credentials must hold a
        private key; token-only credentials fail with ProviderError.
        """

        def _sign() -> str:
            try:
                return self._blob(name).generate_signed_url(
                    version="v4",
                    expiration=timedelta(seconds=ttl_seconds),
                    method="GET",
                    **self._iam_signing_kwargs(),
                )
            except AttributeError as e:
                # google-cloud-storage raises this for credentials without a signer
                raise ProviderError(f"Storage credentials cannot sign URLs: {e}", cause=e) from e

        return await self._run("signing", _sign)

    async def upload_bytes(self, name: str, data: bytes, *, content_type: str) -> None:
        def _upload() -> None:
            self._blob(name).upload_from_string(data, content_type=content_type)

        await self._run("upload", _upload)
        logger.info("Uploaded %d bytes to %s", len(data), gs_uri(self._bucket, name))

    async def remove(self, name: str) -> bool:
        """Delete a hot object. Returns False when it was already gone."""

        def _delete() -> bool:
            try:
                self._blob(name).delete()
            except NotFound:
                return False
            return True

        removed = await self._run("delete", _delete)
        if not removed:
            logger.info("Hot object %s already absent", gs_uri(self._bucket, name))
        return removed
