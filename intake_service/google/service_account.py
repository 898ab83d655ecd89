"""Mint access tokens for a service account with google-auth."""

from __future__ import annotations

import asyncio
import logging

from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import service_account

from intake_service.config import GOOGLE_HTTP_TIMEOUT_SECONDS, GOOGLE_SERVICE_ACCOUNT_SCOPES
from intake_service.errors import NotConfiguredError, ProviderError
from intake_service.types import ServiceAccountCredentials

logger = logging.getLogger(__name__)

_TOKEN_URI = "https://oauth2.googleapis.com/token"


def _build_credentials(
    creds: ServiceAccountCredentials, scopes: list[str]
) -> service_account.Credentials:
    info = {
        "type": "service_account",
        "client_email": creds.email,
        "private_key": creds.private_key,
        "token_uri": _TOKEN_URI,
    }
    try:
        return service_account.Credentials.from_service_account_info(info, scopes=scopes)
    except (ValueError, KeyError) as e:
        # A malformed key is an administrator setup problem, not a transient one
        raise NotConfiguredError(
            f"Service account {creds.email} has an unusable private key", cause=e
        ) from e


def _mint(creds: ServiceAccountCredentials, scopes: list[str]) -> str:
    sa_creds = _build_credentials(creds, scopes)
    try:
        sa_creds.refresh(google_requests.Request())
    except GoogleAuthError as e:
        raise ProviderError(f"Service account token request failed: {e}", cause=e) from e
    if not sa_creds.token:
        raise ProviderError("Service account token request returned no token")
    return str(sa_creds.token)


async def mint_access_token(
    creds: ServiceAccountCredentials,
    scopes: list[str] | None = None,
) -> str:
    """Run the blocking google-auth token exchange in the default executor."""
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, _mint, creds, scopes or GOOGLE_SERVICE_ACCOUNT_SCOPES)
    try:
        return await asyncio.wait_for(future, timeout=GOOGLE_HTTP_TIMEOUT_SECONDS)
    except TimeoutError as e:
        raise ProviderError("Service account token request timed out", cause=e) from e
