"""Google OAuth 2.0 endpoints: consent URL, code exchange, refresh, tokeninfo.

Thin async wrapper over the token endpoints using httpx with a bounded
timeout. Every transport or HTTP failure is raised as ProviderError; the
caller decides what a failure means (e.g. a failed refresh means reconnect).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx

from intake_service.config import GOOGLE_HTTP_TIMEOUT_SECONDS, GOOGLE_SHEETS_SCOPES
from intake_service.errors import ProviderError
from intake_service.types import OAuthCredentials

logger = logging.getLogger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
TOKENINFO_URI = "https://oauth2.googleapis.com/tokeninfo"


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: str | None
    expires_at: datetime | None
    scope: str | None = None


def _now() -> datetime:
    return datetime.now(UTC)


class GoogleOAuthClient:
    def __init__(
        self,
        credentials: OAuthCredentials,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = GOOGLE_HTTP_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._creds = credentials
        self._http = http_client
        self._timeout = timeout
        self._clock = clock

    def authorization_url(self, state: str, *, scopes: list[str] | None = None) -> str:
        params = {
            "client_id": self._creds.client_id,
            "redirect_uri": self._creds.redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes or GOOGLE_SHEETS_SCOPES),
            # offline + consent so Google always hands back a refresh token
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{AUTH_URI}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenGrant:
        payload = await self._post_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self._creds.client_id,
                "client_secret": self._creds.client_secret,
                "redirect_uri": self._creds.redirect_uri,
            },
            operation="code exchange",
        )
        return self._grant_from_payload(payload, previous_refresh_token=None)

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """Trade a refresh token for a new access token.

        Google usually omits refresh_token on refresh; the old one stays valid
        and is carried over.
        """
        payload = await self._post_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self._creds.client_id,
                "client_secret": self._creds.client_secret,
            },
            operation="token refresh",
        )
        return self._grant_from_payload(payload, previous_refresh_token=refresh_token)

    async def token_info(self, access_token: str) -> dict[str, Any]:
        async with self._client() as client:
            try:
                resp = await client.get(TOKENINFO_URI, params={"access_token": access_token})
            except httpx.HTTPError as e:
                raise ProviderError(f"Token introspection failed: {e}", cause=e) from e
        if resp.status_code != 200:
            raise ProviderError(f"Token introspection returned HTTP {resp.status_code}")
        return _json_object(resp, "token introspection")

    async def _post_token(self, form: dict[str, str], *, operation: str) -> dict[str, Any]:
        async with self._client() as client:
            try:
                resp = await client.post(TOKEN_URI, data=form)
            except httpx.HTTPError as e:
                raise ProviderError(f"OAuth {operation} failed: {e}", cause=e) from e

        if resp.status_code != 200:
            error_code = _error_code(resp)
            logger.warning("OAuth %s rejected: HTTP %d (%s)", operation, resp.status_code, error_code)
            raise ProviderError(f"OAuth {operation} rejected: {error_code}")

        payload = _json_object(resp, f"OAuth {operation}")
        if not payload.get("access_token"):
            raise ProviderError(f"OAuth {operation} returned no access token")
        return payload

    def _grant_from_payload(
        self, payload: dict[str, Any], *, previous_refresh_token: str | None
    ) -> TokenGrant:
        expires_in = payload.get("expires_in")
        try:
            expires_at = (
                self._clock() + timedelta(seconds=int(expires_in)) if expires_in is not None else None
            )
        except (TypeError, ValueError) as e:
            raise ProviderError(
                f"OAuth token response has invalid expires_in: {expires_in!r}", cause=e
            ) from e
        return TokenGrant(
            access_token=str(payload["access_token"]),
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            expires_at=expires_at,
            scope=payload.get("scope"),
        )

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http is not None:
            yield self._http
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client


def _error_code(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or f"HTTP {resp.status_code}")
    return f"HTTP {resp.status_code}"


def _json_object(resp: httpx.Response, what: str) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError as e:
        raise ProviderError(f"{what} returned a non-JSON body", cause=e) from e
    if not isinstance(body, dict):
        raise ProviderError(f"{what} returned an unexpected JSON payload")
    return body
