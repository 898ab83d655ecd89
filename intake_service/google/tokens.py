"""Token lifecycle for a user's Google Sheets OAuth integration.

Stored access tokens are returned as-is until they expire. An expired token
gets exactly one refresh attempt; if that fails the refresh token is taken
to be revoked and the user has to reconnect. Nothing here retries.

Two requests for the same user may both see an expired token and both
refresh. That is tolerated: Google keeps concurrently issued access tokens
valid, so the race costs one extra refresh call and the last write wins.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

import asyncpg

from intake_service.errors import (
    NotConfiguredError,
    NotConnectedError,
    ProviderError,
    ReconnectRequiredError,
)
from intake_service.google.credentials import CredentialStore
from intake_service.google.oauth import GoogleOAuthClient
from intake_service.stores.integration_store import IntegrationTokenStore
from intake_service.types import OAuthCredentials, UserIntegrationToken

logger = logging.getLogger(__name__)

OAuthClientFactory = Callable[[OAuthCredentials], GoogleOAuthClient]


def _now() -> datetime:
    return datetime.now(UTC)


class TokenLifecycleManager:
    def __init__(
        self,
        credentials: CredentialStore,
        *,
        store: IntegrationTokenStore | None = None,
        oauth_client_factory: OAuthClientFactory = GoogleOAuthClient,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._credentials = credentials
        self._store = store or IntegrationTokenStore()
        self._oauth_client_factory = oauth_client_factory
        self._clock = clock

    async def get_valid_access_token(self, conn: asyncpg.Connection, user_id: str) -> str:
        token = await self.get_valid_token(conn, user_id)
        return token.access_token

    async def get_valid_token(
        self, conn: asyncpg.Connection, user_id: str
    ) -> UserIntegrationToken:
        """Return a usable token row, refreshing it once if it has expired.

        Raises:
            NotConnectedError: the user never connected Google Sheets.
            ReconnectRequiredError: the token expired and could not be refreshed.
            NotConfiguredError: a refresh is needed but no OAuth app is configured.
        """
        token = await self._store.get_token(conn, user_id)
        if token is None:
            raise NotConnectedError("Google Sheets is not connected for this user")

        if not token.is_expired(self._clock()):
            return token

        if not token.refresh_token:
            raise ReconnectRequiredError(
                "Google connection has expired and holds no refresh token; reconnect required"
            )

        oauth_app = self._credentials.resolve_oauth_app()
        if oauth_app is None:
            raise NotConfiguredError("Google OAuth client is not configured")

        client = self._oauth_client_factory(oauth_app)
        try:
            grant = await client.refresh(token.refresh_token)
        except ProviderError as e:
            logger.warning("Token refresh failed for user %s; marking reconnect required", user_id)
            raise ReconnectRequiredError(
                "Google connection has expired; reconnect required", cause=e
            ) from e

        await self._store.update_access_token(
            conn,
            user_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=grant.expires_at,
        )
        logger.info("Refreshed Google Sheets access token for user %s", user_id)

        return UserIntegrationToken(
            owner_id=token.owner_id,
            provider=token.provider,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or token.refresh_token,
            expires_at=grant.expires_at,
            provider_email=token.provider_email,
        )

    async def connect(
        self, conn: asyncpg.Connection, user_id: str, code: str
    ) -> UserIntegrationToken:
        """Exchange an authorization code and store the resulting integration."""
        oauth_app = self._credentials.resolve_oauth_app()
        if oauth_app is None:
            raise NotConfiguredError("Google OAuth client is not configured")

        client = self._oauth_client_factory(oauth_app)
        grant = await client.exchange_code(code)

        provider_email: str | None = None
        try:
            info = await client.token_info(grant.access_token)
            provider_email = info.get("email") or None
        except ProviderError:
            logger.warning("Could not read Google account email for user %s", user_id, exc_info=True)

        token = UserIntegrationToken(
            owner_id=user_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=grant.expires_at,
            provider_email=provider_email,
        )
        await self._store.save_token(conn, token)
        logger.info("Connected Google Sheets for user %s", user_id)
        return token

    async def disconnect(self, conn: asyncpg.Connection, user_id: str) -> bool:
        return await self._store.delete_token(conn, user_id)

    async def is_connected(self, conn: asyncpg.Connection, user_id: str) -> bool:
        return await self._store.get_token(conn, user_id) is not None

    async def provider_email(self, conn: asyncpg.Connection, user_id: str) -> str | None:
        """Google account email recorded at connect time, without refreshing."""
        token = await self._store.get_token(conn, user_id)
        return token.provider_email if token else None
