"""Persistence for user OAuth integrations and tenant service-account rows."""

from __future__ import annotations

import logging
from datetime import datetime

import asyncpg

from intake_service.types import ServiceAccountCredentials, UserIntegrationToken

logger = logging.getLogger(__name__)

GOOGLE_SHEETS_PROVIDER = "google_sheets"


class IntegrationTokenStore:
    """Stateless data-access object for user_integrations."""

    async def get_token(
        self,
        conn: asyncpg.Connection,
        owner_id: str,
        *,
        provider: str = GOOGLE_SHEETS_PROVIDER,
    ) -> UserIntegrationToken | None:
        row = await conn.fetchrow(
            """
            SELECT owner_id, provider, access_token, refresh_token, expires_at, provider_email
            FROM user_integrations
            WHERE owner_id = $1 AND provider = $2
            """,
            owner_id,
            provider,
        )
        if row is None or not row["access_token"]:
            return None
        return UserIntegrationToken(
            owner_id=str(row["owner_id"]),
            provider=row["provider"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            expires_at=row["expires_at"],
            provider_email=row["provider_email"],
        )

    async def save_token(self, conn: asyncpg.Connection, token: UserIntegrationToken) -> None:
        """Create or replace the integration row after a fresh OAuth consent."""
        await conn.execute(
            """
            INSERT INTO user_integrations
                (owner_id, provider, access_token, refresh_token, expires_at, provider_email)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (owner_id, provider) DO UPDATE SET
                access_token = EXCLUDED.access_token,
                refresh_token = COALESCE(EXCLUDED.refresh_token, user_integrations.refresh_token),
                expires_at = EXCLUDED.expires_at,
                provider_email = COALESCE(EXCLUDED.provider_email, user_integrations.provider_email),
                updated_at = NOW()
            """,
            token.owner_id,
            token.provider,
            token.access_token,
            token.refresh_token,
            token.expires_at,
            token.provider_email,
        )

    async def update_access_token(
        self,
        conn: asyncpg.Connection,
        owner_id: str,
        *,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
        provider: str = GOOGLE_SHEETS_PROVIDER,
    ) -> None:
        """Persist a refreshed token. Last write wins between racing refreshes."""
        await conn.execute(
            """
            UPDATE user_integrations
            SET access_token = $3,
                refresh_token = COALESCE($4, refresh_token),
                expires_at = $5,
                updated_at = NOW()
            WHERE owner_id = $1 AND provider = $2
            """,
            owner_id,
            provider,
            access_token,
            refresh_token,
            expires_at,
        )

    async def delete_token(
        self,
        conn: asyncpg.Connection,
        owner_id: str,
        *,
        provider: str = GOOGLE_SHEETS_PROVIDER,
    ) -> bool:
        tag = await conn.execute(
            "DELETE FROM user_integrations WHERE owner_id = $1 AND provider = $2",
            owner_id,
            provider,
        )
        return tag == "DELETE 1"


class TenantCredentialStore:
    """Reads tenant_google_credentials; used once at startup with a service connection."""

    async def load_service_accounts(
        self, conn: asyncpg.Connection
    ) -> dict[str, ServiceAccountCredentials]:
        rows = await conn.fetch(
            """
            SELECT tenant_id, service_account_email, service_account_private_key
            FROM tenant_google_credentials
            WHERE is_active = TRUE
            """
        )
        accounts = {
            str(r["tenant_id"]): ServiceAccountCredentials(
                email=r["service_account_email"] or "",
                private_key=r["service_account_private_key"] or "",
            )
            for r in rows
        }
        logger.info("Loaded %d tenant service account configuration(s)", len(accounts))
        return accounts
