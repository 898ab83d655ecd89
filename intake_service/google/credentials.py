"""Credential store: which Google credential set is usable right now.

Lookups are pure over a GoogleCredentialConfig built at process start.
"Not configured" is a normal state here, so every resolver returns None
instead of raising.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from intake_service.config import GoogleCredentialConfig
from intake_service.types import OAuthCredentials, ServiceAccountCredentials

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialStatus:
    oauth_configured: bool
    service_account_configured: bool
    service_account_source: str | None  # "tenant" | "default" | None


class CredentialStore:
    """Stateless resolver over an immutable credential configuration."""

    def __init__(self, config: GoogleCredentialConfig) -> None:
        self._config = config

    @property
    def config(self) -> GoogleCredentialConfig:
        return self._config

    def resolve_oauth_app(self) -> OAuthCredentials | None:
        """Return the application's registered OAuth client, if fully configured.

        OAuth client settings are always process-wide: they identify this
        application to Google, not a tenant's data.
        """
        creds = self._config.default_oauth
        if not creds.is_complete():
            return None
        return creds.normalized()

    def resolve_service_account(
        self, tenant_id: str | None = None
    ) -> ServiceAccountCredentials | None:
        """Best-match service account: tenant override, then process default."""
        resolved = self._resolve_service_account_with_source(tenant_id)
        return resolved[0] if resolved else None

    def status(self, tenant_id: str | None = None) -> CredentialStatus:
        resolved = self._resolve_service_account_with_source(tenant_id)
        return CredentialStatus(
            oauth_configured=self.resolve_oauth_app() is not None,
            service_account_configured=resolved is not None,
            service_account_source=resolved[1] if resolved else None,
        )

    def _resolve_service_account_with_source(
        self, tenant_id: str | None
    ) -> tuple[ServiceAccountCredentials, str] | None:
        if tenant_id:
            tenant_creds = _lookup(self._config.tenant_service_accounts, tenant_id)
            if tenant_creds is not None:
                if tenant_creds.is_complete():
                    return tenant_creds.normalized(), "tenant"
                logger.warning(
                    "Tenant %s has a partial service account configuration; ignoring it",
                    tenant_id,
                )

        default = self._config.default_service_account
        if default.is_complete():
            return default.normalized(), "default"
        return None


def _lookup(
    accounts: Mapping[str, ServiceAccountCredentials], tenant_id: str
) -> ServiceAccountCredentials | None:
    return accounts.get(tenant_id.strip())
