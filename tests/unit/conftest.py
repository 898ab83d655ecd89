"""Unit test conftest: no database or network required."""

from __future__ import annotations

from dataclasses import replace

import pytest
from fakes import FAKE_PRIVATE_KEY

from intake_service.config import GoogleCredentialConfig
from intake_service.types import ServiceAccountCredentials


@pytest.fixture
def oauth_config() -> GoogleCredentialConfig:
    return GoogleCredentialConfig(
        oauth_client_id="client-id",
        oauth_client_secret="client-secret",
        oauth_redirect_uri="http://localhost:3002/api/integrations/google-sheets/callback",
    )


@pytest.fixture
def full_config(oauth_config: GoogleCredentialConfig) -> GoogleCredentialConfig:
    return replace(
        oauth_config,
        service_account_email="default-sa@proj.iam.gserviceaccount.com",
        service_account_private_key=FAKE_PRIVATE_KEY,
    )


@pytest.fixture
def tenant_accounts() -> dict[str, ServiceAccountCredentials]:
    return {
        "tenant-a": ServiceAccountCredentials(
            email="tenant-a-sa@proj.iam.gserviceaccount.com",
            private_key=FAKE_PRIVATE_KEY,
        )
    }
