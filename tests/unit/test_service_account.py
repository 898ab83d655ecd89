"""Unit tests for service-account token minting."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from google.auth.exceptions import RefreshError

from intake_service.errors import NotConfiguredError, ProviderError
from intake_service.google.service_account import mint_access_token
from intake_service.types import ServiceAccountCredentials

CREDS = ServiceAccountCredentials(email="sa@proj.iam.gserviceaccount.com", private_key="key")


class TestMintAccessToken:
    @patch("intake_service.google.service_account.service_account.Credentials")
    async def test_returns_token(self, mock_credentials):
        sa = MagicMock()
        sa.token = "sa-token"
        mock_credentials.from_service_account_info.return_value = sa

        assert await mint_access_token(CREDS) == "sa-token"
        info = mock_credentials.from_service_account_info.call_args.args[0]
        assert info["client_email"] == "sa@proj.iam.gserviceaccount.com"
        sa.refresh.assert_called_once()

    @patch("intake_service.google.service_account.service_account.Credentials")
    async def test_bad_key_is_not_configured(self, mock_credentials):
        mock_credentials.from_service_account_info.side_effect = ValueError("Could not deserialize key")

        with pytest.raises(NotConfiguredError):
            await mint_access_token(CREDS)

    @patch("intake_service.google.service_account.service_account.Credentials")
    async def test_refresh_failure_is_provider_error(self, mock_credentials):
        sa = MagicMock()
        sa.refresh.side_effect = RefreshError("invalid_grant")
        mock_credentials.from_service_account_info.return_value = sa

        with pytest.raises(ProviderError):
            await mint_access_token(CREDS)
