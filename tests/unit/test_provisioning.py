"""Unit tests for spreadsheet provisioning and template upgrades."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from fakes import FakeSheetsClient, FakeTokenStore

from intake_service.config import GoogleCredentialConfig
from intake_service.errors import NotConfiguredError, NotConnectedError, NotFoundError
from intake_service.google.credentials import CredentialStore
from intake_service.google.provisioning import (
    BY_CATEGORY_TAB,
    CATEGORY_SUMMARY_TAB,
    TRANSACTIONS_TAB,
    CreatedUnder,
    SpreadsheetProvisioner,
    SpreadsheetPurpose,
    TemplateOptions,
    plan_template_requests,
)
from intake_service.google.sheets import SheetTab
from intake_service.google.tokens import TokenLifecycleManager
from intake_service.types import Owner, UserIntegrationToken

USER = "user@example.com"
OWNER = Owner(user_id=USER, tenant_id="tenant-a", email="user@example.com")
TEMPLATE_TABS = [TRANSACTIONS_TAB, CATEGORY_SUMMARY_TAB, BY_CATEGORY_TAB]


def _connected_store(provider_email: str | None = "me@gmail.com") -> FakeTokenStore:
    return FakeTokenStore(
        {
            USER: UserIntegrationToken(
                owner_id=USER,
                access_token="user-at",
                refresh_token="rt",
                expires_at=None,
                provider_email=provider_email,
            )
        }
    )


class _Harness:
    def __init__(self, config: GoogleCredentialConfig, store: FakeTokenStore, **sheet_kwargs):
        credentials = CredentialStore(config)
        self.tokens = TokenLifecycleManager(
            credentials, store=store, clock=lambda: datetime(2026, 1, 1, tzinfo=UTC)
        )
        self.sheets = FakeSheetsClient(**sheet_kwargs)
        self.used_tokens: list[str] = []
        self.mint = AsyncMock(return_value="sa-at")
        self.provisioner = SpreadsheetProvisioner(
            credentials,
            self.tokens,
            sheets_client_factory=self._factory,
            mint_service_account_token=self.mint,
        )

    def _factory(self, access_token: str) -> FakeSheetsClient:
        self.used_tokens.append(access_token)
        return self.sheets


class TestCreateSpreadsheet:
    async def test_job_spreadsheet_uses_tenant_service_account(self, full_config, tenant_accounts):
        h = _Harness(full_config.with_tenant_service_accounts(tenant_accounts), _connected_store())

        result = await h.provisioner.create_spreadsheet(
            None, OWNER, SpreadsheetPurpose.JOB, "Statement"
        )

        assert result.created_under is CreatedUnder.SERVICE_ACCOUNT
        assert result.url == "https://docs.google.com/spreadsheets/d/sheet-123"
        assert h.used_tokens == ["sa-at"]
        minted = h.mint.await_args.args[0]
        assert minted.email == "tenant-a-sa@proj.iam.gserviceaccount.com"
        assert h.sheets.shares == [("sheet-123", "me@gmail.com")]

    async def test_shares_with_account_email_when_no_provider_email(self, full_config):
        h = _Harness(full_config, FakeTokenStore())

        await h.provisioner.create_spreadsheet(None, OWNER, SpreadsheetPurpose.ACCOUNT, "Acct")

        assert h.sheets.shares == [("sheet-123", "user@example.com")]

    async def test_falls_back_to_user_oauth_without_service_account(self, oauth_config):
        h = _Harness(oauth_config, _connected_store())

        result = await h.provisioner.create_spreadsheet(
            None, OWNER, SpreadsheetPurpose.JOB, "Statement"
        )

        assert result.created_under is CreatedUnder.OAUTH_USER
        assert h.used_tokens == ["user-at"]
        assert h.sheets.shares == []
        h.mint.assert_not_called()

    async def test_personal_spreadsheet_always_uses_oauth(self, full_config):
        h = _Harness(full_config, _connected_store())

        result = await h.provisioner.create_spreadsheet(
            None, OWNER, SpreadsheetPurpose.PERSONAL, "Mine"
        )

        assert result.created_under is CreatedUnder.OAUTH_USER
        h.mint.assert_not_called()

    async def test_personal_spreadsheet_requires_connection(self, full_config):
        h = _Harness(full_config, FakeTokenStore())

        with pytest.raises(NotConnectedError):
            await h.provisioner.create_spreadsheet(None, OWNER, SpreadsheetPurpose.PERSONAL, "Mine")
        assert h.sheets.created == []

    async def test_nothing_configured(self):
        h = _Harness(GoogleCredentialConfig(), _connected_store())

        with pytest.raises(NotConfiguredError) as exc_info:
            await h.provisioner.create_spreadsheet(None, OWNER, SpreadsheetPurpose.JOB, "x")
        assert exc_info.value.kind.value == "not_configured"

    async def test_template_applied_on_create(self, oauth_config):
        h = _Harness(oauth_config, _connected_store())

        await h.provisioner.create_spreadsheet(None, OWNER, SpreadsheetPurpose.PERSONAL, "Mine")

        assert [t.title for t in h.sheets.tabs] == TEMPLATE_TABS
        ranges = [r for r, _ in h.sheets.value_writes]
        assert "Transactions!A1:H1" in ranges
        assert "Category_Summary!A1:D2" in ranges
        assert "Transactions_By_Category!A1" in ranges


class TestUpgradeTemplate:
    async def test_upgrade_is_idempotent(self, oauth_config):
        h = _Harness(oauth_config, _connected_store(), tabs=["Sheet1", "Notes"])

        first = await h.provisioner.upgrade_template(None, OWNER, "sheet-1")
        tabs_after_first = [t.title for t in h.sheets.tabs]
        second = await h.provisioner.upgrade_template(None, OWNER, "sheet-1")

        assert first.renamed_first_tab is True
        assert first.added_tabs == [CATEGORY_SUMMARY_TAB, BY_CATEGORY_TAB]
        assert second.added_tabs == []
        assert second.renamed_first_tab is False
        assert [t.title for t in h.sheets.tabs] == tabs_after_first
        assert tabs_after_first == [TRANSACTIONS_TAB, "Notes", CATEGORY_SUMMARY_TAB, BY_CATEGORY_TAB]
        assert len(h.sheets.batch_requests) == 1

    async def test_template_tab_in_first_position_is_not_renamed(self, oauth_config):
        h = _Harness(
            oauth_config, _connected_store(), tabs=[CATEGORY_SUMMARY_TAB, BY_CATEGORY_TAB]
        )

        first = await h.provisioner.upgrade_template(None, OWNER, "sheet-1")
        tabs_after_first = [t.title for t in h.sheets.tabs]
        second = await h.provisioner.upgrade_template(None, OWNER, "sheet-1")

        assert first.renamed_first_tab is False
        assert first.added_tabs == [TRANSACTIONS_TAB]
        assert tabs_after_first == [CATEGORY_SUMMARY_TAB, BY_CATEGORY_TAB, TRANSACTIONS_TAB]
        assert second.added_tabs == []
        assert [t.title for t in h.sheets.tabs] == tabs_after_first

    async def test_user_tab_in_first_position_is_kept(self, oauth_config):
        h = _Harness(oauth_config, _connected_store(), tabs=["January"])

        result = await h.provisioner.upgrade_template(None, OWNER, "sheet-1")

        assert result.renamed_first_tab is False
        assert result.tabs == ["January", *TEMPLATE_TABS]

    async def test_only_missing_tabs_are_added(self, oauth_config):
        h = _Harness(
            oauth_config, _connected_store(), tabs=[TRANSACTIONS_TAB, CATEGORY_SUMMARY_TAB]
        )

        result = await h.provisioner.upgrade_template(None, OWNER, "sheet-1")

        assert result.added_tabs == [BY_CATEGORY_TAB]
        assert result.tabs == TEMPLATE_TABS

    async def test_acting_as_service_account_requires_one(self, oauth_config):
        h = _Harness(oauth_config, _connected_store(), tabs=["Sheet1"])

        with pytest.raises(NotConfiguredError):
            await h.provisioner.upgrade_template(
                None, OWNER, "sheet-1", TemplateOptions(acting_as=CreatedUnder.SERVICE_ACCOUNT)
            )

    async def test_missing_spreadsheet_propagates_not_found(self, oauth_config):
        h = _Harness(oauth_config, _connected_store())
        h.sheets.exists = False

        with pytest.raises(NotFoundError):
            await h.provisioner.upgrade_template(None, OWNER, "gone")


class TestListing:
    async def test_listing_uses_user_oauth_even_with_service_account(self, full_config):
        h = _Harness(full_config, _connected_store())

        files = await h.provisioner.list_spreadsheets(None, OWNER)
        drives = await h.provisioner.list_shared_drives(None, OWNER)

        assert files == [{"id": "sheet-1", "name": "Books"}]
        assert drives == [{"id": "drive-1", "name": "Finance"}]
        assert h.used_tokens == ["user-at", "user-at"]
        h.mint.assert_not_called()

    async def test_listing_requires_connection(self, full_config):
        h = _Harness(full_config, FakeTokenStore())

        with pytest.raises(NotConnectedError):
            await h.provisioner.list_spreadsheets(None, OWNER)


class TestPlanTemplateRequests:
    def test_already_upgraded_yields_no_requests(self):
        tabs = [SheetTab(sheet_id=i, title=t, index=i) for i, t in enumerate(TEMPLATE_TABS)]
        requests, added, renamed = plan_template_requests(tabs, TemplateOptions())
        assert (requests, added, renamed) == ([], [], False)

    def test_without_rename_adds_transactions_tab(self):
        tabs = [SheetTab(sheet_id=0, title="Sheet1", index=0)]
        options = TemplateOptions(rename_first_tab=False, include_by_category=False)
        requests, added, renamed = plan_template_requests(tabs, options)
        assert renamed is False
        assert added == [TRANSACTIONS_TAB, CATEGORY_SUMMARY_TAB]
        assert all("addSheet" in r for r in requests)
