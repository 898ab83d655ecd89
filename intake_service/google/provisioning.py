"""Spreadsheet provisioning: create spreadsheets and keep their template current.

The acting identity depends on what the spreadsheet is for:

- account / job spreadsheets are written server-to-server, so they are
  created by the tenant's best-match service account and shared back to the
  user. Without a service account the user's own OAuth grant is used.
- personal spreadsheets are created with the user's OAuth grant so the user
  stays the Drive-level owner.

``created_under`` on the result records which identity owns the file.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import asyncpg

from intake_service.errors import NotConfiguredError
from intake_service.google.credentials import CredentialStore
from intake_service.google.service_account import mint_access_token
from intake_service.google.sheets import SheetsClient, SheetTab, spreadsheet_url
from intake_service.google.tokens import TokenLifecycleManager
from intake_service.types import Owner, ServiceAccountCredentials

logger = logging.getLogger(__name__)

TRANSACTIONS_TAB = "Transactions"
CATEGORY_SUMMARY_TAB = "Category_Summary"
BY_CATEGORY_TAB = "Transactions_By_Category"
# Title Sheets gives the first tab of a blank spreadsheet
DEFAULT_FIRST_TAB = "Sheet1"

# Column order shared with the sync/push writers
TRANSACTIONS_HEADER = [
    ["Date", "Description", "Amount", "Category", "Subcategory", "Notes", "Status", "Confirmed"]
]
CATEGORY_SUMMARY_VALUES = [
    ["Category", "Subtotal", "Count", "Grand_Total"],
    [
        '=SORT(UNIQUE(FILTER(Transactions!D2:D, Transactions!H2:H=TRUE, Transactions!D2:D<>"")))',
        '=ARRAYFORMULA(IF(A2:A="","",SUMIF(Transactions!D:D,A2:A,Transactions!C:C)))',
        '=ARRAYFORMULA(IF(A2:A="","",COUNTIF(Transactions!D:D,A2:A)))',
        '=IFERROR(SUM(FILTER(B2:B,B2:B<>"")),0)',
    ],
]
BY_CATEGORY_VALUES = [['=QUERY(Transactions!A1:H, "select * where H = TRUE order by D, A", 1)']]


class SpreadsheetPurpose(str, Enum):
    ACCOUNT = "account"
    JOB = "job"
    PERSONAL = "personal"


class CreatedUnder(str, Enum):
    OAUTH_USER = "oauth_user"
    SERVICE_ACCOUNT = "service_account"


@dataclass(frozen=True)
class ProvisionedSpreadsheet:
    spreadsheet_id: str
    spreadsheet_name: str
    url: str
    created_under: CreatedUnder


@dataclass(frozen=True)
class TemplateOptions:
    rename_first_tab: bool = True
    include_summary: bool = True
    include_by_category: bool = True
    write_formulas: bool = True
    # None: same identity selection as a job spreadsheet
    acting_as: CreatedUnder | None = None


@dataclass(frozen=True)
class TemplateUpgradeResult:
    spreadsheet_id: str
    added_tabs: list[str] = field(default_factory=list)
    renamed_first_tab: bool = False
    tabs: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _ActingIdentity:
    created_under: CreatedUnder
    access_token: str
    share_with: str | None = None


SheetsClientFactory = Callable[[str], SheetsClient]
ServiceAccountTokenMinter = Callable[[ServiceAccountCredentials], Awaitable[str]]


def plan_template_requests(
    tabs: list[SheetTab], options: TemplateOptions
) -> tuple[list[dict[str, Any]], list[str], bool]:
    """Work out the batchUpdate requests that bring ``tabs`` up to the template.

    Only missing tabs are requested, so planning against an already-upgraded
    spreadsheet yields no requests. The first tab is renamed to Transactions
    only while it still has the blank-spreadsheet title; any other tab is
    left alone and Transactions is added instead.

    Returns (requests, added_tab_titles, renamed_first_tab).
    """
    titles = {t.title for t in tabs}
    requests: list[dict[str, Any]] = []
    added: list[str] = []
    renamed = False

    if TRANSACTIONS_TAB not in titles:
        if options.rename_first_tab and tabs and tabs[0].title == DEFAULT_FIRST_TAB:
            requests.append(
                {
                    "updateSheetProperties": {
                        "properties": {"sheetId": tabs[0].sheet_id, "title": TRANSACTIONS_TAB},
                        "fields": "title",
                    }
                }
            )
            renamed = True
        else:
            requests.append({"addSheet": {"properties": {"title": TRANSACTIONS_TAB}}})
            added.append(TRANSACTIONS_TAB)

    wanted = []
    if options.include_summary:
        wanted.append(CATEGORY_SUMMARY_TAB)
    if options.include_by_category:
        wanted.append(BY_CATEGORY_TAB)
    for title in wanted:
        if title not in titles:
            requests.append({"addSheet": {"properties": {"title": title}}})
            added.append(title)

    return requests, added, renamed


class SpreadsheetProvisioner:
    def __init__(
        self,
        credentials: CredentialStore,
        tokens: TokenLifecycleManager,
        *,
        sheets_client_factory: SheetsClientFactory = SheetsClient,
        mint_service_account_token: ServiceAccountTokenMinter = mint_access_token,
    ) -> None:
        self._credentials = credentials
        self._tokens = tokens
        self._sheets_client_factory = sheets_client_factory
        self._mint_service_account_token = mint_service_account_token

    async def create_spreadsheet(
        self,
        conn: asyncpg.Connection,
        owner: Owner,
        purpose: SpreadsheetPurpose,
        title: str,
        *,
        template: TemplateOptions | None = None,
    ) -> ProvisionedSpreadsheet:
        """Create a spreadsheet with the template applied.

        Raises:
            NotConnectedError: the user OAuth grant is required but missing.
            ReconnectRequiredError: the user OAuth grant could not be refreshed.
            NotConfiguredError: no usable credential variant for this purpose.
            ProviderError: a Google API call failed.
        """
        prefer_sa = purpose in (SpreadsheetPurpose.ACCOUNT, SpreadsheetPurpose.JOB)
        identity = await self._acting_identity(conn, owner, prefer_service_account=prefer_sa)
        client = self._sheets_client_factory(identity.access_token)

        spreadsheet_id, spreadsheet_name = await client.create_spreadsheet(title)
        logger.info(
            "Created spreadsheet %s (%s) for user %s under %s",
            spreadsheet_id,
            purpose.value,
            owner.user_id,
            identity.created_under.value,
        )

        await self._apply_template(client, spreadsheet_id, template or TemplateOptions())

        if identity.created_under is CreatedUnder.SERVICE_ACCOUNT:
            if identity.share_with:
                await client.share_with_user(spreadsheet_id, identity.share_with)
            else:
                logger.warning(
                    "Spreadsheet %s created by service account but user %s has no email to share with",
                    spreadsheet_id,
                    owner.user_id,
                )

        return ProvisionedSpreadsheet(
            spreadsheet_id=spreadsheet_id,
            spreadsheet_name=spreadsheet_name,
            url=spreadsheet_url(spreadsheet_id),
            created_under=identity.created_under,
        )

    async def upgrade_template(
        self,
        conn: asyncpg.Connection,
        owner: Owner,
        spreadsheet_id: str,
        options: TemplateOptions | None = None,
    ) -> TemplateUpgradeResult:
        """Add whatever template tabs and formulas the spreadsheet is missing."""
        options = options or TemplateOptions()
        if options.acting_as is CreatedUnder.OAUTH_USER:
            identity = await self._acting_identity(conn, owner, prefer_service_account=False)
        else:
            identity = await self._acting_identity(conn, owner, prefer_service_account=True)
            if options.acting_as is CreatedUnder.SERVICE_ACCOUNT and (
                identity.created_under is not CreatedUnder.SERVICE_ACCOUNT
            ):
                raise NotConfiguredError("No Google service account is configured")

        client = self._sheets_client_factory(identity.access_token)
        return await self._apply_template(client, spreadsheet_id, options)

    async def list_spreadsheets(
        self, conn: asyncpg.Connection, owner: Owner
    ) -> list[dict[str, Any]]:
        """Spreadsheets the user's own Google account can see, newest first."""
        identity = await self._acting_identity(conn, owner, prefer_service_account=False)
        return await self._sheets_client_factory(identity.access_token).list_spreadsheets()

    async def list_shared_drives(
        self, conn: asyncpg.Connection, owner: Owner
    ) -> list[dict[str, Any]]:
        identity = await self._acting_identity(conn, owner, prefer_service_account=False)
        return await self._sheets_client_factory(identity.access_token).list_shared_drives()

    async def _apply_template(
        self, client: SheetsClient, spreadsheet_id: str, options: TemplateOptions
    ) -> TemplateUpgradeResult:
        tabs = await client.get_tabs(spreadsheet_id)
        requests, added, renamed = plan_template_requests(tabs, options)
        await client.batch_update(spreadsheet_id, requests)

        if options.write_formulas:
            # Value writes overwrite fixed ranges, so repeating them is harmless
            await client.update_values(spreadsheet_id, f"{TRANSACTIONS_TAB}!A1:H1", TRANSACTIONS_HEADER)
            if options.include_summary:
                await client.update_values(
                    spreadsheet_id, f"{CATEGORY_SUMMARY_TAB}!A1:D2", CATEGORY_SUMMARY_VALUES
                )
            if options.include_by_category:
                await client.update_values(spreadsheet_id, f"{BY_CATEGORY_TAB}!A1", BY_CATEGORY_VALUES)

        final_titles = [t.title for t in tabs]
        if renamed and final_titles:
            final_titles[0] = TRANSACTIONS_TAB
        final_titles.extend(added)

        if requests:
            logger.info("Upgraded template on %s: added=%s renamed=%s", spreadsheet_id, added, renamed)
        return TemplateUpgradeResult(
            spreadsheet_id=spreadsheet_id,
            added_tabs=added,
            renamed_first_tab=renamed,
            tabs=final_titles,
        )

    async def _acting_identity(
        self,
        conn: asyncpg.Connection,
        owner: Owner,
        *,
        prefer_service_account: bool,
    ) -> _ActingIdentity:
        if prefer_service_account:
            sa = self._credentials.resolve_service_account(owner.tenant_id)
            if sa is not None:
                access_token = await self._mint_service_account_token(sa)
                share_with = await self._tokens.provider_email(conn, owner.user_id) or owner.email
                return _ActingIdentity(
                    created_under=CreatedUnder.SERVICE_ACCOUNT,
                    access_token=access_token,
                    share_with=share_with,
                )
            logger.info(
                "No service account for tenant %s; falling back to user OAuth", owner.tenant_id
            )

        if self._credentials.resolve_oauth_app() is None:
            raise NotConfiguredError(
                "Neither a Google service account nor a Google OAuth client is configured"
            )

        access_token = await self._tokens.get_valid_access_token(conn, owner.user_id)
        return _ActingIdentity(created_under=CreatedUnder.OAUTH_USER, access_token=access_token)
