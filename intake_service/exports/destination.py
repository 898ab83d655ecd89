"""Export destination resolver: which spreadsheet a job's results go to.

The answer comes from an ordered list of steps. Each step looks at one
scope (the job, its bank account, the user's company profile) and either
returns a destination or passes. The first destination wins; when every
step passes a new spreadsheet is proposed. Nothing here writes.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import asyncpg

from intake_service.google.sheets import spreadsheet_url
from intake_service.stores.job_store import JobStore
from intake_service.types import Job

DEFAULT_MASTER_SHEET_NAME = "Master Sheet"


class DestinationKind(str, Enum):
    JOB = "job"
    BANK_ACCOUNT = "bank_account"
    COMPANY = "company"
    NEW = "new"


@dataclass(frozen=True)
class ExportDestination:
    kind: DestinationKind
    spreadsheet_id: str | None
    spreadsheet_name: str | None
    will_sync_in_place: bool
    bank_account_name: str | None = None
    job_filename: str | None = None

    @property
    def spreadsheet_url(self) -> str | None:
        return spreadsheet_url(self.spreadsheet_id) if self.spreadsheet_id else None

    @property
    def message(self) -> str:
        if self.kind is DestinationKind.JOB:
            return "This job already has a spreadsheet; changes will sync in place"
        if self.kind is DestinationKind.BANK_ACCOUNT:
            account = self.bank_account_name or "this bank account"
            return f"Transactions will be added to the spreadsheet for {account}"
        if self.kind is DestinationKind.COMPANY:
            return f"Transactions will be added to {self.spreadsheet_name}"
        return "A new spreadsheet will be created for this job"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "spreadsheetId": self.spreadsheet_id,
            "spreadsheetName": self.spreadsheet_name,
            "spreadsheetUrl": self.spreadsheet_url,
            "willSyncInPlace": self.will_sync_in_place,
            "bankAccountName": self.bank_account_name,
            "jobFilename": self.job_filename,
            "message": self.message,
        }


DestinationStep = Callable[
    [asyncpg.Connection, Job, JobStore], Awaitable[ExportDestination | None]
]


async def job_bound(conn: asyncpg.Connection, job: Job, store: JobStore) -> ExportDestination | None:
    if not job.spreadsheet_id:
        return None
    return ExportDestination(
        kind=DestinationKind.JOB,
        spreadsheet_id=job.spreadsheet_id,
        spreadsheet_name=None,
        will_sync_in_place=True,
        job_filename=job.original_filename,
    )


async def account_bound(
    conn: asyncpg.Connection, job: Job, store: JobStore
) -> ExportDestination | None:
    if not job.bank_account_id:
        return None
    account = await store.get_bank_account(conn, job.bank_account_id, owner_id=job.owner_id)
    if account is None or not account.default_spreadsheet_id:
        return None
    return ExportDestination(
        kind=DestinationKind.BANK_ACCOUNT,
        spreadsheet_id=account.default_spreadsheet_id,
        spreadsheet_name=account.account_name,
        will_sync_in_place=False,
        bank_account_name=account.account_name,
        job_filename=job.original_filename,
    )


async def company_bound(
    conn: asyncpg.Connection, job: Job, store: JobStore
) -> ExportDestination | None:
    profile = await store.get_company_profile(conn, job.owner_id)
    if profile is None or not profile.master_spreadsheet_id:
        return None
    return ExportDestination(
        kind=DestinationKind.COMPANY,
        spreadsheet_id=profile.master_spreadsheet_id,
        spreadsheet_name=profile.master_spreadsheet_name or DEFAULT_MASTER_SHEET_NAME,
        will_sync_in_place=False,
        job_filename=job.original_filename,
    )


DEFAULT_STEPS: tuple[DestinationStep, ...] = (job_bound, account_bound, company_bound)


def new_spreadsheet(job: Job) -> ExportDestination:
    return ExportDestination(
        kind=DestinationKind.NEW,
        spreadsheet_id=None,
        spreadsheet_name=None,
        will_sync_in_place=False,
        job_filename=job.original_filename,
    )


async def resolve_destination(
    conn: asyncpg.Connection,
    job: Job,
    store: JobStore,
    *,
    steps: Sequence[DestinationStep] = DEFAULT_STEPS,
) -> ExportDestination:
    for step in steps:
        destination = await step(conn, job, store)
        if destination is not None:
            return destination
    return new_spreadsheet(job)
