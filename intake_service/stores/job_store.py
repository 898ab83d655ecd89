"""Reads and the single binding write for categorization jobs and their scopes.

Covers categorization_jobs, bank_accounts and company_profiles: everything
the export destination resolver needs to look at.
"""

from __future__ import annotations

import logging
import uuid

import asyncpg

from intake_service.errors import ConflictError
from intake_service.types import BankAccount, CompanyProfile, Job

logger = logging.getLogger(__name__)


def _as_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(value)
    except (TypeError, ValueError):
        return None


class JobStore:
    """Stateless data-access object for jobs, bank accounts and company profiles."""

    async def get_job(
        self,
        conn: asyncpg.Connection,
        job_id: str,
        *,
        owner_id: str,
    ) -> Job | None:
        job_uuid = _as_uuid(job_id)
        if job_uuid is None:
            return None
        row = await conn.fetchrow(
            """
            SELECT id, owner_id, spreadsheet_id, bank_account_id, original_filename
            FROM categorization_jobs
            WHERE id = $1 AND owner_id = $2
            """,
            job_uuid,
            owner_id,
        )
        return Job.from_row(dict(row)) if row else None

    async def get_bank_account(
        self,
        conn: asyncpg.Connection,
        bank_account_id: str,
        *,
        owner_id: str,
    ) -> BankAccount | None:
        account_uuid = _as_uuid(bank_account_id)
        if account_uuid is None:
            return None
        row = await conn.fetchrow(
            """
            SELECT id, owner_id, account_name, default_spreadsheet_id
            FROM bank_accounts
            WHERE id = $1 AND owner_id = $2
            """,
            account_uuid,
            owner_id,
        )
        if row is None:
            return None
        return BankAccount(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            account_name=row["account_name"],
            default_spreadsheet_id=row["default_spreadsheet_id"],
        )

    async def get_company_profile(
        self,
        conn: asyncpg.Connection,
        owner_id: str,
    ) -> CompanyProfile | None:
        row = await conn.fetchrow(
            """
            SELECT owner_id, master_spreadsheet_id, master_spreadsheet_name
            FROM company_profiles
            WHERE owner_id = $1
            """,
            owner_id,
        )
        if row is None:
            return None
        return CompanyProfile(
            owner_id=str(row["owner_id"]),
            master_spreadsheet_id=row["master_spreadsheet_id"],
            master_spreadsheet_name=row["master_spreadsheet_name"],
        )

    async def bind_spreadsheet(
        self,
        conn: asyncpg.Connection,
        job_id: str,
        spreadsheet_id: str,
        *,
        owner_id: str,
    ) -> None:
        """Bind a spreadsheet to a job exactly once.

        The update only matches an unbound job, so a concurrent bind or a
        second bind attempt raises ConflictError instead of silently moving
        the job to another spreadsheet.
        """
        tag = await conn.execute(
            """
            UPDATE categorization_jobs
            SET spreadsheet_id = $3, updated_at = NOW()
            WHERE id = $1 AND owner_id = $2 AND spreadsheet_id IS NULL
            """,
            uuid.UUID(job_id),
            owner_id,
            spreadsheet_id,
        )
        if tag != "UPDATE 1":
            logger.warning("Job %s already bound to a spreadsheet; refusing rebind", job_id)
            raise ConflictError(f"Job {job_id} is already bound to a spreadsheet")

    async def link_bank_account_spreadsheet(
        self,
        conn: asyncpg.Connection,
        bank_account_id: str,
        spreadsheet_id: str,
        *,
        owner_id: str,
    ) -> bool:
        """Make spreadsheet_id the account's default unless it already has one."""
        account_uuid = _as_uuid(bank_account_id)
        if account_uuid is None:
            return False
        tag = await conn.execute(
            """
            UPDATE bank_accounts
            SET default_spreadsheet_id = $3, updated_at = NOW()
            WHERE id = $1 AND owner_id = $2 AND default_spreadsheet_id IS NULL
            """,
            account_uuid,
            owner_id,
            spreadsheet_id,
        )
        return tag == "UPDATE 1"
