"""Seed development data for the intake service.

Creates a bank account, a company profile and three categorization jobs so
each export destination outcome (job, bank_account, new) can be tried by
hand against /v1/jobs/{id}/export-info.

Usage:
    python scripts/seed-dev-data.py

Requires:
    - Database running (default: localhost:5432)
    - Migration applied (alembic upgrade head)
"""

from __future__ import annotations

import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


SAMPLE_JOBS = [
    {"filename": "checking-2024-01.pdf", "spreadsheet_id": "seed-job-sheet", "account": True},
    {"filename": "checking-2024-02.pdf", "spreadsheet_id": None, "account": True},
    {"filename": "loose-receipts.pdf", "spreadsheet_id": None, "account": False},
]


async def main() -> None:
    from intake_service.db import close_pool, rls_connection
    from intake_service.exports.destination import resolve_destination
    from intake_service.stores.job_store import JobStore

    store = JobStore()
    tenant_id = os.getenv("TENANT_ID", "default")
    user_id = os.getenv("SEED_USER_ID", "seed-script@dev")

    print(f"Seeding {len(SAMPLE_JOBS)} jobs for user '{user_id}'...")

    async with rls_connection(tenant_id, user_id) as conn:
        account_id = await conn.fetchval(
            """
            INSERT INTO bank_accounts (owner_id, account_name, default_spreadsheet_id)
            VALUES ($1, 'Business Checking', 'seed-account-sheet')
            RETURNING id
            """,
            user_id,
        )
        await conn.execute(
            """
            INSERT INTO company_profiles (owner_id, company_name)
            VALUES ($1, 'Seed Co')
            ON CONFLICT (owner_id) DO NOTHING
            """,
            user_id,
        )

        for job in SAMPLE_JOBS:
            job_id = await conn.fetchval(
                """
                INSERT INTO categorization_jobs
                    (owner_id, bank_account_id, spreadsheet_id, original_filename)
                VALUES ($1, $2, $3, $4)
                RETURNING id
                """,
                user_id,
                account_id if job["account"] else None,
                job["spreadsheet_id"],
                job["filename"],
            )
            loaded = await store.get_job(conn, str(job_id), owner_id=user_id)
            destination = await resolve_destination(conn, loaded, store)
            print(f"  {job['filename']}: job {job_id} -> {destination.kind.value}")

    await close_pool()
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
