"""Export a job to a spreadsheet: reuse the resolved destination or provision one.

A job is bound to a spreadsheet at most once. Binding happens only here and
only for jobs that had no spreadsheet, via the store's conditional update.
A freshly provisioned spreadsheet also becomes the default for the job's
bank account when that account has none yet.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import asyncpg

from intake_service.errors import ConflictError, NotFoundError
from intake_service.exports.destination import DestinationKind, ExportDestination, resolve_destination
from intake_service.google.provisioning import SpreadsheetProvisioner, SpreadsheetPurpose
from intake_service.google.sheets import spreadsheet_url
from intake_service.stores.job_store import JobStore
from intake_service.types import Owner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportPlan:
    destination: ExportDestination
    spreadsheet_id: str
    spreadsheet_name: str | None
    created: bool
    created_under: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.destination.kind.value,
            "spreadsheetId": self.spreadsheet_id,
            "spreadsheetName": self.spreadsheet_name,
            "spreadsheetUrl": spreadsheet_url(self.spreadsheet_id),
            "created": self.created,
            "createdUnder": self.created_under,
            "willSyncInPlace": self.destination.will_sync_in_place,
        }


def default_title(filename: str | None) -> str:
    stem = (filename or "").rsplit(".", 1)[0].strip()
    return f"{stem} - Transactions" if stem else "Transactions"


class ExportPlanner:
    def __init__(self, provisioner: SpreadsheetProvisioner, *, store: JobStore | None = None) -> None:
        self._provisioner = provisioner
        self._store = store or JobStore()

    async def export_job(
        self,
        conn: asyncpg.Connection,
        owner: Owner,
        job_id: str,
        *,
        title: str | None = None,
    ) -> ExportPlan:
        """Resolve the job's destination, provisioning and binding when none exists.

        Raises:
            NotFoundError: no such job for this owner.
            ConflictError: the job was bound concurrently to an existing
                spreadsheet. A race lost after provisioning resolves to the
                winner's spreadsheet instead.
        """
        job = await self._store.get_job(conn, job_id, owner_id=owner.user_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")

        destination = await resolve_destination(conn, job, self._store)
        if destination.kind is DestinationKind.JOB:
            return ExportPlan(
                destination=destination,
                spreadsheet_id=destination.spreadsheet_id or "",
                spreadsheet_name=destination.spreadsheet_name,
                created=False,
            )

        if destination.kind is DestinationKind.NEW:
            provisioned = await self._provisioner.create_spreadsheet(
                conn,
                owner,
                SpreadsheetPurpose.JOB,
                title or default_title(job.original_filename),
            )
            try:
                await self._store.bind_spreadsheet(
                    conn, job.id, provisioned.spreadsheet_id, owner_id=owner.user_id
                )
            except ConflictError:
                return await self._lost_bind_race(conn, owner, job.id, provisioned.spreadsheet_id)
            logger.info("Bound job %s to new spreadsheet %s", job.id, provisioned.spreadsheet_id)

            if job.bank_account_id:
                linked = await self._store.link_bank_account_spreadsheet(
                    conn, job.bank_account_id, provisioned.spreadsheet_id, owner_id=owner.user_id
                )
                if linked:
                    logger.info(
                        "Set spreadsheet %s as default for bank account %s",
                        provisioned.spreadsheet_id,
                        job.bank_account_id,
                    )
            return ExportPlan(
                destination=destination,
                spreadsheet_id=provisioned.spreadsheet_id,
                spreadsheet_name=provisioned.spreadsheet_name,
                created=True,
                created_under=provisioned.created_under.value,
            )

        spreadsheet_id = destination.spreadsheet_id or ""
        await self._store.bind_spreadsheet(conn, job.id, spreadsheet_id, owner_id=owner.user_id)
        logger.info(
            "Bound job %s to %s spreadsheet %s", job.id, destination.kind.value, spreadsheet_id
        )
        return ExportPlan(
            destination=destination,
            spreadsheet_id=spreadsheet_id,
            spreadsheet_name=destination.spreadsheet_name,
            created=False,
        )

    async def _lost_bind_race(
        self, conn: asyncpg.Connection, owner: Owner, job_id: str, orphaned_id: str
    ) -> ExportPlan:
        """Another request bound the job while we provisioned; defer to its spreadsheet.

        The spreadsheet we just created stays in Drive unreferenced, so its id
        is logged for cleanup.
        """
        job = await self._store.get_job(conn, job_id, owner_id=owner.user_id)
        if job is None or not job.spreadsheet_id:
            logger.warning("Spreadsheet %s orphaned: job %s could not be bound", orphaned_id, job_id)
            raise ConflictError(
                f"Job {job_id} could not be bound; spreadsheet {orphaned_id} was left unbound"
            )

        logger.warning(
            "Spreadsheet %s orphaned: job %s was concurrently bound to %s",
            orphaned_id,
            job_id,
            job.spreadsheet_id,
        )
        destination = await resolve_destination(conn, job, self._store)
        return ExportPlan(
            destination=destination,
            spreadsheet_id=job.spreadsheet_id,
            spreadsheet_name=destination.spreadsheet_name,
            created=False,
        )
