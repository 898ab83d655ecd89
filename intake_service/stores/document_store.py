"""CRUD for the documents table.

All methods expect a connection with RLS session variables already set
(via db.rls_connection). Queries still filter on owner_id so a missing
policy never widens what a caller can see.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import asyncpg

from intake_service.types import Document, OcrStatus, StorageTier

logger = logging.getLogger(__name__)

_DOCUMENT_COLUMNS = """
    id, owner_id, tenant_id, storage_tier, hot_path, archive_path, is_deleted,
    original_filename, mime_type, file_size_bytes, ocr_status, created_at, updated_at
"""


def _as_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(value)
    except (TypeError, ValueError):
        return None


class DocumentStore:
    """Stateless data-access object for documents."""

    async def create_document(
        self,
        conn: asyncpg.Connection,
        *,
        document_id: str,
        owner_id: str,
        tenant_id: str | None,
        hot_path: str,
        original_filename: str,
        mime_type: str,
        file_size_bytes: int,
    ) -> Document:
        """Insert a freshly uploaded document. New uploads always start hot."""
        row = await conn.fetchrow(
            f"""
            INSERT INTO documents
                (id, owner_id, tenant_id, storage_tier, hot_path,
                 original_filename, mime_type, file_size_bytes, ocr_status)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING {_DOCUMENT_COLUMNS}
            """,
            uuid.UUID(document_id),
            owner_id,
            tenant_id,
            StorageTier.HOT.value,
            hot_path,
            original_filename,
            mime_type,
            file_size_bytes,
            OcrStatus.PENDING.value,
        )
        return Document.from_row(dict(row))  # type: ignore[arg-type]

    async def get_document(
        self,
        conn: asyncpg.Connection,
        document_id: str,
        *,
        owner_id: str,
    ) -> Document | None:
        """Fetch a document including soft-deleted rows; the resolver decides."""
        doc_uuid = _as_uuid(document_id)
        if doc_uuid is None:
            return None
        row = await conn.fetchrow(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = $1 AND owner_id = $2",
            doc_uuid,
            owner_id,
        )
        return Document.from_row(dict(row)) if row else None

    async def soft_delete(
        self,
        conn: asyncpg.Connection,
        document_id: str,
        *,
        owner_id: str,
    ) -> dict[str, Any] | None:
        """Mark a document deleted. Returns the row's storage paths, or None."""
        doc_uuid = _as_uuid(document_id)
        if doc_uuid is None:
            return None
        row = await conn.fetchrow(
            """
            UPDATE documents
            SET is_deleted = TRUE, deleted_at = NOW(), updated_at = NOW()
            WHERE id = $1 AND owner_id = $2 AND is_deleted = FALSE
            RETURNING id, storage_tier, hot_path, archive_path
            """,
            doc_uuid,
            owner_id,
        )
        return dict(row) if row else None

    async def set_ocr_status(
        self,
        conn: asyncpg.Connection,
        document_id: str,
        status: OcrStatus,
        *,
        extracted_text: str | None = None,
        error_message: str | None = None,
    ) -> None:
        await conn.execute(
            """
            UPDATE documents
            SET ocr_status = $2,
                extracted_text = COALESCE($3, extracted_text),
                ocr_error = $4,
                ocr_processed_at = CASE WHEN $2 IN ('completed', 'failed') THEN NOW()
                                        ELSE ocr_processed_at END,
                updated_at = NOW()
            WHERE id = $1
            """,
            uuid.UUID(document_id),
            status.value,
            extracted_text,
            error_message,
        )
