"""Background OCR run after an upload.

Scheduled with FastAPI BackgroundTasks once the upload response is ready.
The outcome is recorded in documents.ocr_status and logged; nothing here
propagates back to the uploader.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import asyncpg
from google.api_core.exceptions import GoogleAPIError

from intake_service.config import OcrConfig
from intake_service.db import rls_connection
from intake_service.ocr.document_ai import DocAIConfig, DocumentAIClient
from intake_service.stores.document_store import DocumentStore
from intake_service.types import OcrStatus

logger = logging.getLogger(__name__)

OCR_MIME_TYPES = {
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/tiff",
    "image/gif",
    "image/webp",
}

OcrClientFactory = Callable[[OcrConfig], DocumentAIClient]


def _default_client(cfg: OcrConfig) -> DocumentAIClient:
    return DocumentAIClient(cfg=DocAIConfig.from_ocr_config(cfg))


async def run_ocr_for_document(
    *,
    tenant_id: str,
    user_id: str,
    document_id: str,
    content: bytes,
    mime_type: str,
    cfg: OcrConfig,
    store: DocumentStore | None = None,
    client_factory: OcrClientFactory = _default_client,
) -> OcrStatus:
    """Run OCR over uploaded bytes and record the outcome. Never raises."""
    store = store or DocumentStore()

    if not cfg.is_usable or mime_type not in OCR_MIME_TYPES:
        reason = "disabled" if not cfg.is_usable else f"unsupported type {mime_type}"
        logger.info("OCR skipped for document %s (%s)", document_id, reason)
        await _record(tenant_id, user_id, document_id, OcrStatus.SKIPPED, store)
        return OcrStatus.SKIPPED

    await _record(tenant_id, user_id, document_id, OcrStatus.PROCESSING, store)
    try:
        client = client_factory(cfg)
        loop = asyncio.get_running_loop()
        text, meta = await loop.run_in_executor(
            None, lambda: client.ocr_online(content=content, mime_type=mime_type)
        )
    except (GoogleAPIError, ValueError) as e:
        logger.warning("OCR failed for document %s: %s", document_id, e)
        await _record(
            tenant_id, user_id, document_id, OcrStatus.FAILED, store, error_message=str(e)[:500]
        )
        return OcrStatus.FAILED

    await _record(
        tenant_id, user_id, document_id, OcrStatus.COMPLETED, store, extracted_text=text
    )
    logger.info(
        "OCR completed for document %s: %d chars, pages=%s",
        document_id,
        len(text),
        meta.get("pages"),
    )
    return OcrStatus.COMPLETED


async def _record(
    tenant_id: str,
    user_id: str,
    document_id: str,
    status: OcrStatus,
    store: DocumentStore,
    *,
    extracted_text: str | None = None,
    error_message: str | None = None,
) -> None:
    try:
        async with rls_connection(tenant_id, user_id) as conn:
            await store.set_ocr_status(
                conn,
                document_id,
                status,
                extracted_text=extracted_text,
                error_message=error_message,
            )
    except (OSError, ValueError, asyncpg.PostgresError) as e:
        logger.error("Could not record OCR status %s for document %s: %s", status.value, document_id, e)
