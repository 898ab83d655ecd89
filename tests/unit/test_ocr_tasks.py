"""Unit tests for the post-upload OCR background task."""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.api_core.exceptions import InternalServerError

from intake_service.config import OcrConfig
from intake_service.ocr.tasks import run_ocr_for_document
from intake_service.types import OcrStatus

ENABLED = OcrConfig(enabled=True, project="p", location="us", processor_id="proc")


@asynccontextmanager
async def _fake_rls_connection(tenant_id: str, user_id: str):
    yield MagicMock()


@pytest.fixture(autouse=True)
def _patch_rls():
    with patch("intake_service.ocr.tasks.rls_connection", side_effect=_fake_rls_connection):
        yield


def _statuses(store: AsyncMock) -> list[OcrStatus]:
    return [c.args[2] for c in store.set_ocr_status.await_args_list]


async def _run(cfg: OcrConfig, store: AsyncMock, client: MagicMock, mime_type: str = "application/pdf"):
    return await run_ocr_for_document(
        tenant_id="t1",
        user_id="u1",
        document_id="11111111-1111-1111-1111-111111111111",
        content=b"%PDF-1.4",
        mime_type=mime_type,
        cfg=cfg,
        store=store,
        client_factory=lambda _: client,
    )


class TestRunOcr:
    async def test_completed(self):
        store = AsyncMock()
        client = MagicMock()
        client.ocr_online.return_value = ("Opening balance 100.00", {"pages": 1})

        assert await _run(ENABLED, store, client) is OcrStatus.COMPLETED
        assert _statuses(store) == [OcrStatus.PROCESSING, OcrStatus.COMPLETED]
        assert store.set_ocr_status.await_args.kwargs["extracted_text"] == "Opening balance 100.00"

    async def test_disabled_is_skipped(self):
        store = AsyncMock()
        client = MagicMock()
        cfg = OcrConfig(enabled=False, project="p", location="us", processor_id="proc")

        assert await _run(cfg, store, client) is OcrStatus.SKIPPED
        assert _statuses(store) == [OcrStatus.SKIPPED]
        client.ocr_online.assert_not_called()

    async def test_unsupported_type_is_skipped(self):
        store = AsyncMock()
        client = MagicMock()

        assert await _run(ENABLED, store, client, mime_type="text/csv") is OcrStatus.SKIPPED
        client.ocr_online.assert_not_called()

    async def test_provider_failure_recorded_not_raised(self):
        store = AsyncMock()
        client = MagicMock()
        client.ocr_online.side_effect = InternalServerError("docai down")

        assert await _run(ENABLED, store, client) is OcrStatus.FAILED
        assert _statuses(store) == [OcrStatus.PROCESSING, OcrStatus.FAILED]
        assert "docai down" in store.set_ocr_status.await_args.kwargs["error_message"]

    async def test_status_write_failure_does_not_raise(self):
        store = AsyncMock()
        store.set_ocr_status.side_effect = OSError("db gone")
        client = MagicMock()
        client.ocr_online.return_value = ("text", {})

        assert await _run(ENABLED, store, client) is OcrStatus.COMPLETED
