"""Integration tests for the intake stores against a migrated database."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from intake_service.errors import ConflictError
from intake_service.stores.document_store import DocumentStore
from intake_service.stores.integration_store import IntegrationTokenStore, TenantCredentialStore
from intake_service.stores.job_store import JobStore
from intake_service.types import OcrStatus, StorageTier, UserIntegrationToken

pytestmark = pytest.mark.usefixtures("clean_tables")


class TestDocumentStore:
    async def test_create_and_soft_delete(self, rls_conn, test_user_id, test_tenant_id):
        store = DocumentStore()
        doc_id = str(uuid.uuid4())
        created = await store.create_document(
            rls_conn,
            document_id=doc_id,
            owner_id=test_user_id,
            tenant_id=test_tenant_id,
            hot_path=f"{test_user_id}/{doc_id}/a.pdf",
            original_filename="a.pdf",
            mime_type="application/pdf",
            file_size_bytes=10,
        )
        assert created.storage_tier is StorageTier.HOT

        deleted = await store.soft_delete(rls_conn, doc_id, owner_id=test_user_id)
        assert deleted is not None
        assert deleted["hot_path"].endswith("a.pdf")

        # Deleted rows stay readable so the resolver can answer not_found
        fetched = await store.get_document(rls_conn, doc_id, owner_id=test_user_id)
        assert fetched is not None
        assert fetched.is_deleted is True

        assert await store.soft_delete(rls_conn, doc_id, owner_id=test_user_id) is None

    async def test_invalid_id_returns_none(self, rls_conn, test_user_id):
        assert await DocumentStore().get_document(rls_conn, "not-a-uuid", owner_id=test_user_id) is None

    async def test_ocr_status(self, rls_conn, test_user_id, test_tenant_id):
        store = DocumentStore()
        doc_id = str(uuid.uuid4())
        await store.create_document(
            rls_conn,
            document_id=doc_id,
            owner_id=test_user_id,
            tenant_id=test_tenant_id,
            hot_path="p",
            original_filename="a.pdf",
            mime_type="application/pdf",
            file_size_bytes=1,
        )
        await store.set_ocr_status(rls_conn, doc_id, OcrStatus.COMPLETED, extracted_text="hello")
        row = await rls_conn.fetchrow(
            "SELECT ocr_status, extracted_text, ocr_processed_at FROM documents WHERE id = $1",
            uuid.UUID(doc_id),
        )
        assert row["ocr_status"] == "completed"
        assert row["extracted_text"] == "hello"
        assert row["ocr_processed_at"] is not None


class TestJobStore:
    async def test_bind_once(self, rls_conn, test_user_id):
        job_id = await rls_conn.fetchval(
            "INSERT INTO categorization_jobs (owner_id, original_filename) VALUES ($1, 'm.pdf') RETURNING id",
            test_user_id,
        )
        store = JobStore()
        await store.bind_spreadsheet(rls_conn, str(job_id), "S1", owner_id=test_user_id)

        job = await store.get_job(rls_conn, str(job_id), owner_id=test_user_id)
        assert job is not None
        assert job.spreadsheet_id == "S1"

        with pytest.raises(ConflictError):
            await store.bind_spreadsheet(rls_conn, str(job_id), "S2", owner_id=test_user_id)

    async def test_account_default_linked_only_when_unset(self, rls_conn, test_user_id):
        account_id = await rls_conn.fetchval(
            "INSERT INTO bank_accounts (owner_id, account_name) VALUES ($1, 'Chase') RETURNING id",
            test_user_id,
        )
        store = JobStore()

        assert await store.link_bank_account_spreadsheet(
            rls_conn, str(account_id), "S1", owner_id=test_user_id
        ) is True
        assert await store.link_bank_account_spreadsheet(
            rls_conn, str(account_id), "S2", owner_id=test_user_id
        ) is False

        account = await store.get_bank_account(rls_conn, str(account_id), owner_id=test_user_id)
        assert account is not None
        assert account.default_spreadsheet_id == "S1"

    async def test_company_profile(self, rls_conn, test_user_id):
        await rls_conn.execute(
            "INSERT INTO company_profiles (owner_id, master_spreadsheet_id) VALUES ($1, 'M1')",
            test_user_id,
        )
        profile = await JobStore().get_company_profile(rls_conn, test_user_id)
        assert profile is not None
        assert profile.master_spreadsheet_id == "M1"
        assert profile.master_spreadsheet_name is None


class TestIntegrationTokenStore:
    async def test_upsert_and_refresh_keeps_refresh_token(self, rls_conn, test_user_id):
        store = IntegrationTokenStore()
        expires = datetime.now(UTC) + timedelta(hours=1)
        await store.save_token(
            rls_conn,
            UserIntegrationToken(
                owner_id=test_user_id,
                access_token="at1",
                refresh_token="rt1",
                expires_at=expires,
                provider_email="me@gmail.com",
            ),
        )
        await store.update_access_token(
            rls_conn, test_user_id, access_token="at2", refresh_token=None, expires_at=expires
        )

        token = await store.get_token(rls_conn, test_user_id)
        assert token is not None
        assert token.access_token == "at2"
        assert token.refresh_token == "rt1"
        assert token.provider_email == "me@gmail.com"

        assert await store.delete_token(rls_conn, test_user_id) is True
        assert await store.get_token(rls_conn, test_user_id) is None


class TestTenantCredentialStore:
    async def test_only_active_rows_loaded(self, db_pool):
        async with db_pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO tenant_google_credentials
                    (tenant_id, service_account_email, service_account_private_key, is_active)
                VALUES ('t1', 'sa@t1', 'key', TRUE), ('t2', 'sa@t2', 'key', FALSE)
                """
            )
            accounts = await TenantCredentialStore().load_service_accounts(conn)

        assert set(accounts) == {"t1"}
        assert accounts["t1"].email == "sa@t1"
