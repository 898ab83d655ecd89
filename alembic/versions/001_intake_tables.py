"""Create intake tables with owner-scoped RLS.

Revision ID: 001
Create Date: 2026-10-18

documents, categorization_jobs, bank_accounts, company_profiles and
user_integrations are visible only to their owner (app.user_id).
tenant_google_credentials is read once at startup by the service role and
has no user policy.
"""

from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

_OWNER_TABLES = (
    "documents",
    "categorization_jobs",
    "bank_accounts",
    "company_profiles",
    "user_integrations",
)


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # -- documents ------------------------------------------------------------
    op.execute(
        """
        CREATE TABLE documents (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            owner_id TEXT NOT NULL,
            tenant_id TEXT,

            storage_tier TEXT NOT NULL DEFAULT 'hot',
            hot_path TEXT,
            archive_path TEXT,

            is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
            deleted_at TIMESTAMPTZ,

            original_filename TEXT,
            mime_type TEXT,
            file_size_bytes BIGINT,

            ocr_status TEXT NOT NULL DEFAULT 'pending'
                CHECK (ocr_status IN ('pending', 'processing', 'completed', 'failed', 'skipped')),
            ocr_error TEXT,
            extracted_text TEXT,
            ocr_processed_at TIMESTAMPTZ,

            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """
    )
    # No CHECK on storage_tier: tiers this service does not know read as unavailable
    op.execute(
        "CREATE INDEX ix_documents_owner ON documents (owner_id, created_at DESC) "
        "WHERE is_deleted = FALSE"
    )
    op.execute("CREATE INDEX ix_documents_tier ON documents (storage_tier) WHERE is_deleted = FALSE")

    # -- bank_accounts --------------------------------------------------------
    op.execute(
        """
        CREATE TABLE bank_accounts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            owner_id TEXT NOT NULL,
            account_name TEXT,
            default_spreadsheet_id TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """
    )
    op.execute("CREATE INDEX ix_bank_accounts_owner ON bank_accounts (owner_id)")

    # -- categorization_jobs --------------------------------------------------
    op.execute(
        """
        CREATE TABLE categorization_jobs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            owner_id TEXT NOT NULL,
            document_id UUID REFERENCES documents(id),
            bank_account_id UUID REFERENCES bank_accounts(id) ON DELETE SET NULL,
            spreadsheet_id TEXT,
            original_filename TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """
    )
    op.execute("CREATE INDEX ix_categorization_jobs_owner ON categorization_jobs (owner_id)")

    # -- company_profiles -----------------------------------------------------
    op.execute(
        """
        CREATE TABLE company_profiles (
            owner_id TEXT PRIMARY KEY,
            company_name TEXT,
            master_spreadsheet_id TEXT,
            master_spreadsheet_name TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """
    )

    # -- user_integrations ----------------------------------------------------
    op.execute(
        """
        CREATE TABLE user_integrations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            owner_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            access_token TEXT,
            refresh_token TEXT,
            expires_at TIMESTAMPTZ,
            provider_email TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            UNIQUE (owner_id, provider)
        )
    """
    )

    # -- tenant_google_credentials --------------------------------------------
    op.execute(
        """
        CREATE TABLE tenant_google_credentials (
            tenant_id TEXT PRIMARY KEY,
            service_account_email TEXT,
            service_account_private_key TEXT,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """
    )

    # -- RLS ------------------------------------------------------------------
    for table in _OWNER_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        op.execute(
            f"""
            CREATE POLICY {table}_owner ON {table}
            FOR ALL
            USING (owner_id = current_setting('app.user_id', true))
            WITH CHECK (owner_id = current_setting('app.user_id', true))
        """
        )


def downgrade() -> None:
    for table in _OWNER_TABLES:
        op.execute(f"DROP POLICY IF EXISTS {table}_owner ON {table}")
    op.execute("DROP TABLE IF EXISTS tenant_google_credentials")
    op.execute("DROP TABLE IF EXISTS user_integrations")
    op.execute("DROP TABLE IF EXISTS company_profiles")
    op.execute("DROP TABLE IF EXISTS categorization_jobs")
    op.execute("DROP TABLE IF EXISTS bank_accounts")
    op.execute("DROP TABLE IF EXISTS documents")
