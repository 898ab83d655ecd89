"""Environment-variable-driven configuration for the intake service.

Plain settings are module constants. Google credential sets are collected
into a frozen GoogleCredentialConfig once at startup and handed to the
credential store by reference.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from intake_service.types import OAuthCredentials, ServiceAccountCredentials


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_csv(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_str(name: str) -> str:
    return (os.getenv(name) or "").strip()


# -- Tenant -------------------------------------------------------------------
TENANT_ID: str = os.getenv("TENANT_ID", "default")
INTAKE_TENANT_CLAIM: str = os.getenv("INTAKE_TENANT_CLAIM", "tenant_id")
INTAKE_REQUIRE_TENANT_CLAIM: bool = _env_bool("INTAKE_REQUIRE_TENANT_CLAIM", False)

# -- Storage ------------------------------------------------------------------
INTAKE_HOT_BUCKET: str = os.getenv("INTAKE_HOT_BUCKET", "intake-uploads")
SIGNED_URL_TTL_SECONDS: int = 3600
# Service account that signs download URLs through IAM signBlob when the
# runtime credentials hold no private key (Cloud Run metadata credentials)
INTAKE_URL_SIGNER_EMAIL: str | None = os.getenv("INTAKE_URL_SIGNER_EMAIL") or None
INTAKE_MAX_UPLOAD_BYTES: int = int(os.getenv("INTAKE_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# -- Google APIs --------------------------------------------------------------
APP_BASE_URL: str = os.getenv("APP_BASE_URL", "http://localhost:3002")
GOOGLE_HTTP_TIMEOUT_SECONDS: float = float(os.getenv("GOOGLE_HTTP_TIMEOUT_SECONDS", "20"))
GOOGLE_SHEETS_SCOPES: list[str] = _env_csv(
    "GOOGLE_SHEETS_SCOPES",
    "openid,email,https://www.googleapis.com/auth/spreadsheets,https://www.googleapis.com/auth/drive.file",
)
GOOGLE_SERVICE_ACCOUNT_SCOPES: list[str] = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

# -- OCR ----------------------------------------------------------------------
INTAKE_OCR_ENABLED: bool = _env_bool("INTAKE_OCR_ENABLED", False)
INTAKE_DOC_AI_PROJECT: str | None = os.getenv("INTAKE_DOC_AI_PROJECT")
INTAKE_DOC_AI_LOCATION: str | None = os.getenv("INTAKE_DOC_AI_LOCATION")
INTAKE_DOC_AI_PROCESSOR_ID: str | None = os.getenv("INTAKE_DOC_AI_PROCESSOR_ID")

# -- Auth ---------------------------------------------------------------------
INTAKE_SHARED_TOKEN: str | None = os.getenv("INTAKE_SHARED_TOKEN")
INTAKE_OIDC_AUDIENCE: str | None = os.getenv("INTAKE_OIDC_AUDIENCE")
INTAKE_ALLOWED_ISSUERS: set[str] = set(
    _env_csv("INTAKE_ALLOWED_ISSUERS", "https://accounts.google.com,accounts.google.com")
)

# -- CORS ---------------------------------------------------------------------
INTAKE_CORS_ALLOW_ORIGINS: list[str] = _env_csv(
    "INTAKE_CORS_ALLOW_ORIGINS",
    "http://localhost:3000,http://localhost:3002",
)
INTAKE_CORS_ALLOW_METHODS: list[str] = _env_csv(
    "INTAKE_CORS_ALLOW_METHODS",
    "GET,POST,DELETE,OPTIONS",
)
INTAKE_CORS_ALLOW_HEADERS: list[str] = _env_csv(
    "INTAKE_CORS_ALLOW_HEADERS",
    "Authorization,Content-Type",
)
INTAKE_CORS_ALLOW_CREDENTIALS: bool = _env_bool("INTAKE_CORS_ALLOW_CREDENTIALS", False)

# -- Server -------------------------------------------------------------------
IS_CLOUD_RUN: bool = bool(os.getenv("K_SERVICE"))


def default_redirect_uri() -> str:
    explicit = _env_str("GOOGLE_SHEETS_REDIRECT_URI") or _env_str("GOOGLE_REDIRECT_URI")
    if explicit:
        return explicit
    return f"{APP_BASE_URL.rstrip('/')}/api/integrations/google-sheets/callback"


@dataclass(frozen=True)
class GoogleCredentialConfig:
    """Process-wide Google credential sets plus per-tenant service accounts.

    Fields hold raw, possibly blank values; completeness is judged by the
    credential store, so a half-configured set is kept here but never used.
    """

    oauth_client_id: str = ""
    oauth_client_secret: str = field(default="", repr=False)
    oauth_redirect_uri: str = ""
    service_account_email: str = ""
    service_account_private_key: str = field(default="", repr=False)
    tenant_service_accounts: Mapping[str, ServiceAccountCredentials] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> GoogleCredentialConfig:
        return cls(
            oauth_client_id=_env_str("GOOGLE_CLIENT_ID"),
            oauth_client_secret=_env_str("GOOGLE_CLIENT_SECRET"),
            oauth_redirect_uri=default_redirect_uri(),
            service_account_email=_env_str("GOOGLE_SERVICE_ACCOUNT_EMAIL"),
            service_account_private_key=_env_str("GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY"),
        )

    def with_tenant_service_accounts(
        self, accounts: Mapping[str, ServiceAccountCredentials]
    ) -> GoogleCredentialConfig:
        return GoogleCredentialConfig(
            oauth_client_id=self.oauth_client_id,
            oauth_client_secret=self.oauth_client_secret,
            oauth_redirect_uri=self.oauth_redirect_uri,
            service_account_email=self.service_account_email,
            service_account_private_key=self.service_account_private_key,
            tenant_service_accounts=dict(accounts),
        )

    @property
    def default_oauth(self) -> OAuthCredentials:
        return OAuthCredentials(
            client_id=self.oauth_client_id,
            client_secret=self.oauth_client_secret,
            redirect_uri=self.oauth_redirect_uri,
        )

    @property
    def default_service_account(self) -> ServiceAccountCredentials:
        return ServiceAccountCredentials(
            email=self.service_account_email,
            private_key=self.service_account_private_key,
        )


@dataclass(frozen=True)
class OcrConfig:
    enabled: bool
    project: str | None
    location: str | None
    processor_id: str | None

    @classmethod
    def from_env(cls) -> OcrConfig:
        return cls(
            enabled=INTAKE_OCR_ENABLED,
            project=INTAKE_DOC_AI_PROJECT,
            location=INTAKE_DOC_AI_LOCATION,
            processor_id=INTAKE_DOC_AI_PROCESSOR_ID,
        )

    @property
    def is_usable(self) -> bool:
        return self.enabled and bool(self.project and self.location and self.processor_id)
