from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal


class StorageTier(str, Enum):
    HOT = "hot"
    PENDING_ARCHIVE = "pending_archive"
    ARCHIVE = "archive"


class OcrStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Document:
    id: str
    owner_id: str
    tenant_id: str | None
    storage_tier: StorageTier | None  # None for values this service does not know
    hot_path: str | None
    archive_path: str | None
    is_deleted: bool
    original_filename: str | None = None
    mime_type: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Document:
        raw_tier = row.get("storage_tier") or StorageTier.HOT.value
        try:
            tier: StorageTier | None = StorageTier(raw_tier)
        except ValueError:
            tier = None
        return cls(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            tenant_id=row.get("tenant_id"),
            storage_tier=tier,
            hot_path=row.get("hot_path"),
            archive_path=row.get("archive_path"),
            is_deleted=bool(row.get("is_deleted")),
            original_filename=row.get("original_filename"),
            mime_type=row.get("mime_type"),
        )


@dataclass(frozen=True)
class Job:
    id: str
    owner_id: str
    spreadsheet_id: str | None
    bank_account_id: str | None
    original_filename: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Job:
        bank_account_id = row.get("bank_account_id")
        return cls(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            spreadsheet_id=row.get("spreadsheet_id"),
            bank_account_id=str(bank_account_id) if bank_account_id else None,
            original_filename=row.get("original_filename"),
        )


@dataclass(frozen=True)
class BankAccount:
    id: str
    owner_id: str
    account_name: str | None
    default_spreadsheet_id: str | None


@dataclass(frozen=True)
class CompanyProfile:
    owner_id: str
    master_spreadsheet_id: str | None
    master_spreadsheet_name: str | None


@dataclass(frozen=True)
class OAuthCredentials:
    client_id: str
    client_secret: str
    redirect_uri: str
    kind: Literal["oauth"] = "oauth"

    def is_complete(self) -> bool:
        return all(v.strip() for v in (self.client_id, self.client_secret, self.redirect_uri))

    def normalized(self) -> OAuthCredentials:
        return OAuthCredentials(
            client_id=self.client_id.strip(),
            client_secret=self.client_secret.strip(),
            redirect_uri=self.redirect_uri.strip(),
        )

    def __repr__(self) -> str:
        return (
            f"OAuthCredentials(client_id={self.client_id!r}, client_secret=<redacted>, "
            f"redirect_uri={self.redirect_uri!r})"
        )


@dataclass(frozen=True)
class ServiceAccountCredentials:
    email: str
    private_key: str
    kind: Literal["service_account"] = "service_account"

    def is_complete(self) -> bool:
        return bool(self.email.strip() and self.private_key.strip())

    def normalized(self) -> ServiceAccountCredentials:
        # Keys pasted into env vars or secret stores arrive with literal "\n"
        return ServiceAccountCredentials(
            email=self.email.strip(),
            private_key=self.private_key.strip().replace("\\n", "\n"),
        )

    def __repr__(self) -> str:
        return f"ServiceAccountCredentials(email={self.email!r}, private_key=<redacted>)"


CredentialSet = OAuthCredentials | ServiceAccountCredentials


@dataclass(frozen=True)
class UserIntegrationToken:
    owner_id: str
    access_token: str
    refresh_token: str | None
    expires_at: datetime | None
    provider: str = "google_sheets"
    provider_email: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def __repr__(self) -> str:
        return (
            f"UserIntegrationToken(owner_id={self.owner_id!r}, provider={self.provider!r}, "
            f"expires_at={self.expires_at!r})"
        )


@dataclass(frozen=True)
class Owner:
    """The human on whose behalf an operation runs."""

    user_id: str
    tenant_id: str | None
    email: str | None = None
