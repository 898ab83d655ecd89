"""Pydantic request/response schemas for the intake API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from intake_service.google.provisioning import SpreadsheetPurpose

# -- Documents ----------------------------------------------------------------


class UploadResponse(BaseModel):
    document_id: str
    original_filename: str
    mime_type: str
    file_size_bytes: int
    storage_tier: str
    ocr_status: str


class DeleteResponse(BaseModel):
    deleted: bool
    document_id: str


# -- Spreadsheets -------------------------------------------------------------


class CreateSpreadsheetRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200, description="Spreadsheet title")
    purpose: SpreadsheetPurpose = Field(
        SpreadsheetPurpose.PERSONAL, description="account, job or personal"
    )


class SpreadsheetResponse(BaseModel):
    spreadsheet_id: str
    spreadsheet_name: str
    url: str
    created_under: str


class UpgradeTemplateRequest(BaseModel):
    rename_first_tab: bool = True
    include_summary: bool = True
    include_by_category: bool = True
    write_formulas: bool = True
    acting_as: str | None = Field(None, pattern="^(oauth_user|service_account)$")


class UpgradeTemplateResponse(BaseModel):
    spreadsheet_id: str
    added_tabs: list[str]
    renamed_first_tab: bool
    tabs: list[str]


class ExportJobRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)


# -- Integrations -------------------------------------------------------------


class IntegrationStatusResponse(BaseModel):
    connected: bool
    provider_email: str | None = None
    oauth_configured: bool
    service_account_configured: bool
    service_account_source: str | None = None
    reconnect_required: bool = False
    error: str | None = None


class AuthUrlResponse(BaseModel):
    url: str
    state: str


class OAuthCallbackRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=2048)
    state: str | None = Field(None, max_length=512)


class OAuthCallbackResponse(BaseModel):
    connected: bool
    provider_email: str | None = None


class DisconnectResponse(BaseModel):
    disconnected: bool


class SpreadsheetSummary(BaseModel):
    id: str
    name: str
    modified_time: str | None = None
    url: str


class SpreadsheetListResponse(BaseModel):
    spreadsheets: list[SpreadsheetSummary]


class SharedDrive(BaseModel):
    id: str
    name: str


class SharedDriveListResponse(BaseModel):
    drives: list[SharedDrive]


# -- Health -------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    error: str | None = None
