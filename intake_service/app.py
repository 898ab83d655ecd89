"""FastAPI entry point for the financial document intake service.

Endpoints:
- POST   /v1/documents                          Upload to hot storage, OCR in background
- GET    /v1/documents/{id}/download            Storage tier resolution
- DELETE /v1/documents/{id}                     Soft delete
- GET    /v1/jobs/{id}/export-info              Export destination for a job
- POST   /v1/jobs/{id}/export/spreadsheet       Resolve or provision, then bind
- POST   /v1/spreadsheets                       Create a spreadsheet
- POST   /v1/spreadsheets/{id}/upgrade-template Bring a spreadsheet up to the template
- GET    /v1/integrations/google-sheets/status  Connection status
- GET    /v1/integrations/google-sheets/auth-url
- POST   /v1/integrations/google-sheets/callback
- GET    /v1/integrations/google-sheets/spreadsheets
- GET    /v1/integrations/google-sheets/shared-drives
- DELETE /v1/integrations/google-sheets
- GET    /liveness, /readiness
"""

from __future__ import annotations

import logging
import secrets
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Annotated, cast

import asyncpg
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from intake_service.auth import Identity, get_identity, is_public_path, require_auth_on_cloud_run
from intake_service.config import (
    INTAKE_CORS_ALLOW_CREDENTIALS,
    INTAKE_CORS_ALLOW_HEADERS,
    INTAKE_CORS_ALLOW_METHODS,
    INTAKE_CORS_ALLOW_ORIGINS,
    INTAKE_MAX_UPLOAD_BYTES,
    GoogleCredentialConfig,
    OcrConfig,
)
from intake_service.db import (
    check_db_connection,
    close_pool,
    get_pool,
    rls_connection,
    service_connection,
)
from intake_service.errors import (
    HTTP_STATUS_BY_KIND,
    IntakeError,
    NotConfiguredError,
    NotConnectedError,
    NotFoundError,
    ProviderError,
    ReconnectRequiredError,
)
from intake_service.exports.destination import resolve_destination
from intake_service.exports.planner import ExportPlanner
from intake_service.google.credentials import CredentialStore
from intake_service.google.oauth import GoogleOAuthClient
from intake_service.google.provisioning import (
    CreatedUnder,
    SpreadsheetProvisioner,
    TemplateOptions,
)
from intake_service.google.sheets import spreadsheet_url
from intake_service.google.tokens import TokenLifecycleManager
from intake_service.logging_config import generate_request_id, setup_logging
from intake_service.models import (
    AuthUrlResponse,
    CreateSpreadsheetRequest,
    DeleteResponse,
    DisconnectResponse,
    ExportJobRequest,
    HealthResponse,
    IntegrationStatusResponse,
    OAuthCallbackRequest,
    OAuthCallbackResponse,
    SharedDrive,
    SharedDriveListResponse,
    SpreadsheetListResponse,
    SpreadsheetResponse,
    SpreadsheetSummary,
    UpgradeTemplateRequest,
    UpgradeTemplateResponse,
    UploadResponse,
)
from intake_service.ocr.tasks import run_ocr_for_document
from intake_service.storage.gcs import HotStorage, hot_object_name
from intake_service.storage.tiers import Redirect, RestoreRequired, resolve_download
from intake_service.stores.document_store import DocumentStore
from intake_service.stores.integration_store import TenantCredentialStore
from intake_service.stores.job_store import JobStore
from intake_service.types import StorageTier

logger = logging.getLogger(__name__)

_doc_store = DocumentStore()
_job_store = JobStore()


@dataclass
class IntakeServices:
    credentials: CredentialStore
    tokens: TokenLifecycleManager
    provisioner: SpreadsheetProvisioner
    planner: ExportPlanner
    storage: HotStorage
    ocr: OcrConfig


def build_services(
    config: GoogleCredentialConfig,
    *,
    storage: HotStorage | None = None,
    ocr: OcrConfig | None = None,
) -> IntakeServices:
    credentials = CredentialStore(config)
    tokens = TokenLifecycleManager(credentials)
    provisioner = SpreadsheetProvisioner(credentials, tokens)
    return IntakeServices(
        credentials=credentials,
        tokens=tokens,
        provisioner=provisioner,
        planner=ExportPlanner(provisioner, store=_job_store),
        storage=storage or HotStorage(),
        ocr=ocr or OcrConfig.from_env(),
    )


async def _load_credential_config() -> GoogleCredentialConfig:
    config = GoogleCredentialConfig.from_env()
    try:
        async with service_connection() as conn:
            accounts = await TenantCredentialStore().load_service_accounts(conn)
    except (OSError, asyncpg.PostgresError) as e:
        logger.warning("Could not load tenant service accounts; using defaults only: %s", e)
        return config
    return config.with_tenant_service_accounts(accounts)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Init pool and credential configuration on startup, close on shutdown."""
    setup_logging()
    require_auth_on_cloud_run()
    await get_pool()
    app.state.services = build_services(await _load_credential_config())
    status = app.state.services.credentials.status()
    logger.info(
        "Intake service started (oauth_configured=%s, service_account_configured=%s)",
        status.oauth_configured,
        status.service_account_configured,
    )
    yield
    await close_pool()
    logger.info("Intake service stopped")


app = FastAPI(
    title="Financial Document Intake API",
    version="0.1.0",
    lifespan=lifespan,
)

# -- Rate limiting ------------------------------------------------------------

limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})


@app.exception_handler(IntakeError)
async def _intake_error_handler(request: Request, exc: IntakeError) -> JSONResponse:
    if isinstance(exc, ProviderError):
        logger.warning("Provider error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": str(exc), "kind": exc.kind.value},
    )


if INTAKE_CORS_ALLOW_CREDENTIALS and "*" in INTAKE_CORS_ALLOW_ORIGINS:
    raise RuntimeError("Invalid CORS config: wildcard origin cannot be combined with credentials=true")

app.add_middleware(
    CORSMiddleware,
    allow_origins=INTAKE_CORS_ALLOW_ORIGINS,
    allow_credentials=INTAKE_CORS_ALLOW_CREDENTIALS,
    allow_methods=INTAKE_CORS_ALLOW_METHODS,
    allow_headers=INTAKE_CORS_ALLOW_HEADERS,
)


# -- Body size limit ----------------------------------------------------------

# Multipart framing on top of the largest accepted file
_MAX_BODY_BYTES = INTAKE_MAX_UPLOAD_BYTES + 64 * 1024


@app.middleware("http")
async def body_size_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Reject requests with bodies exceeding the size limit."""
    content_length = request.headers.get("content-length")
    if content_length is not None and int(content_length) > _MAX_BODY_BYTES:
        return JSONResponse(status_code=413, content={"detail": "Request body too large"})
    return await call_next(request)


# -- Auth middleware ----------------------------------------------------------


@app.middleware("http")
async def auth_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Enforce authentication on all non-public paths."""
    if request.method == "OPTIONS" or is_public_path(request.url.path):
        return await call_next(request)

    try:
        identity = await get_identity(request)
        request.state.identity = identity
    except HTTPException as exc:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    return await call_next(request)


# -- Request ID middleware ----------------------------------------------------


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Attach a unique request ID for trace correlation."""
    request_id = request.headers.get("x-request-id") or generate_request_id()
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


def _get_identity(request: Request) -> Identity:
    """Dependency: identity set by the auth middleware."""
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return cast(Identity, identity)


def _get_services(request: Request) -> IntakeServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return cast(IntakeServices, services)


IdentityDep = Annotated[Identity, Depends(_get_identity)]
ServicesDep = Annotated[IntakeServices, Depends(_get_services)]


# -- Health -------------------------------------------------------------------


@app.get("/liveness", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/readiness", response_model=HealthResponse)
async def readiness() -> HealthResponse:
    if not await check_db_connection():
        raise HTTPException(status_code=503, detail="Database unavailable")
    return HealthResponse(status="ok")


# -- Documents ----------------------------------------------------------------


@app.post("/v1/documents", response_model=UploadResponse, status_code=201)
@limiter.limit("20/minute")
async def upload_document(
    request: Request,
    file: UploadFile,
    background_tasks: BackgroundTasks,
    identity: IdentityDep,
    services: ServicesDep,
) -> UploadResponse:
    """Store an upload in the hot tier, record it, and queue OCR."""
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(content) > INTAKE_MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Uploaded file too large")

    filename = file.filename or "upload"
    mime_type = file.content_type or "application/octet-stream"
    document_id = str(uuid.uuid4())
    object_name = hot_object_name(identity.user_id, document_id, filename)

    await services.storage.upload_bytes(object_name, content, content_type=mime_type)
    try:
        async with rls_connection(identity.tenant_id, identity.user_id) as conn:
            document = await _doc_store.create_document(
                conn,
                document_id=document_id,
                owner_id=identity.user_id,
                tenant_id=identity.tenant_id,
                hot_path=object_name,
                original_filename=filename,
                mime_type=mime_type,
                file_size_bytes=len(content),
            )
    except asyncpg.PostgresError:
        logger.exception("Could not record upload %s; removing stored object", document_id)
        await services.storage.remove(object_name)
        raise

    background_tasks.add_task(
        run_ocr_for_document,
        tenant_id=identity.tenant_id,
        user_id=identity.user_id,
        document_id=document.id,
        content=content,
        mime_type=mime_type,
        cfg=services.ocr,
    )

    return UploadResponse(
        document_id=document.id,
        original_filename=filename,
        mime_type=mime_type,
        file_size_bytes=len(content),
        storage_tier=StorageTier.HOT.value,
        ocr_status="pending",
    )


@app.get("/v1/documents/{doc_id}/download")
async def download_document(
    doc_id: str,
    identity: IdentityDep,
    services: ServicesDep,
) -> JSONResponse:
    """Signed URL for hot documents, 202 for archived ones, 404 otherwise."""
    async with rls_connection(identity.tenant_id, identity.user_id) as conn:
        document = await _doc_store.get_document(conn, doc_id, owner_id=identity.user_id)
    if document is None:
        raise NotFoundError("Document not found")

    resolution = await resolve_download(document, services.storage)
    if isinstance(resolution, Redirect):
        return JSONResponse(status_code=200, content=resolution.to_dict())
    if isinstance(resolution, RestoreRequired):
        return JSONResponse(status_code=202, content=resolution.to_dict())
    return JSONResponse(
        status_code=HTTP_STATUS_BY_KIND[resolution.kind],
        content=resolution.to_dict(),
    )


@app.delete("/v1/documents/{doc_id}", response_model=DeleteResponse)
async def delete_document(
    doc_id: str,
    identity: IdentityDep,
    services: ServicesDep,
) -> DeleteResponse:
    """Soft-delete a document and drop its hot object."""
    async with rls_connection(identity.tenant_id, identity.user_id) as conn:
        deleted = await _doc_store.soft_delete(conn, doc_id, owner_id=identity.user_id)
    if deleted is None:
        raise NotFoundError("Document not found")

    hot_path = deleted.get("hot_path")
    if hot_path and deleted.get("storage_tier") in (
        StorageTier.HOT.value,
        StorageTier.PENDING_ARCHIVE.value,
    ):
        try:
            await services.storage.remove(hot_path)
        except ProviderError as e:
            logger.warning("Could not remove hot object for document %s: %s", doc_id, e)

    return DeleteResponse(deleted=True, document_id=doc_id)


# -- Exports ------------------------------------------------------------------


@app.get("/v1/jobs/{job_id}/export-info")
async def export_info(job_id: str, identity: IdentityDep) -> dict[str, object]:
    """Where this job's transactions would be exported, without changing anything."""
    async with rls_connection(identity.tenant_id, identity.user_id) as conn:
        job = await _job_store.get_job(conn, job_id, owner_id=identity.user_id)
        if job is None:
            raise NotFoundError("Job not found")
        destination = await resolve_destination(conn, job, _job_store)
    return destination.to_dict()


@app.post("/v1/jobs/{job_id}/export/spreadsheet")
@limiter.limit("10/minute")
async def export_job(
    request: Request,
    job_id: str,
    identity: IdentityDep,
    services: ServicesDep,
    body: ExportJobRequest | None = None,
) -> dict[str, object]:
    async with rls_connection(identity.tenant_id, identity.user_id) as conn:
        plan = await services.planner.export_job(
            conn,
            identity.as_owner(),
            job_id,
            title=body.title if body else None,
        )
    return plan.to_dict()


# -- Spreadsheets -------------------------------------------------------------


@app.post("/v1/spreadsheets", response_model=SpreadsheetResponse, status_code=201)
@limiter.limit("10/minute")
async def create_spreadsheet(
    request: Request,
    body: CreateSpreadsheetRequest,
    identity: IdentityDep,
    services: ServicesDep,
) -> SpreadsheetResponse:
    async with rls_connection(identity.tenant_id, identity.user_id) as conn:
        provisioned = await services.provisioner.create_spreadsheet(
            conn, identity.as_owner(), body.purpose, body.title.strip()
        )
    return SpreadsheetResponse(
        spreadsheet_id=provisioned.spreadsheet_id,
        spreadsheet_name=provisioned.spreadsheet_name,
        url=provisioned.url,
        created_under=provisioned.created_under.value,
    )


@app.post(
    "/v1/spreadsheets/{spreadsheet_id}/upgrade-template",
    response_model=UpgradeTemplateResponse,
)
@limiter.limit("10/minute")
async def upgrade_template(
    request: Request,
    spreadsheet_id: str,
    identity: IdentityDep,
    services: ServicesDep,
    body: UpgradeTemplateRequest | None = None,
) -> UpgradeTemplateResponse:
    body = body or UpgradeTemplateRequest()
    options = TemplateOptions(
        rename_first_tab=body.rename_first_tab,
        include_summary=body.include_summary,
        include_by_category=body.include_by_category,
        write_formulas=body.write_formulas,
        acting_as=CreatedUnder(body.acting_as) if body.acting_as else None,
    )
    async with rls_connection(identity.tenant_id, identity.user_id) as conn:
        result = await services.provisioner.upgrade_template(
            conn, identity.as_owner(), spreadsheet_id, options
        )
    return UpgradeTemplateResponse(
        spreadsheet_id=result.spreadsheet_id,
        added_tabs=result.added_tabs,
        renamed_first_tab=result.renamed_first_tab,
        tabs=result.tabs,
    )


# -- Google Sheets integration ------------------------------------------------


@app.get("/v1/integrations/google-sheets/status", response_model=IntegrationStatusResponse)
async def integration_status(
    identity: IdentityDep, services: ServicesDep
) -> IntegrationStatusResponse:
    """Report connection state. Missing configuration reads as not connected."""
    cred_status = services.credentials.status(identity.tenant_id)
    response = IntegrationStatusResponse(
        connected=False,
        oauth_configured=cred_status.oauth_configured,
        service_account_configured=cred_status.service_account_configured,
        service_account_source=cred_status.service_account_source,
    )

    async with rls_connection(identity.tenant_id, identity.user_id) as conn:
        try:
            token = await services.tokens.get_valid_token(conn, identity.user_id)
        except NotConnectedError:
            return response
        except ReconnectRequiredError as e:
            response.reconnect_required = True
            response.error = str(e)
            return response
        except NotConfiguredError as e:
            response.error = str(e)
            return response

    response.connected = True
    response.provider_email = token.provider_email
    return response


@app.get("/v1/integrations/google-sheets/auth-url", response_model=AuthUrlResponse)
async def integration_auth_url(identity: IdentityDep, services: ServicesDep) -> AuthUrlResponse:
    oauth_app = services.credentials.resolve_oauth_app()
    if oauth_app is None:
        raise NotConfiguredError("Google OAuth client is not configured")
    state = secrets.token_urlsafe(24)
    return AuthUrlResponse(url=GoogleOAuthClient(oauth_app).authorization_url(state), state=state)


@app.post("/v1/integrations/google-sheets/callback", response_model=OAuthCallbackResponse)
@limiter.limit("10/minute")
async def integration_callback(
    request: Request,
    body: OAuthCallbackRequest,
    identity: IdentityDep,
    services: ServicesDep,
) -> OAuthCallbackResponse:
    async with rls_connection(identity.tenant_id, identity.user_id) as conn:
        token = await services.tokens.connect(conn, identity.user_id, body.code.strip())
    return OAuthCallbackResponse(connected=True, provider_email=token.provider_email)


@app.delete("/v1/integrations/google-sheets", response_model=DisconnectResponse)
async def integration_disconnect(identity: IdentityDep, services: ServicesDep) -> DisconnectResponse:
    async with rls_connection(identity.tenant_id, identity.user_id) as conn:
        removed = await services.tokens.disconnect(conn, identity.user_id)
    return DisconnectResponse(disconnected=removed)


@app.get(
    "/v1/integrations/google-sheets/spreadsheets", response_model=SpreadsheetListResponse
)
@limiter.limit("30/minute")
async def integration_list_spreadsheets(
    request: Request, identity: IdentityDep, services: ServicesDep
) -> SpreadsheetListResponse:
    """Spreadsheets in the connected Google account, for picking an export target."""
    async with rls_connection(identity.tenant_id, identity.user_id) as conn:
        files = await services.provisioner.list_spreadsheets(conn, identity.as_owner())
    return SpreadsheetListResponse(
        spreadsheets=[
            SpreadsheetSummary(
                id=f["id"],
                name=f.get("name") or "",
                modified_time=f.get("modifiedTime"),
                url=spreadsheet_url(f["id"]),
            )
            for f in files
            if f.get("id")
        ]
    )


@app.get(
    "/v1/integrations/google-sheets/shared-drives", response_model=SharedDriveListResponse
)
@limiter.limit("30/minute")
async def integration_list_shared_drives(
    request: Request, identity: IdentityDep, services: ServicesDep
) -> SharedDriveListResponse:
    async with rls_connection(identity.tenant_id, identity.user_id) as conn:
        drives = await services.provisioner.list_shared_drives(conn, identity.as_owner())
    return SharedDriveListResponse(
        drives=[SharedDrive(id=d["id"], name=d.get("name") or "") for d in drives if d.get("id")]
    )
