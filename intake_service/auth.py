"""Caller authentication.

1. Google OIDC id tokens, verified with google-auth. The tenant comes from a
   configurable claim, falling back to TENANT_ID unless the claim is required.
2. Shared bearer token for local development (ignored on Cloud Run).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, Request
from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from intake_service.config import (
    INTAKE_ALLOWED_ISSUERS,
    INTAKE_OIDC_AUDIENCE,
    INTAKE_REQUIRE_TENANT_CLAIM,
    INTAKE_SHARED_TOKEN,
    INTAKE_TENANT_CLAIM,
    IS_CLOUD_RUN,
    TENANT_ID,
)
from intake_service.types import Owner

logger = logging.getLogger(__name__)

_transport = google_requests.Request()

_PUBLIC_PATHS = {"/liveness", "/readiness", "/docs", "/openapi.json"}


@dataclass
class Identity:
    tenant_id: str
    user_id: str
    principal: str  # email or sub claim
    email: str | None = None

    def as_owner(self) -> Owner:
        return Owner(user_id=self.user_id, tenant_id=self.tenant_id, email=self.email)


async def get_identity(request: Request) -> Identity:
    """Verify the caller's bearer token.

    Raises HTTPException 401 if no valid credentials are provided.
    """
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing authorization token")

    if not IS_CLOUD_RUN and INTAKE_SHARED_TOKEN and token == INTAKE_SHARED_TOKEN:
        return Identity(
            tenant_id=TENANT_ID,
            user_id="dev-user",
            principal="dev-user@local",
            email="dev-user@local",
        )

    try:
        claims = id_token.verify_token(token, _transport, audience=INTAKE_OIDC_AUDIENCE)
    except (GoogleAuthError, ValueError) as e:
        logger.warning("Token verification failed: %s", e)
        raise HTTPException(status_code=401, detail="Invalid token") from e

    issuer = str(claims.get("iss", "")).strip()
    if issuer not in INTAKE_ALLOWED_ISSUERS:
        raise HTTPException(status_code=401, detail="Invalid token issuer")

    email = claims.get("email") or None
    sub = claims.get("sub", "")
    principal = email or sub
    if not principal:
        raise HTTPException(status_code=401, detail="Token missing email and sub claims")

    return Identity(
        tenant_id=_resolve_tenant_id(claims),
        user_id=principal,
        principal=principal,
        email=email,
    )


def _extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return None


def is_public_path(path: str) -> bool:
    return path in _PUBLIC_PATHS or path.startswith("/docs")


def require_auth_on_cloud_run() -> None:
    """Safety check: shared token must not be usable on Cloud Run."""
    if IS_CLOUD_RUN and INTAKE_SHARED_TOKEN:
        logger.warning(
            "INTAKE_SHARED_TOKEN is set on Cloud Run and will be ignored. "
            "Use OIDC tokens for authentication in production."
        )
    if IS_CLOUD_RUN and not INTAKE_OIDC_AUDIENCE:
        raise RuntimeError("INTAKE_OIDC_AUDIENCE must be set on Cloud Run")


def _resolve_tenant_id(claims: Mapping[str, Any]) -> str:
    claim_key = INTAKE_TENANT_CLAIM.strip()
    tenant_value = claims.get(claim_key) if claim_key else None
    tenant_id = str(tenant_value).strip() if tenant_value is not None else ""
    if tenant_id:
        return tenant_id

    if INTAKE_REQUIRE_TENANT_CLAIM:
        raise HTTPException(
            status_code=401, detail=f"Token missing required tenant claim: {claim_key}"
        )

    return TENANT_ID
