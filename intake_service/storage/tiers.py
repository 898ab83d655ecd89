"""Storage tier resolver: what a download request for a document turns into.

Decision table, first match wins:

1. deleted                                  -> unavailable (not_found)
2. hot / pending_archive with a hot path    -> redirect to a signed URL
3. archive with an archive path             -> restore required (HTTP 202)
4. anything else                            -> unavailable (not_found), logged

Pending-archive objects still live in the hot bucket until archival finishes,
so they are served like hot ones.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from intake_service.config import SIGNED_URL_TTL_SECONDS
from intake_service.errors import ErrorKind, ProviderError
from intake_service.types import Document, StorageTier

logger = logging.getLogger(__name__)

_SERVED_FROM_HOT = {StorageTier.HOT, StorageTier.PENDING_ARCHIVE}


class SignedUrlSource(Protocol):
    async def signed_url(self, name: str, ttl_seconds: int) -> str: ...


@dataclass(frozen=True)
class Redirect:
    url: str
    ttl_seconds: int
    status: Literal["redirect"] = "redirect"

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "url": self.url, "expiresIn": self.ttl_seconds}


@dataclass(frozen=True)
class RestoreRequired:
    document_id: str
    status: Literal["restore_required"] = "restore_required"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "needsRestore": True,
            "documentId": self.document_id,
            "message": "Document is archived and must be restored before download",
        }


@dataclass(frozen=True)
class Unavailable:
    kind: ErrorKind
    message: str = "Document not available"
    status: Literal["unavailable"] = "unavailable"

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "kind": self.kind.value, "detail": self.message}


DownloadResolution = Redirect | RestoreRequired | Unavailable


async def resolve_download(
    document: Document,
    storage: SignedUrlSource,
    *,
    ttl_seconds: int = SIGNED_URL_TTL_SECONDS,
) -> DownloadResolution:
    if document.is_deleted:
        return Unavailable(ErrorKind.NOT_FOUND)

    if document.storage_tier in _SERVED_FROM_HOT and document.hot_path:
        try:
            url = await storage.signed_url(document.hot_path, ttl_seconds)
        except ProviderError as e:
            logger.warning("Could not sign hot object for document %s: %s", document.id, e)
            return Unavailable(ErrorKind.PROVIDER_ERROR, "Could not create a download link")
        return Redirect(url=url, ttl_seconds=ttl_seconds)

    if document.storage_tier is StorageTier.ARCHIVE and document.archive_path:
        return RestoreRequired(document_id=document.id)

    logger.warning(
        "Document %s has inconsistent storage state: tier=%s hot_path=%s archive_path=%s",
        document.id,
        document.storage_tier.value if document.storage_tier else None,
        bool(document.hot_path),
        bool(document.archive_path),
    )
    return Unavailable(ErrorKind.NOT_FOUND)
