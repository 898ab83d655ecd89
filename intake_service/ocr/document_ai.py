from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from google.cloud import documentai_v1 as documentai

from intake_service.config import OcrConfig


@dataclass(frozen=True)
class DocAIConfig:
    project: str
    location: str
    processor_id: str

    @classmethod
    def from_ocr_config(cls, cfg: OcrConfig) -> DocAIConfig:
        return cls(
            project=cfg.project or "",
            location=cfg.location or "",
            processor_id=cfg.processor_id or "",
        )

    @property
    def processor_name(self) -> str:
        return f"projects/{self.project}/locations/{self.location}/processors/{self.processor_id}"


class DocumentAIClient:
    """Online Document AI OCR for uploaded statements and receipts."""

    def __init__(
        self,
        *,
        cfg: DocAIConfig,
        doc_client: documentai.DocumentProcessorServiceClient | None = None,
    ) -> None:
        self._cfg = cfg
        self._doc_client = doc_client or documentai.DocumentProcessorServiceClient()

    def ocr_online(self, *, content: bytes, mime_type: str) -> tuple[str, dict[str, Any]]:
        req = documentai.ProcessRequest(
            name=self._cfg.processor_name,
            raw_document=documentai.RawDocument(content=content, mime_type=mime_type),
        )
        resp = self._doc_client.process_document(request=req)
        text = resp.document.text or ""
        meta = {
            "provider": "documentai",
            "mode": "online",
            "mime_type": mime_type,
            "pages": len(resp.document.pages) if resp.document.pages else None,
        }
        return text, meta
