"""Uploaded document schemas and the processing status machine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from finora.core.data_helpers import utc_now


class FileType(str, Enum):
    PDF = "PDF"
    EXCEL = "EXCEL"
    CSV = "CSV"
    IMAGE = "IMAGE"
    OTHER = "OTHER"


class DocumentCategory(str, Enum):
    BANK_STATEMENT = "BANK_STATEMENT"
    COMPANY_REPORT = "COMPANY_REPORT"
    INCOME_STATEMENT = "INCOME_STATEMENT"
    TAX_DOCUMENT = "TAX_DOCUMENT"
    OTHER = "OTHER"


class ProcessingStatus(str, Enum):
    """UPLOADED -> EXTRACTING -> EXTRACTED -> ANALYZING -> COMPLETED, or FAILED."""

    UPLOADED = "UPLOADED"
    EXTRACTING = "EXTRACTING"
    EXTRACTED = "EXTRACTED"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def in_progress(self) -> bool:
        return self not in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED)


class DocumentAnalysis(BaseModel):
    """Structured findings extracted from a document by the LLM."""

    summary: str = ""
    key_findings: list[str] = Field(default_factory=list)
    financial_metrics: dict[str, Any] = Field(default_factory=dict)
    insights: dict[str, Any] = Field(default_factory=dict)
    chart_data: dict[str, Any] = Field(default_factory=dict)
    risks: list[str] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=utc_now)
    llm_model: str | None = None


class DocumentRecord(BaseModel):
    """Stored document metadata. Extracted text lives in its own collection."""

    document_id: str
    user_id: str
    file_name: str
    file_type: FileType
    mime_type: str
    file_size: int
    file_path: str
    category: DocumentCategory = DocumentCategory.OTHER
    processing_status: ProcessingStatus = ProcessingStatus.UPLOADED
    processing_error: str | None = None
    analysis: DocumentAnalysis | None = None
    uploaded_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class DocumentUploadAck(BaseModel):
    """Immediate acknowledgement returned by an upload."""

    document_id: str
    file_name: str
    file_type: FileType
    category: DocumentCategory
    file_size: int
    processing_status: ProcessingStatus


class DocumentUploadResponse(BaseModel):
    ok: bool = True
    message: str = "Document uploaded successfully. Processing started."
    data: DocumentUploadAck


class DocumentListResponse(BaseModel):
    ok: bool = True
    count: int
    data: list[DocumentRecord]


class DocumentResponse(BaseModel):
    ok: bool = True
    data: DocumentRecord
