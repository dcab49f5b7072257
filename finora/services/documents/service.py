"""Document upload, listing and deletion for a user."""

from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import Optional

from finora.core.data_helpers import run_in_executor
from finora.core.exceptions import BadRequestError, NotFoundError
from finora.core.logging import get_logger
from finora.repositories.documents import DocumentRepository
from finora.schemas.documents import (
    DocumentCategory,
    DocumentRecord,
    DocumentUploadAck,
    ProcessingStatus,
)
from finora.services.documents.extraction import ALLOWED_MIME_TYPES, file_type_for_mime
from finora.services.documents.pipeline import DocumentWorker

logger = get_logger("services.documents")

DEFAULT_MAX_UPLOAD_BYTES = 25 * 1024 * 1024


def _write_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


def _remove_file(path: Path) -> None:
    path.unlink(missing_ok=True)


class DocumentService:
    def __init__(
        self,
        documents: DocumentRepository,
        worker: DocumentWorker,
        upload_dir: str | Path = "uploads",
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ):
        self.documents = documents
        self.worker = worker
        self.upload_dir = Path(upload_dir)
        self.max_upload_bytes = max_upload_bytes

    async def upload(
        self,
        user_id: str,
        file_name: str,
        mime_type: str,
        content: bytes,
        category: DocumentCategory = DocumentCategory.OTHER,
    ) -> DocumentUploadAck:
        """Store the file, create the UPLOADED record and enqueue processing."""
        if mime_type not in ALLOWED_MIME_TYPES:
            raise BadRequestError(
                message="Invalid file type. Only PDF, Excel, CSV, and images are allowed.",
                error_code="INVALID_FILE_TYPE",
            )
        if not content:
            raise BadRequestError(message="No file uploaded")
        if len(content) > self.max_upload_bytes:
            raise BadRequestError(
                message=f"File exceeds the {self.max_upload_bytes // (1024 * 1024)}MB limit",
                error_code="FILE_TOO_LARGE",
                status_code=413,
            )

        safe_name = Path(file_name or "upload").name
        stored_path = self.upload_dir / f"{int(time.time() * 1000)}-{uuid.uuid4()}{Path(safe_name).suffix}"
        await run_in_executor(_write_file, stored_path, content)

        document = DocumentRecord(
            document_id=f"DOC-{uuid.uuid4()}",
            user_id=user_id,
            file_name=safe_name,
            file_type=file_type_for_mime(mime_type),
            mime_type=mime_type,
            file_size=len(content),
            file_path=str(stored_path),
            category=category,
            processing_status=ProcessingStatus.UPLOADED,
        )
        await self.documents.save(document)
        self.worker.submit(document.document_id)

        logger.info(
            f"Document uploaded: {document.document_id}",
            extra={"user_id": user_id, "file_type": document.file_type.value, "file_size": document.file_size},
        )
        return DocumentUploadAck(
            document_id=document.document_id,
            file_name=document.file_name,
            file_type=document.file_type,
            category=document.category,
            file_size=document.file_size,
            processing_status=document.processing_status,
        )

    async def list_documents(
        self,
        user_id: str,
        category: Optional[DocumentCategory] = None,
        status: Optional[ProcessingStatus] = None,
    ) -> list[DocumentRecord]:
        return await self.documents.list_for_user(user_id, category=category, status=status)

    async def get_document(self, user_id: str, document_id: str) -> DocumentRecord:
        """Owner-only lookup; another user's document reads as missing."""
        document = await self.documents.get(document_id)
        if document is None or document.user_id != user_id:
            raise NotFoundError(message="Document not found")
        return document

    async def delete_document(self, user_id: str, document_id: str) -> None:
        document = await self.get_document(user_id, document_id)
        try:
            await run_in_executor(_remove_file, Path(document.file_path))
        except OSError as e:
            logger.warning(f"Could not remove stored file for {document_id}: {e}")
        await self.documents.delete(document_id)
        logger.info(f"Document deleted: {document_id}")
