"""Document upload and retrieval routes. All require an authenticated user."""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from finora.api.dependencies import get_container, require_user
from finora.container import ServiceContainer
from finora.core.security import TokenData
from finora.schemas.common import MessageResponse
from finora.schemas.documents import (
    DocumentCategory,
    DocumentListResponse,
    DocumentResponse,
    DocumentUploadResponse,
    ProcessingStatus,
)


router = APIRouter()


@router.post(
    "/upload",
    response_model=DocumentUploadResponse,
    status_code=202,
    summary="Upload a document",
    description="Stores the file and queues extraction and analysis. Poll the document for status.",
)
async def upload_document(
    container: Annotated[ServiceContainer, Depends(get_container)],
    user: Annotated[TokenData, Depends(require_user)],
    file: UploadFile = File(...),
    category: DocumentCategory = Form(default=DocumentCategory.OTHER),
) -> DocumentUploadResponse:
    content = await file.read()
    ack = await container.document_service.upload(
        user.sub,
        file_name=file.filename or "upload",
        mime_type=file.content_type or "",
        content=content,
        category=category,
    )
    return DocumentUploadResponse(data=ack)


@router.get("", response_model=DocumentListResponse, summary="List my documents")
async def list_documents(
    container: Annotated[ServiceContainer, Depends(get_container)],
    user: Annotated[TokenData, Depends(require_user)],
    category: Optional[DocumentCategory] = Query(default=None),
    status: Optional[ProcessingStatus] = Query(default=None),
) -> DocumentListResponse:
    documents = await container.document_service.list_documents(user.sub, category=category, status=status)
    return DocumentListResponse(count=len(documents), data=documents)


@router.get("/{document_id}", response_model=DocumentResponse, summary="Get one document")
async def get_document(
    document_id: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
    user: Annotated[TokenData, Depends(require_user)],
) -> DocumentResponse:
    document = await container.document_service.get_document(user.sub, document_id)
    return DocumentResponse(data=document)


@router.delete("/{document_id}", response_model=MessageResponse, summary="Delete a document")
async def delete_document(
    document_id: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
    user: Annotated[TokenData, Depends(require_user)],
) -> MessageResponse:
    await container.document_service.delete_document(user.sub, document_id)
    return MessageResponse(message="Document deleted successfully")
