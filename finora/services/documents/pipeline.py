"""
Background document pipeline.

Each stage persists the document status before it starts, so the stored
record is the only coordination point between the upload request, the worker
tasks and a restarted process:

    UPLOADED -> EXTRACTING -> EXTRACTED -> ANALYZING -> COMPLETED

Any in-progress status can move to FAILED.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from finora.core.logging import get_logger
from finora.repositories.documents import DocumentRepository
from finora.schemas.documents import DocumentRecord, ProcessingStatus
from finora.services.documents.analysis import MAX_TEXT_CHARS, analyze_extracted_text
from finora.services.documents.extraction import TextExtractor
from finora.services.llm.client import LLMClient

logger = get_logger("services.documents.pipeline")

RESUMABLE_STATUSES = (ProcessingStatus.EXTRACTED, ProcessingStatus.ANALYZING)
RECOVERABLE_STATUSES = (
    ProcessingStatus.UPLOADED,
    ProcessingStatus.EXTRACTING,
    ProcessingStatus.EXTRACTED,
    ProcessingStatus.ANALYZING,
)


class DocumentDeleted(Exception):
    """The document record was removed while it was being processed."""


class DocumentPipeline:
    def __init__(
        self,
        documents: DocumentRepository,
        llm: LLMClient,
        extractor: TextExtractor | None = None,
        max_text_chars: int = MAX_TEXT_CHARS,
    ):
        self.documents = documents
        self.llm = llm
        self.extractor = extractor or TextExtractor()
        self.max_text_chars = max_text_chars

    async def _set_status(self, document: DocumentRecord, status: ProcessingStatus) -> None:
        # A document deleted mid-pipeline must not be written back
        if await self.documents.get(document.document_id) is None:
            raise DocumentDeleted(document.document_id)
        document.processing_status = status
        await self.documents.save(document)
        logger.debug(f"Document {document.document_id} -> {status.value}")

    async def process(self, document_id: str) -> Optional[DocumentRecord]:
        """Run (or resume) processing for one document. Never raises."""
        document = await self.documents.get(document_id)
        if document is None:
            logger.warning(f"Document {document_id} vanished before processing")
            return None
        if not document.processing_status.in_progress:
            return document

        try:
            text = None
            if document.processing_status in RESUMABLE_STATUSES:
                text = await self.documents.get_text(document_id)
                if text is not None:
                    logger.info(f"Resuming document {document_id} at analysis")

            if text is None:
                await self._set_status(document, ProcessingStatus.EXTRACTING)
                text = await self.extractor.extract(document.file_path, document.file_type)
                await self.documents.save_text(document_id, text)
                await self._set_status(document, ProcessingStatus.EXTRACTED)

            await self._set_status(document, ProcessingStatus.ANALYZING)
            document.analysis = await analyze_extracted_text(
                self.llm, text, document.category, self.max_text_chars
            )
            document.processing_error = None
            await self._set_status(document, ProcessingStatus.COMPLETED)
            logger.info(f"Document {document_id} processed", extra={"category": document.category.value})
        except DocumentDeleted:
            logger.info(f"Document {document_id} deleted during processing")
            await self.documents.delete(document_id)
            return None
        except Exception as e:
            logger.error(f"Document {document_id} processing failed: {e}", exc_info=True)
            document.processing_error = str(e)
            try:
                await self._set_status(document, ProcessingStatus.FAILED)
            except DocumentDeleted:
                return None
        return document


class DocumentWorker:
    """asyncio.Queue of document ids drained by N worker tasks."""

    def __init__(self, pipeline: DocumentPipeline, concurrency: int = 1):
        self.pipeline = pipeline
        self.concurrency = max(1, concurrency)
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def submit(self, document_id: str) -> None:
        self._queue.put_nowait(document_id)

    def start(self) -> None:
        if self._tasks:
            logger.warning("Document worker already running")
            return
        self._tasks = [
            asyncio.create_task(self._run(i), name=f"document-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.info(f"Started {self.concurrency} document worker(s)")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Stopped document workers")

    async def recover(self) -> int:
        """Re-enqueue documents a previous process left mid-pipeline."""
        pending = await self.pipeline.documents.list_by_status(RECOVERABLE_STATUSES)
        for document in pending:
            self.submit(document.document_id)
        if pending:
            logger.info(f"Re-enqueued {len(pending)} unfinished document(s)")
        return len(pending)

    async def join(self) -> None:
        """Wait until every submitted document has been processed."""
        await self._queue.join()

    async def _run(self, index: int) -> None:
        while True:
            document_id = await self._queue.get()
            try:
                await self.pipeline.process(document_id)
            except Exception as e:
                # process() records failures itself; this guards store outages
                logger.error(f"Worker {index} failed on {document_id}: {e}", exc_info=True)
            finally:
                self._queue.task_done()
