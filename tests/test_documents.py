"""
Tests for document extraction, analysis, the processing pipeline and uploads.
"""

from pathlib import Path

import pandas as pd
import pytest

from finora.core.exceptions import BadRequestError, LLMError, NotFoundError
from finora.repositories.documents import DocumentRepository
from finora.schemas.documents import (
    DocumentCategory,
    DocumentRecord,
    FileType,
    ProcessingStatus,
)
from finora.services.documents import (
    DocumentPipeline,
    DocumentService,
    DocumentWorker,
    ExtractionError,
    TextExtractor,
    build_document_prompt,
    parse_document_response,
)
from finora.services.documents.extraction import IMAGE_PLACEHOLDER, file_type_for_mime
from finora.services.llm.config import TaskType

from tests.conftest import FakeLLM


CSV_BODY = "date,description,amount\n2024-01-02,Coffee,-4.50\n2024-01-03,Salary,3000\n"


def write_csv(tmp_path: Path) -> Path:
    path = tmp_path / "statement.csv"
    path.write_text(CSV_BODY)
    return path


async def create_document(repo, path: Path, file_type=FileType.CSV, status=ProcessingStatus.UPLOADED, user_id="user-1"):
    document = DocumentRecord(
        document_id="DOC-1",
        user_id=user_id,
        file_name=path.name,
        file_type=file_type,
        mime_type="text/csv",
        file_size=len(CSV_BODY),
        file_path=str(path),
        category=DocumentCategory.BANK_STATEMENT,
        processing_status=status,
    )
    await repo.save(document)
    return document


class RecordingRepository(DocumentRepository):
    """Remembers every status written, in order."""

    def __init__(self, store):
        super().__init__(store)
        self.statuses = []

    async def save(self, document):
        self.statuses.append(document.processing_status)
        return await super().save(document)


# =============================================================================
# Extraction
# =============================================================================


class TestExtraction:
    @pytest.mark.parametrize(
        "mime, expected",
        [
            ("application/pdf", FileType.PDF),
            ("application/vnd.ms-excel", FileType.EXCEL),
            ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", FileType.EXCEL),
            ("text/csv", FileType.CSV),
            ("image/png", FileType.IMAGE),
            ("application/zip", FileType.OTHER),
        ],
    )
    def test_file_type_for_mime(self, mime, expected):
        assert file_type_for_mime(mime) == expected

    def test_csv_rows_comma_joined_without_header(self, tmp_path):
        text = TextExtractor().extract_sync(write_csv(tmp_path), FileType.CSV)
        assert text == "2024-01-02, Coffee, -4.50\n2024-01-03, Salary, 3000"

    def test_excel_sheet_blocks(self, tmp_path):
        path = tmp_path / "book.xlsx"
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            pd.DataFrame({"month": ["Jan"], "spend": [100]}).to_excel(writer, sheet_name="Spending", index=False)
            pd.DataFrame({"item": ["Rent"]}).to_excel(writer, sheet_name="Notes", index=False)

        text = TextExtractor().extract_sync(path, FileType.EXCEL)

        assert "=== Sheet: Spending ===" in text
        assert "Jan,100" in text
        assert text.index("=== Sheet: Spending ===") < text.index("=== Sheet: Notes ===")

    def test_image_placeholder(self, tmp_path):
        assert TextExtractor().extract_sync(tmp_path / "x.png", FileType.IMAGE) == IMAGE_PLACEHOLDER

    def test_unsupported_type(self, tmp_path):
        with pytest.raises(ExtractionError):
            TextExtractor().extract_sync(tmp_path / "x.bin", FileType.OTHER)

    def test_unreadable_file_wrapped(self, tmp_path):
        with pytest.raises(ExtractionError) as exc_info:
            TextExtractor().extract_sync(tmp_path / "missing.csv", FileType.CSV)
        assert "Failed to extract text" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_async_extract_runs_in_executor(self, tmp_path):
        text = await TextExtractor().extract(write_csv(tmp_path), FileType.CSV)
        assert text.startswith("2024-01-02")


# =============================================================================
# Analysis prompt and parsing
# =============================================================================


class TestDocumentPrompt:
    def test_category_templates(self):
        assert "bank statement" in build_document_prompt("x", DocumentCategory.BANK_STATEMENT)
        assert "totalIncome" in build_document_prompt("x", DocumentCategory.BANK_STATEMENT)
        assert "competitivePosition" in build_document_prompt("x", DocumentCategory.COMPANY_REPORT)
        generic = build_document_prompt("x", DocumentCategory.TAX_DOCUMENT)
        assert "financial document" in generic
        assert "totalIncome" not in generic

    def test_text_truncated(self):
        prompt = build_document_prompt("a" * 20_000 + "TAIL", DocumentCategory.OTHER)
        assert "a" * 15_000 in prompt
        assert "a" * 15_001 not in prompt
        assert "TAIL" not in prompt


class TestParseDocumentResponse:
    def test_camel_case_keys_mapped(self):
        fields = parse_document_response(
            '```json\n{"summary": "ok", "keyFindings": ["a"], "financialMetrics": {"totalIncome": 3000},'
            ' "chartData": {"monthlySpending": {"labels": ["Jan"], "values": [1]}}, "risks": ["r"]}\n```'
        )
        assert fields["summary"] == "ok"
        assert fields["key_findings"] == ["a"]
        assert fields["financial_metrics"] == {"totalIncome": 3000}
        assert "monthlySpending" in fields["chart_data"]
        assert fields["risks"] == ["r"]
        assert fields["opportunities"] == []

    def test_fallback(self):
        assert parse_document_response("not json") == {
            "summary": "not json",
            "key_findings": [],
            "financial_metrics": {},
            "insights": {},
            "chart_data": {},
            "risks": [],
            "opportunities": [],
        }


# =============================================================================
# Pipeline
# =============================================================================


class TestDocumentPipeline:
    @pytest.mark.asyncio
    async def test_happy_path_status_sequence(self, store, llm, tmp_path):
        repo = RecordingRepository(store)
        await create_document(repo, write_csv(tmp_path))
        repo.statuses.clear()

        document = await DocumentPipeline(repo, llm).process("DOC-1")

        assert repo.statuses == [
            ProcessingStatus.EXTRACTING,
            ProcessingStatus.EXTRACTED,
            ProcessingStatus.ANALYZING,
            ProcessingStatus.COMPLETED,
        ]
        assert document.analysis.summary == "Statement summary"
        assert document.analysis.llm_model == "fake-model"
        assert await repo.get_text("DOC-1") == "2024-01-02, Coffee, -4.50\n2024-01-03, Salary, 3000"
        assert "Coffee" in llm.calls_for(TaskType.DOCUMENT)[0]

    @pytest.mark.asyncio
    async def test_extraction_failure_marks_failed(self, store, llm, tmp_path):
        repo = DocumentRepository(store)
        await create_document(repo, tmp_path / "missing.csv")

        await DocumentPipeline(repo, llm).process("DOC-1")

        stored = await repo.get("DOC-1")
        assert stored.processing_status == ProcessingStatus.FAILED
        assert "Failed to extract text" in stored.processing_error
        assert llm.calls_for(TaskType.DOCUMENT) == []

    @pytest.mark.asyncio
    async def test_llm_failure_marks_failed_after_extraction(self, store, tmp_path):
        repo = DocumentRepository(store)
        await create_document(repo, write_csv(tmp_path))
        llm = FakeLLM({TaskType.DOCUMENT: LLMError(message="LLM down")})

        await DocumentPipeline(repo, llm).process("DOC-1")

        stored = await repo.get("DOC-1")
        assert stored.processing_status == ProcessingStatus.FAILED
        assert stored.processing_error == "LLM down"
        assert await repo.get_text("DOC-1") is not None

    @pytest.mark.asyncio
    async def test_resumes_at_analysis_with_stored_text(self, store, llm, tmp_path):
        repo = RecordingRepository(store)
        # File is gone; the stored text is all that is needed
        await create_document(repo, tmp_path / "gone.csv", status=ProcessingStatus.ANALYZING)
        await repo.save_text("DOC-1", "previously extracted text")
        repo.statuses.clear()

        document = await DocumentPipeline(repo, llm).process("DOC-1")

        assert document.processing_status == ProcessingStatus.COMPLETED
        assert repo.statuses == [ProcessingStatus.ANALYZING, ProcessingStatus.COMPLETED]
        assert "previously extracted text" in llm.calls_for(TaskType.DOCUMENT)[0]

    @pytest.mark.asyncio
    async def test_finished_documents_left_alone(self, store, llm, tmp_path):
        repo = DocumentRepository(store)
        await create_document(repo, write_csv(tmp_path), status=ProcessingStatus.COMPLETED)

        await DocumentPipeline(repo, llm).process("DOC-1")

        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_deleted_mid_analysis_not_written_back(self, store, tmp_path):
        repo = DocumentRepository(store)
        await create_document(repo, write_csv(tmp_path))

        class DeletingLLM(FakeLLM):
            async def complete(self, prompt, task, system=None):
                await repo.delete("DOC-1")
                return await super().complete(prompt, task, system)

        llm = DeletingLLM({TaskType.DOCUMENT: '{"summary": "late"}'})

        assert await DocumentPipeline(repo, llm).process("DOC-1") is None
        assert await repo.get("DOC-1") is None

    @pytest.mark.asyncio
    async def test_missing_document(self, store, llm):
        assert await DocumentPipeline(DocumentRepository(store), llm).process("DOC-nope") is None


class TestDocumentWorker:
    @pytest.mark.asyncio
    async def test_submitted_documents_processed(self, store, llm, tmp_path):
        repo = DocumentRepository(store)
        await create_document(repo, write_csv(tmp_path))
        worker = DocumentWorker(DocumentPipeline(repo, llm), concurrency=2)

        worker.start()
        worker.submit("DOC-1")
        await worker.join()
        await worker.stop()

        assert (await repo.get("DOC-1")).processing_status == ProcessingStatus.COMPLETED
        assert worker.running is False

    @pytest.mark.asyncio
    async def test_recover_requeues_unfinished(self, store, llm, tmp_path):
        repo = DocumentRepository(store)
        await create_document(repo, write_csv(tmp_path), status=ProcessingStatus.EXTRACTING)
        worker = DocumentWorker(DocumentPipeline(repo, llm))

        assert await worker.recover() == 1
        worker.start()
        await worker.join()
        await worker.stop()

        assert (await repo.get("DOC-1")).processing_status == ProcessingStatus.COMPLETED


# =============================================================================
# Upload service
# =============================================================================


def make_service(store, llm, tmp_path, **kwargs):
    repo = DocumentRepository(store)
    worker = DocumentWorker(DocumentPipeline(repo, llm))
    return DocumentService(repo, worker, upload_dir=tmp_path / "uploads", **kwargs), repo, worker


class TestDocumentService:
    @pytest.mark.asyncio
    async def test_upload_stores_file_and_enqueues(self, store, llm, tmp_path):
        service, repo, worker = make_service(store, llm, tmp_path)

        ack = await service.upload("user-1", "statement.csv", "text/csv", CSV_BODY.encode(), DocumentCategory.BANK_STATEMENT)

        assert ack.document_id.startswith("DOC-")
        assert ack.file_type == FileType.CSV
        assert ack.processing_status == ProcessingStatus.UPLOADED

        stored = await repo.get(ack.document_id)
        assert Path(stored.file_path).read_text() == CSV_BODY
        assert stored.file_path.endswith(".csv")

        worker.start()
        await worker.join()
        await worker.stop()
        assert (await repo.get(ack.document_id)).processing_status == ProcessingStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_rejects_bad_mime_type(self, store, llm, tmp_path):
        service, _, _ = make_service(store, llm, tmp_path)
        with pytest.raises(BadRequestError) as exc_info:
            await service.upload("user-1", "x.zip", "application/zip", b"PK")
        assert exc_info.value.error_code == "INVALID_FILE_TYPE"

    @pytest.mark.asyncio
    async def test_rejects_oversized_file(self, store, llm, tmp_path):
        service, _, _ = make_service(store, llm, tmp_path, max_upload_bytes=10)
        with pytest.raises(BadRequestError) as exc_info:
            await service.upload("user-1", "x.csv", "text/csv", b"a" * 11)
        assert exc_info.value.status_code == 413

    @pytest.mark.asyncio
    async def test_owner_only_access_and_delete(self, store, llm, tmp_path):
        service, repo, _ = make_service(store, llm, tmp_path)
        ack = await service.upload("user-1", "s.csv", "text/csv", CSV_BODY.encode())
        await repo.save_text(ack.document_id, "text")
        path = Path((await repo.get(ack.document_id)).file_path)

        with pytest.raises(NotFoundError):
            await service.get_document("someone-else", ack.document_id)
        with pytest.raises(NotFoundError):
            await service.delete_document("someone-else", ack.document_id)

        await service.delete_document("user-1", ack.document_id)

        assert not path.exists()
        assert await repo.get(ack.document_id) is None
        assert await repo.get_text(ack.document_id) is None

    @pytest.mark.asyncio
    async def test_list_filters(self, store, llm, tmp_path):
        service, repo, _ = make_service(store, llm, tmp_path)
        await service.upload("user-1", "a.csv", "text/csv", b"h\n1", DocumentCategory.BANK_STATEMENT)
        await service.upload("user-1", "b.csv", "text/csv", b"h\n1", DocumentCategory.COMPANY_REPORT)
        await service.upload("user-2", "c.csv", "text/csv", b"h\n1", DocumentCategory.BANK_STATEMENT)

        mine = await service.list_documents("user-1")
        statements = await service.list_documents("user-1", category=DocumentCategory.BANK_STATEMENT)
        completed = await service.list_documents("user-1", status=ProcessingStatus.COMPLETED)

        assert sorted(d.file_name for d in mine) == ["a.csv", "b.csv"]
        assert [d.file_name for d in statements] == ["a.csv"]
        assert completed == []
