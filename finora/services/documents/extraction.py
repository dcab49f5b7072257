"""
Text extraction for uploaded documents.

PDF pages are read with pdfplumber and Excel workbooks with pandas (openpyxl
engine). CSV rows go through the csv module. Images get placeholder text
until OCR exists. All readers are blocking, so callers go through
``TextExtractor.extract`` which runs them in the default thread pool.
"""

from __future__ import annotations

import csv
from pathlib import Path

import pandas as pd
import pdfplumber

from finora.core.data_helpers import run_in_executor
from finora.core.exceptions import AppException
from finora.core.logging import get_logger
from finora.schemas.documents import FileType

logger = get_logger("services.documents.extraction")

IMAGE_PLACEHOLDER = "Image file uploaded. OCR extraction not yet implemented."

ALLOWED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/csv",
        "image/jpeg",
        "image/png",
        "image/jpg",
    }
)


class ExtractionError(AppException):
    """Text could not be extracted from a document."""

    status_code = 422
    error_code = "EXTRACTION_FAILED"
    message = "Failed to extract text from document"


def file_type_for_mime(mime_type: str) -> FileType:
    """Map an upload mime type onto the stored FileType."""
    mime = (mime_type or "").lower()
    if mime == "application/pdf":
        return FileType.PDF
    if "spreadsheet" in mime or "excel" in mime:
        return FileType.EXCEL
    if mime == "text/csv":
        return FileType.CSV
    if mime.startswith("image/"):
        return FileType.IMAGE
    return FileType.OTHER


def extract_pdf(path: Path) -> str:
    with pdfplumber.open(path) as pdf:
        pages = [page.extract_text() or "" for page in pdf.pages]
    return "\n".join(pages)


def extract_excel(path: Path) -> str:
    sheets = pd.read_excel(path, sheet_name=None, header=None, engine="openpyxl")
    blocks = []
    for name, frame in sheets.items():
        body = frame.to_csv(index=False, header=False).strip()
        blocks.append(f"\n=== Sheet: {name} ===\n{body}\n")
    return "".join(blocks)


def extract_csv(path: Path) -> str:
    with open(path, newline="", encoding="utf-8-sig") as f:
        rows = list(csv.reader(f))
    # First row is the header; one comma-joined line per data row
    return "\n".join(", ".join(row) for row in rows[1:] if row)


class TextExtractor:
    """Dispatch on FileType to the matching blocking reader."""

    def extract_sync(self, path: str | Path, file_type: FileType) -> str:
        path = Path(path)
        try:
            if file_type == FileType.PDF:
                text = extract_pdf(path)
            elif file_type == FileType.EXCEL:
                text = extract_excel(path)
            elif file_type == FileType.CSV:
                text = extract_csv(path)
            elif file_type == FileType.IMAGE:
                logger.warning(f"OCR not available, storing placeholder for {path.name}")
                text = IMAGE_PLACEHOLDER
            else:
                raise ExtractionError(message="Unsupported file type for text extraction")
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(message=f"Failed to extract text from document: {e}") from e

        logger.info(f"Extracted {len(text)} characters from {path.name}", extra={"file_type": file_type.value})
        return text

    async def extract(self, path: str | Path, file_type: FileType) -> str:
        return await run_in_executor(self.extract_sync, path, file_type)
