"""Uploaded document processing: extraction, LLM analysis and the background pipeline."""

from .analysis import analyze_extracted_text, build_document_prompt, parse_document_response
from .extraction import ExtractionError, TextExtractor
from .pipeline import DocumentPipeline, DocumentWorker
from .service import DocumentService

__all__ = [
    "DocumentPipeline",
    "DocumentService",
    "DocumentWorker",
    "ExtractionError",
    "TextExtractor",
    "analyze_extracted_text",
    "build_document_prompt",
    "parse_document_response",
]
