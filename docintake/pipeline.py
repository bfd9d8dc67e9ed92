"""Document intake pipeline: upload → extraction → normalization → report."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from docintake.config import Settings
from docintake.core.aggregator import build_report_from_payload
from docintake.core.catalog import CatalogProvider
from docintake.core.exceptions import PDFProcessingError, UnsupportedMediaTypeError
from docintake.core.models import AggregatedReport, DocumentFile, NormalizedDocument
from docintake.core.normalizer import normalize_extraction
from docintake.core.pdf_utils import slice_pages
from docintake.core.security import (
    MIME_EXTENSIONS,
    PDF_MIME_TYPE,
    document_filename,
    guess_mime_type,
    validate_upload,
)
from docintake.extraction.gemini_client import GeminiExtractor

logger = logging.getLogger(__name__)


class DocumentIntakePipeline:
    """Ties upload validation, extraction, normalization and reporting together.

    One catalog snapshot is taken per operation and used throughout it.
    """

    def __init__(
        self,
        settings: Settings,
        catalog_provider: Optional[CatalogProvider] = None,
        extractor: Optional[GeminiExtractor] = None
    ):
        self.settings = settings
        self.catalog_provider = catalog_provider or CatalogProvider.from_settings(settings)
        self.extractor = extractor or GeminiExtractor(settings, self.catalog_provider)

    async def process(
        self,
        document_bytes: bytes,
        mime_type: str,
        doctype_hint: Optional[str] = None,
        file_name: Optional[str] = None
    ) -> list[NormalizedDocument]:
        """Validate one upload, extract it and normalize the result.

        Raises:
            UploadError: If the upload is rejected
            APIError: If the extraction call fails after retries
            ExtractionParseError: If the model response holds no JSON object
        """
        mime_type = validate_upload(document_bytes, mime_type, self.settings.max_upload_mb, file_name)
        label = file_name or "upload"

        catalog = self.catalog_provider.snapshot()
        logger.info(f"[PIPELINE] {label} - Extracting ({doctype_hint or 'auto-detect'})")
        raw = await self.extractor.extract(document_bytes, mime_type, doctype_hint, catalog=catalog)

        if doctype_hint and doctype_hint not in catalog:
            logger.warning(f"[PIPELINE] {label} - Requested document type '{doctype_hint}' is not in the catalog")

        documents = normalize_extraction(raw, catalog, doctype_hint)
        logger.info(f"[PIPELINE] {label} - {len(documents)} document(s) recognized")
        return documents

    async def process_file(self, path: Path | str, doctype_hint: Optional[str] = None) -> list[NormalizedDocument]:
        """Read a local file and run `process` on it."""
        path = Path(path)
        mime_type = guess_mime_type(path)
        if mime_type is None:
            raise UnsupportedMediaTypeError(path.suffix or "unknown", path.name)

        document_bytes = await asyncio.to_thread(path.read_bytes)
        return await self.process(document_bytes, mime_type, doctype_hint, path.name)

    def build_report(self, payload: Any) -> AggregatedReport:
        """Build the consolidated report for a ``{"documents": [...]}`` body.

        Raises:
            InvalidReportInputError: If the body does not hold a list of documents
        """
        return build_report_from_payload(payload, self.catalog_provider.snapshot())

    def split_files(
        self,
        document_bytes: bytes,
        mime_type: str,
        documents: Sequence[NormalizedDocument]
    ) -> list[DocumentFile]:
        """Cut one file per recognized document out of the upload.

        PDFs are sliced along each document's page span. Documents without a
        span get no file, nor do those whose span falls outside the PDF or whose
        PDF cannot be read. An image is returned whole for every document found
        in it. Runs synchronously; async callers use ``asyncio.to_thread``.
        """
        mime_type = mime_type.lower()
        files = []

        for document in documents:
            if mime_type == PDF_MIME_TYPE:
                page_range = document.page_range
                if page_range is None:
                    continue
                try:
                    content = slice_pages(document_bytes, page_range.start, page_range.end)
                except PDFProcessingError as e:
                    logger.warning(f"[PIPELINE] {document.doc_type_id} - Skipping file: {e.message}")
                    continue
                extension = "pdf"
            elif mime_type.startswith("image/"):
                content = document_bytes
                page_range = None
                extension = MIME_EXTENSIONS.get(mime_type, mime_type.split("/", 1)[1])
            else:
                continue

            files.append(DocumentFile(
                doc_type_id=document.doc_type_id,
                filename=document_filename(document.doc_type_id, document.doc_date, extension),
                mime_type=mime_type,
                content=content,
                page_range=page_range,
            ))

        return files
