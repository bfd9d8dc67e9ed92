"""In-memory PDF operations: page counting and page-span extraction.

All functions are synchronous and side-effect free. Callers in async code
should run them with ``asyncio.to_thread``.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager

import fitz  # PyMuPDF

from .exceptions import InvalidPageRangeError, InvalidPDFError, PDFReadError

logger = logging.getLogger(__name__)


@contextmanager
def open_pdf_bytes(pdf_bytes: bytes) -> Generator[fitz.Document, None, None]:
    """Context manager for safe PDF handling of in-memory documents.

    Yields:
        Opened PDF document

    Raises:
        InvalidPDFError: If the bytes are not a readable PDF or it has no pages
        PDFReadError: If the document cannot be opened for another reason
    """
    if not pdf_bytes:
        raise InvalidPDFError("PDF content is empty")

    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except fitz.FileDataError as e:
        raise InvalidPDFError(f"PDF file is corrupted: {e}")
    except Exception as e:
        raise PDFReadError(e)

    try:
        if doc.page_count == 0:
            raise InvalidPDFError("PDF has no pages")
        yield doc
    finally:
        doc.close()


def get_page_count(pdf_bytes: bytes) -> int:
    """Get the total number of pages in an in-memory PDF.

    Raises:
        InvalidPDFError: If PDF is corrupted or empty
        PDFReadError: If PDF cannot be read
    """
    with open_pdf_bytes(pdf_bytes) as doc:
        return len(doc)


def slice_pages(pdf_bytes: bytes, start: int, end: int) -> bytes:
    """Extract pages ``start..end`` (1-based, inclusive) into a new PDF.

    If the span covers the whole document the original bytes are returned.

    Raises:
        InvalidPageRangeError: If the span is empty or outside the document
        InvalidPDFError: If PDF is corrupted or empty
        PDFReadError: If PDF cannot be read
    """
    with open_pdf_bytes(pdf_bytes) as source_doc:
        page_count = len(source_doc)
        if start < 1 or end < start or end > page_count:
            raise InvalidPageRangeError(start, end, page_count)

        if start == 1 and end == page_count:
            return pdf_bytes

        new_doc = fitz.open()
        try:
            new_doc.insert_pdf(source_doc, from_page=start - 1, to_page=end - 1)
            logger.debug(f"[PDF] Sliced pages {start}-{end} of {page_count}")
            return new_doc.tobytes()
        finally:
            new_doc.close()
