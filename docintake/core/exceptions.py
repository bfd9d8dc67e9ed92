"""Exception hierarchy for document intake processing."""

from pathlib import Path
from typing import Any, Optional


class DocIntakeError(Exception):
    """Base exception for all document intake errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidReportInputError(DocIntakeError):
    """Raised when the report builder input is not a list of document records."""

    def __init__(self, reason: str, received_type: Optional[str] = None) -> None:
        self.reason = reason
        self.received_type = received_type

        details = {"reason": reason}
        if received_type:
            details["received_type"] = received_type

        super().__init__(f"Invalid report input: {reason}", details)


class ExtractionParseError(DocIntakeError):
    """Raised when the extraction model returns text that is not a usable JSON object."""

    def __init__(
        self,
        raw_text: str,
        reason: str = "response is not valid JSON",
        parsing_error: Optional[Exception] = None
    ) -> None:
        self.raw_text = raw_text
        self.reason = reason
        self.parsing_error = parsing_error

        message = f"Failed to parse extraction response ({reason}): {raw_text}"
        details = {"reason": reason, "raw_text": raw_text}
        if parsing_error:
            details["parsing_error"] = str(parsing_error)

        super().__init__(message, details)


class ExtractionError(DocIntakeError):
    """Base class for extraction collaborator errors."""

    def __init__(
        self,
        message: str,
        doctype_hint: Optional[str] = None,
        model_used: Optional[str] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        self.doctype_hint = doctype_hint
        self.model_used = model_used
        self.original_error = original_error

        full_message = f"Extraction failed: {message}"
        if doctype_hint:
            full_message += f" (Document type: {doctype_hint})"
        if model_used:
            full_message += f" (Model: {model_used})"
        if original_error:
            full_message += f" (Original error: {original_error})"

        details = {}
        if doctype_hint:
            details["doctype_hint"] = doctype_hint
        if model_used:
            details["model_used"] = model_used

        super().__init__(full_message, details)


class APIError(ExtractionError):
    """Raised when calls to the Gemini API fail."""

    def __init__(
        self,
        api_error: Exception,
        model_used: Optional[str] = None,
        retry_count: int = 0,
        doctype_hint: Optional[str] = None
    ) -> None:
        message = f"API call failed after {retry_count} attempts"
        super().__init__(message, doctype_hint, model_used, api_error)
        self.retry_count = retry_count


class UploadError(DocIntakeError):
    """Base class for rejected uploads."""

    def __init__(self, message: str, file_name: Optional[str] = None, details: Optional[dict[str, Any]] = None) -> None:
        self.file_name = file_name
        details = dict(details or {})
        if file_name:
            details["file_name"] = file_name
        super().__init__(message, details)


class UnsupportedMediaTypeError(UploadError):
    """Raised when an upload is neither an image nor a PDF."""

    def __init__(self, mime_type: str, file_name: Optional[str] = None) -> None:
        self.mime_type = mime_type
        super().__init__(
            f"Unsupported media type '{mime_type}': images and PDFs only",
            file_name,
            {"mime_type": mime_type}
        )


class FileTooLargeError(UploadError):
    """Raised when an upload exceeds the maximum allowed size."""

    def __init__(self, size_mb: float, max_size_mb: float, file_name: Optional[str] = None) -> None:
        self.size_mb = size_mb
        self.max_size_mb = max_size_mb
        super().__init__(
            f"File size ({size_mb:.1f}MB) exceeds maximum allowed size ({max_size_mb}MB)",
            file_name,
            {"size_mb": size_mb, "max_size_mb": max_size_mb}
        )


class PDFProcessingError(DocIntakeError):
    """Base class for PDF processing related errors."""

    def __init__(
        self,
        message: str,
        file_path: Optional[Path | str] = None,
        original_error: Optional[Exception] = None,
        details: Optional[dict[str, Any]] = None
    ) -> None:
        self.file_path = Path(file_path) if file_path else None
        self.original_error = original_error

        target = str(self.file_path) if self.file_path else "in-memory document"
        full_message = f"PDF processing failed for {target}: {message}"
        if original_error:
            full_message += f" (Original error: {original_error})"

        super().__init__(full_message, details)


class InvalidPDFError(PDFProcessingError):
    """Raised when a PDF is corrupted or has no pages."""

    def __init__(self, reason: str = "PDF file is corrupted or invalid", file_path: Optional[Path | str] = None) -> None:
        super().__init__(reason, file_path)


class PDFReadError(PDFProcessingError):
    """Raised when a PDF cannot be read."""

    def __init__(self, original_error: Exception, file_path: Optional[Path | str] = None) -> None:
        super().__init__("Unable to read PDF file", file_path, original_error)


class InvalidPageRangeError(PDFProcessingError):
    """Raised when a page span falls outside the document."""

    def __init__(self, start: int, end: int, page_count: int) -> None:
        self.start = start
        self.end = end
        self.page_count = page_count
        super().__init__(
            f"Page range {start}-{end} is outside the document (1-{page_count})",
            details={"start": start, "end": end, "page_count": page_count}
        )


class SchemaCatalogError(DocIntakeError):
    """Raised when the document-type catalog cannot be loaded or is inconsistent."""

    def __init__(self, message: str, source: Optional[str] = None, original_error: Optional[Exception] = None) -> None:
        self.source = source
        self.original_error = original_error

        full_message = f"Schema catalog error: {message}"
        if source:
            full_message += f" (Source: {source})"
        if original_error:
            full_message += f" (Original error: {original_error})"

        super().__init__(full_message, {"source": source} if source else None)


class ConfigurationError(DocIntakeError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, setting_name: str, issue: str) -> None:
        message = f"Configuration error for '{setting_name}': {issue}"
        super().__init__(message, {"setting_name": setting_name, "issue": issue})
        self.setting_name = setting_name
        self.issue = issue


__all__ = [
    "DocIntakeError",
    "InvalidReportInputError",
    "ExtractionParseError",
    "ExtractionError",
    "APIError",
    "UploadError",
    "UnsupportedMediaTypeError",
    "FileTooLargeError",
    "PDFProcessingError",
    "InvalidPDFError",
    "PDFReadError",
    "InvalidPageRangeError",
    "SchemaCatalogError",
    "ConfigurationError",
]
