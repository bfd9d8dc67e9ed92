"""Upload validation and safe file naming."""

import re
from pathlib import Path
from typing import Optional

from .exceptions import FileTooLargeError, UnsupportedMediaTypeError, UploadError

PDF_MIME_TYPE = "application/pdf"
IMAGE_MIME_PREFIX = "image/"
DEFAULT_MAX_UPLOAD_MB = 20.0

EXTENSION_MIME_TYPES = {
    ".pdf": PDF_MIME_TYPE,
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}

MIME_EXTENSIONS = {
    PDF_MIME_TYPE: "pdf",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/heic": "heic",
    "image/heif": "heif",
    "image/gif": "gif",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}


def is_supported_mime_type(mime_type: Optional[str]) -> bool:
    if not mime_type:
        return False
    mime_type = mime_type.lower()
    return mime_type == PDF_MIME_TYPE or mime_type.startswith(IMAGE_MIME_PREFIX)


def guess_mime_type(file_path: str | Path) -> Optional[str]:
    """MIME type for a local file, from its extension."""
    return EXTENSION_MIME_TYPES.get(Path(file_path).suffix.lower())


def validate_upload(
    content: bytes,
    mime_type: Optional[str],
    max_size_mb: float = DEFAULT_MAX_UPLOAD_MB,
    file_name: Optional[str] = None
) -> str:
    """Check that an upload is a non-empty image or PDF within the size limit.

    Args:
        content: Raw file bytes
        mime_type: Declared MIME type of the upload
        max_size_mb: Maximum allowed size in MB
        file_name: Original file name, for error messages

    Returns:
        The normalized (lower-case) MIME type

    Raises:
        UnsupportedMediaTypeError: If the upload is neither an image nor a PDF
        FileTooLargeError: If the upload exceeds `max_size_mb`
        UploadError: If the upload is empty
    """
    if not is_supported_mime_type(mime_type):
        raise UnsupportedMediaTypeError(mime_type or "unknown", file_name)

    if not content:
        raise UploadError("Uploaded file is empty", file_name)

    size_mb = len(content) / (1024 * 1024)
    if size_mb > max_size_mb:
        raise FileTooLargeError(size_mb, max_size_mb, file_name)

    return mime_type.lower()


def sanitize_filename(filename: str, max_length: int = 255) -> str:
    """Sanitize a filename for safe filesystem operations.

    Args:
        filename: Original filename
        max_length: Maximum allowed filename length

    Returns:
        Sanitized filename safe for filesystem operations

    Raises:
        UploadError: If filename cannot be safely sanitized
    """
    if not filename or not filename.strip():
        raise UploadError("Empty filename provided")

    # Keep alphanumeric, dots, hyphens and underscores
    sanitized = re.sub(r"[^a-zA-Z0-9._\-]", "_", filename.strip())

    # Remove multiple consecutive dots (potential traversal)
    sanitized = re.sub(r"\.{2,}", ".", sanitized)
    sanitized = sanitized.strip(". ")

    if len(sanitized) > max_length:
        # Preserve extension if present
        path = Path(sanitized)
        stem = path.stem[:max_length - len(path.suffix)]
        sanitized = f"{stem}{path.suffix}"

    if not sanitized or not sanitized.strip("_"):
        raise UploadError(f"Filename could not be sanitized safely: {filename!r}")

    return sanitized


def document_filename(doc_type_id: str, doc_date: Optional[str], extension: str = "pdf") -> str:
    """File name for a per-document file: ``{docdate}_{doctype}.{ext}``."""
    date_part = doc_date or "unknown-date"
    return sanitize_filename(f"{date_part}_{doc_type_id}.{extension.lstrip('.')}")
