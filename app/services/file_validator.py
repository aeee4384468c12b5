"""
File validation service for PDF uploads.

Provides security checks including:
- File size limits
- MIME type validation
- Filename sanitization
"""

import re
from pathlib import Path

import magic
from fastapi import HTTPException, UploadFile

from app.models.analysis import UploadedDocument

# Constants
MAX_FILE_SIZE = 50 * 1024 * 1024  # 50MB in bytes
ALLOWED_MIME_TYPE = "application/pdf"


async def read_upload(file: UploadFile, max_size: int = MAX_FILE_SIZE) -> UploadedDocument:
    """
    Read an uploaded file into an UploadedDocument.

    The media type is sniffed from the content, not taken from the client.

    Args:
        file: FastAPI UploadFile instance from multipart/form-data
        max_size: Maximum accepted size in bytes

    Returns:
        UploadedDocument with sniffed media type and sanitized filename

    Raises:
        HTTPException: 400 for an empty file, 413 for file too large
    """
    content = await file.read()

    # Check file not empty
    if len(content) == 0:
        raise HTTPException(status_code=400, detail="File is empty")

    # Check file size
    if len(content) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {max_size // (1024 * 1024)}MB"
        )

    mime_type = magic.from_buffer(content, mime=True)

    return UploadedDocument(
        content=content,
        media_type=mime_type,
        filename=sanitize_filename(file.filename or "upload.pdf"),
    )


async def validate_pdf(file: UploadFile, max_size: int = MAX_FILE_SIZE) -> UploadedDocument:
    """
    Read an upload and require it to be a PDF.

    Raises:
        HTTPException: 400 for validation errors, 413 for file too large
    """
    document = await read_upload(file, max_size)

    if document.media_type != ALLOWED_MIME_TYPE:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Expected {ALLOWED_MIME_TYPE}, got {document.media_type}"
        )

    return document


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent path traversal attacks.

    The extension is kept as supplied so the upload gate can still ignore
    files that are not PDFs.

    Args:
        filename: Original filename from upload

    Returns:
        Sanitized filename safe for logging and display

    Security:
        - Removes directory separators (/, \\)
        - Removes parent directory references (..)
        - Removes null bytes
        - Limits to alphanumeric, dash, underscore, dot
    """
    # Get base filename (remove any path components)
    filename = Path(filename.replace("\\", "/")).name

    # Remove any path traversal attempts
    filename = filename.replace("..", "").replace("/", "").replace("\\", "")

    # Remove null bytes
    filename = filename.replace("\0", "")

    # Keep only safe characters: alphanumeric, dash, underscore, dot
    filename = re.sub(r'[^a-zA-Z0-9._-]', '_', filename)

    # Ensure filename is not empty after sanitization
    if not filename or filename.startswith("."):
        filename = "upload" + filename

    # Limit length (max 255 chars for most filesystems)
    if len(filename) > 255:
        stem, dot, suffix = filename.rpartition(".")
        if dot and len(suffix) < 10:
            filename = stem[: 254 - len(suffix)] + "." + suffix
        else:
            filename = filename[:255]

    return filename
