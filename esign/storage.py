"""
Local Storage Service for Uploads and Generated Documents

Stores uploaded source documents under UPLOADS_DIR with a random
UUID file name, and writes each request's merged PDF next to them as
<request_id>.pdf.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from config import Config
from esign.documents.exceptions import StorageError
from esign.documents.types import DocumentTemplate

logger = logging.getLogger(__name__)

# Content type -> extension
ALLOWED_TYPES = {
    'application/pdf': 'pdf',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document': 'docx',
}
ALLOWED_EXTENSIONS = set(ALLOWED_TYPES.values())

FILE_ID_PATTERN = re.compile(r'^[0-9a-f]{32}$')


@dataclass
class StoredFile:
    file_id: str
    file_name: str
    path: Path


def uploads_dir() -> Path:
    return Path(Config.UPLOADS_DIR)


def _extension_for(filename: str, content_type: Optional[str]) -> str:
    """
    Work out the stored extension from the content type, falling back
    to the file name's extension.
    """
    if content_type in ALLOWED_TYPES:
        return ALLOWED_TYPES[content_type]

    ext = filename.rsplit('.', 1)[1].lower() if '.' in filename else ''
    if not content_type and ext in ALLOWED_EXTENSIONS:
        return ext

    raise StorageError("Invalid file type. Only PDF and DOCX files are allowed.")


def save_upload(filename: str, content: bytes, content_type: Optional[str] = None) -> StoredFile:
    """
    Store an uploaded document.

    Args:
        filename: Original file name (only used for its extension)
        content: File bytes
        content_type: MIME type reported by the client, if any

    Returns:
        StoredFile with the new id, stored file name and path
    """
    if not content:
        raise StorageError("No file provided")

    ext = _extension_for(filename, content_type)
    file_id = uuid.uuid4().hex
    file_name = f"{file_id}.{ext}"

    directory = uploads_dir()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / file_name
    path.write_bytes(content)

    logger.info(f"Stored upload {filename} as {file_name} ({len(content)} bytes)")
    return StoredFile(file_id=file_id, file_name=file_name, path=path)


def resolve_upload(file_id: str) -> Path:
    """Find the stored file for an upload id."""
    if not file_id or not FILE_ID_PATTERN.match(file_id):
        raise StorageError(f"Invalid upload id: {file_id!r}")

    for ext in sorted(ALLOWED_EXTENSIONS):
        path = uploads_dir() / f"{file_id}.{ext}"
        if path.is_file():
            return path

    raise StorageError(f"Uploaded file not found: {file_id}")


def read_upload(file_id: str) -> Tuple[bytes, str]:
    """
    Returns:
        (content, extension) for an uploaded file
    """
    path = resolve_upload(file_id)
    return path.read_bytes(), path.suffix.lstrip('.').lower()


def save_generated_pdf(request_id: str, pdf_bytes: bytes) -> Path:
    directory = uploads_dir()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{request_id}.pdf"
    path.write_bytes(pdf_bytes)
    logger.debug(f"Saved generated PDF {path}")
    return path


def read_template_file(template: DocumentTemplate) -> bytes:
    """Read a template's source document from TEMPLATE_FILES_DIR."""
    base = Path(Config.TEMPLATE_FILES_DIR).resolve()
    path = (base / template.file_path).resolve()
    if base not in path.parents:
        raise StorageError(f"Template file path escapes the template directory: {template.file_path}")
    if not path.is_file():
        raise StorageError(f"Template file not found: {path}")
    return path.read_bytes()
