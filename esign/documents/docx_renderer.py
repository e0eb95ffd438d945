"""
DOCX Renderer

Fills {{VAR:...}} placeholders inside Word templates and converts the
result to PDF with headless LibreOffice.

Word stores a paragraph as a list of runs and often splits a marker
across several of them ("{{VAR:", "FULL_NAME", "}}"), so substitution
works on the joined paragraph text. A changed paragraph keeps the
formatting of its first run.
"""

import logging
import subprocess
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Iterator, Mapping, Optional

from docx import Document

from config import Config
from .exceptions import RenderError
from .placeholders import replace_placeholders

logger = logging.getLogger(__name__)


def _load(docx_bytes: bytes):
    try:
        return Document(BytesIO(docx_bytes))
    except Exception as e:
        raise RenderError(f"Could not open DOCX document: {e}")


def _table_paragraphs(table) -> Iterator:
    seen = set()
    for row in table.rows:
        for cell in row.cells:
            # Merged cells are returned once per grid position
            if cell._tc in seen:
                continue
            seen.add(cell._tc)
            yield from cell.paragraphs
            for nested in cell.tables:
                yield from _table_paragraphs(nested)


def _container_paragraphs(container) -> Iterator:
    yield from container.paragraphs
    for table in container.tables:
        yield from _table_paragraphs(table)


def _iter_paragraphs(document) -> Iterator:
    """Every paragraph in the body, tables, headers and footers."""
    yield from _container_paragraphs(document)

    seen_parts = set()
    for section in document.sections:
        for part in (
            section.header, section.footer,
            section.first_page_header, section.first_page_footer,
            section.even_page_header, section.even_page_footer,
        ):
            # Linked headers share the previous section's part
            if part.is_linked_to_previous or part.part in seen_parts:
                continue
            seen_parts.add(part.part)
            yield from _container_paragraphs(part)


def extract_docx_text(docx_bytes: bytes) -> str:
    """Plain text of the whole document, one paragraph per line."""
    document = _load(docx_bytes)
    return "\n".join(
        ''.join(run.text for run in paragraph.runs)
        for paragraph in _iter_paragraphs(document)
    )


def render_docx(docx_bytes: bytes, values: Mapping[str, Optional[str]]) -> bytes:
    """
    Substitute placeholder values throughout a DOCX document.

    Args:
        docx_bytes: Template document
        values: Placeholder name -> already formatted value

    Returns:
        The rendered DOCX as bytes
    """
    document = _load(docx_bytes)
    changed = 0

    for paragraph in _iter_paragraphs(document):
        runs = paragraph.runs
        if not runs:
            continue
        original = ''.join(run.text for run in runs)
        if '{{VAR:' not in original:
            continue

        rendered = replace_placeholders(original, values)
        if rendered == original:
            continue

        runs[0].text = rendered
        for run in runs[1:]:
            run.text = ''
        changed += 1

    logger.debug(f"Rendered placeholders in {changed} paragraph(s)")

    output = BytesIO()
    document.save(output)
    return output.getvalue()


def convert_docx_to_pdf(docx_bytes: bytes, soffice_binary: str = None, timeout: int = None) -> bytes:
    """
    Convert a DOCX document to PDF using LibreOffice.

    Runs ``soffice --headless --convert-to pdf`` inside a temporary
    directory that is removed afterwards.
    """
    binary = soffice_binary or Config.SOFFICE_BINARY
    timeout = timeout or Config.SOFFICE_TIMEOUT

    with tempfile.TemporaryDirectory(prefix="esign_docx_") as tmpdir:
        source = Path(tmpdir) / "document.docx"
        source.write_bytes(docx_bytes)
        target = source.with_suffix('.pdf')

        cmd = [binary, "--headless", "--convert-to", "pdf", "--outdir", tmpdir, str(source)]
        logger.debug(f"Converting DOCX to PDF: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, timeout=timeout)
        except FileNotFoundError:
            raise RenderError(
                f"LibreOffice binary '{binary}' not found. "
                f"Install LibreOffice or upload a PDF instead."
            )
        except subprocess.TimeoutExpired:
            raise RenderError(f"DOCX to PDF conversion timed out after {timeout}s")

        if result.returncode != 0:
            stderr = (result.stderr or b'').decode('utf-8', errors='replace').strip()
            raise RenderError(f"DOCX to PDF conversion failed (exit {result.returncode}): {stderr}")

        if not target.exists():
            raise RenderError("DOCX to PDF conversion produced no output")

        return target.read_bytes()
