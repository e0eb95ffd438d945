"""
PDF Utilities

Header merging and page checks for generated documents.

Every document sent to DocuSign starts with the organization's standard
cover page: page 1 of the header PDF, followed by every page of the
user document. The header page must never carry a {{DS:...}} anchor,
otherwise DocuSign would place a tab on the cover page.
"""

import hashlib
import logging
from datetime import date
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Sequence

from pypdf import PdfReader, PdfWriter
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

from config import Config
from .exceptions import PdfError
from .placeholders import extract_anchors

logger = logging.getLogger(__name__)

HEADER_RULE_COLOR = HexColor('#1B2A4A')


def _header_path(path=None) -> Path:
    return Path(path or Config.HEADER_PDF_PATH)


def _read(pdf_bytes: bytes) -> PdfReader:
    return PdfReader(BytesIO(pdf_bytes))


def validate_header_pdf(path=None) -> str:
    """
    Check the header PDF exists and parses.

    Returns:
        SHA-256 hex digest of the header file
    """
    header_path = _header_path(path)
    if not header_path.is_file():
        raise PdfError(
            f"Header PDF not found at {header_path}. "
            f"Please ensure the header PDF is in place."
        )

    data = header_path.read_bytes()
    try:
        pages = len(_read(data).pages)
    except Exception as e:
        raise PdfError(f"Header PDF at {header_path} is not a readable PDF: {e}")

    if pages == 0:
        raise PdfError(f"Header PDF at {header_path} has no pages")

    return hashlib.sha256(data).hexdigest()


def merge_header_with_document(document_pdf: bytes, header_pdf_path=None) -> bytes:
    """
    Put the header's first page in front of the document.

    Args:
        document_pdf: The user document as PDF bytes
        header_pdf_path: Override for Config.HEADER_PDF_PATH

    Returns:
        Merged PDF bytes: header page, then every document page in order
    """
    header_path = _header_path(header_pdf_path)
    try:
        header = _read(header_path.read_bytes())
        document = _read(document_pdf)

        writer = PdfWriter()
        writer.add_page(header.pages[0])
        for page in document.pages:
            writer.add_page(page)

        output = BytesIO()
        writer.write(output)
    except Exception as e:
        raise PdfError(f"Failed to merge header with document: {e}")

    merged = output.getvalue()
    logger.debug(f"Merged header with {len(document.pages)} document page(s)")
    return merged


def page_count(pdf_bytes: bytes) -> int:
    try:
        return len(_read(pdf_bytes).pages)
    except Exception as e:
        raise PdfError(f"Could not read PDF: {e}")


def extract_pdf_text(pdf_bytes: bytes, pages: Optional[Sequence[int]] = None) -> List[str]:
    """Text of each requested page (all pages when ``pages`` is None)."""
    try:
        reader = _read(pdf_bytes)
        indexes = range(len(reader.pages)) if pages is None else pages
        return [reader.pages[i].extract_text() or '' for i in indexes]
    except Exception as e:
        raise PdfError(f"Could not extract text from PDF: {e}")


def validate_no_anchors_on_page(pdf_bytes: bytes, page_index: int = 0) -> None:
    """Raise PdfError when the given page carries any {{DS:...}} anchor."""
    text = extract_pdf_text(pdf_bytes, pages=[page_index])[0]
    anchors = extract_anchors(text)
    if anchors:
        raise PdfError(
            f"Page {page_index + 1} must not contain DocuSign anchors, "
            f"found: {', '.join(anchors)}"
        )


def optimize_for_docusign(pdf_bytes: bytes) -> bytes:
    """
    Produce a DocuSign-friendly copy of a PDF.

    Existing form fields and annotations are stripped (DocuSign turns
    them into extra tabs), metadata is not carried over, content streams
    are compressed and identical objects are merged.
    """
    try:
        reader = _read(pdf_bytes)
        writer = PdfWriter()
        for page in reader.pages:
            writer.add_page(page)

        writer.remove_annotations(subtypes=None)
        for page in writer.pages:
            page.compress_content_streams()
        writer.compress_identical_objects(remove_duplicates=True, remove_unreferenced=True)

        output = BytesIO()
        writer.write(output)
    except Exception as e:
        raise PdfError(f"Failed to optimize PDF for DocuSign: {e}")

    optimized = output.getvalue()
    logger.debug(f"Optimized PDF for DocuSign: {len(pdf_bytes)} -> {len(optimized)} bytes")
    return optimized


def render_default_header(path=None, organization_name: str = None, title: str = "Document for Signature") -> Path:
    """
    Draw a one-page cover header.

    Used by init_db.py so a fresh install has a header PDF to merge.
    """
    header_path = _header_path(path)
    header_path.parent.mkdir(parents=True, exist_ok=True)
    organization_name = organization_name or Config.ORGANIZATION_NAME

    width, height = letter
    c = canvas.Canvas(str(header_path), pagesize=letter)
    c.setTitle(f"{organization_name} - {title}")

    c.setFillColor(HEADER_RULE_COLOR)
    c.rect(0, height - 1.4 * inch, width, 1.4 * inch, stroke=0, fill=1)

    c.setFillColor(HexColor('#FFFFFF'))
    c.setFont("Helvetica-Bold", 24)
    c.drawString(0.75 * inch, height - 0.9 * inch, organization_name)

    c.setFillColor(HEADER_RULE_COLOR)
    c.setFont("Helvetica-Bold", 18)
    c.drawString(0.75 * inch, height - 2.4 * inch, title)

    c.setFont("Helvetica", 11)
    c.drawString(0.75 * inch, height - 2.8 * inch, f"Prepared {date.today().strftime('%B %d, %Y')}")
    c.drawString(
        0.75 * inch, height - 3.2 * inch,
        "The following pages contain the document to be reviewed and signed."
    )

    c.setStrokeColor(HEADER_RULE_COLOR)
    c.setLineWidth(1)
    c.line(0.75 * inch, 0.9 * inch, width - 0.75 * inch, 0.9 * inch)
    c.setFont("Helvetica", 9)
    c.drawString(0.75 * inch, 0.65 * inch, f"{organization_name} - Confidential")

    c.showPage()
    c.save()

    logger.info(f"Rendered default header PDF at {header_path}")
    return header_path
