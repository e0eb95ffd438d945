"""
Shared fixtures: in-test PDF / DOCX builders and an isolated workspace.
"""

import shutil
import sys
from io import BytesIO
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from docx import Document  # noqa: E402
from reportlab.lib.pagesizes import letter  # noqa: E402
from reportlab.pdfgen import canvas  # noqa: E402

import models  # noqa: E402
from config import Config  # noqa: E402
from esign.documents.loader import TemplateLoader  # noqa: E402


def build_pdf(pages):
    """
    Build a PDF with one page per entry; each entry is a list of text lines.
    """
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    for lines in pages:
        y = 720
        c.setFont("Helvetica", 12)
        for line in lines:
            c.drawString(72, y, line)
            y -= 20
        c.showPage()
    c.save()
    return buffer.getvalue()


def build_docx(paragraphs, header_text=None, table_rows=None):
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    if table_rows:
        table = document.add_table(rows=len(table_rows), cols=len(table_rows[0]))
        for r, row in enumerate(table_rows):
            for c, value in enumerate(row):
                table.cell(r, c).text = value
    if header_text:
        document.sections[0].header.paragraphs[0].text = header_text
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def make_docx():
    return build_docx


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """
    Point every configured path at a temp directory.

    The bundled definitions and schema are copied in, a header PDF is
    written and DocuSign runs in mock mode.
    """
    definitions = tmp_path / 'document_templates'
    shutil.copytree(PROJECT_ROOT / 'document_templates', definitions)
    files = definitions / 'files'
    files.mkdir(exist_ok=True)

    header = tmp_path / 'assets' / 'header-template.pdf'
    header.parent.mkdir()
    header.write_bytes(build_pdf([["ACME Corp", "Document for Signature"]]))

    monkeypatch.setattr(Config, 'TEMPLATE_DEFINITIONS_DIR', str(definitions))
    monkeypatch.setattr(Config, 'TEMPLATE_FILES_DIR', str(files))
    monkeypatch.setattr(Config, 'HEADER_PDF_PATH', str(header))
    monkeypatch.setattr(Config, 'UPLOADS_DIR', str(tmp_path / 'uploads'))
    monkeypatch.setattr(Config, 'DOCUSIGN_INTEGRATION_KEY', '')

    TemplateLoader.clear()
    yield tmp_path
    TemplateLoader.clear()


@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    engine = models.init_engine('sqlite://')
    models.Base.metadata.create_all(engine)
    session = models.SessionLocal()
    yield session
    session.close()
    models.Base.metadata.drop_all(engine)
    engine.dispose()
