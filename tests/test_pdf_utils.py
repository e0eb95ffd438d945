"""
Header merge and PDF page check tests.

Run with: python -m pytest tests/test_pdf_utils.py -v
"""

import hashlib
import sys
import warnings
from io import BytesIO
from pathlib import Path

import pytest
from pypdf import PdfReader, PdfWriter
from pypdf.annotations import Link

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Config
from esign.documents import (
    PdfError,
    merge_header_with_document,
    optimize_for_docusign,
    validate_header_pdf,
    validate_no_anchors_on_page,
)
from esign.documents.pdf_utils import extract_pdf_text, page_count, render_default_header

from conftest import build_pdf


@pytest.fixture
def header_path(tmp_path, monkeypatch):
    path = tmp_path / 'header.pdf'
    path.write_bytes(build_pdf([["HEADER PAGE ONE"], ["HEADER PAGE TWO"]]))
    monkeypatch.setattr(Config, 'HEADER_PDF_PATH', str(path))
    return path


class TestValidateHeader:

    def test_returns_sha256(self, header_path):
        expected = hashlib.sha256(header_path.read_bytes()).hexdigest()
        assert validate_header_pdf() == expected

    def test_missing_header(self, tmp_path, monkeypatch):
        monkeypatch.setattr(Config, 'HEADER_PDF_PATH', str(tmp_path / 'nope.pdf'))
        with pytest.raises(PdfError, match='Header PDF not found'):
            validate_header_pdf()

    def test_unreadable_header(self, tmp_path):
        path = tmp_path / 'broken.pdf'
        path.write_bytes(b'this is not a pdf')
        with pytest.raises(PdfError):
            validate_header_pdf(path)


class TestMergeHeader:
    """Header page 1 followed by every document page."""

    def test_page_order(self, header_path):
        document = build_pdf([["Document page 1"], ["Document page 2"], ["Document page 3"]])
        merged = merge_header_with_document(document)

        assert page_count(merged) == 4
        texts = extract_pdf_text(merged)
        assert 'HEADER PAGE ONE' in texts[0]
        assert 'HEADER PAGE TWO' not in ''.join(texts)
        assert 'Document page 1' in texts[1]
        assert 'Document page 3' in texts[3]

    def test_explicit_header_path(self, tmp_path):
        other = tmp_path / 'other.pdf'
        other.write_bytes(build_pdf([["OTHER HEADER"]]))
        merged = merge_header_with_document(build_pdf([["Body"]]), header_pdf_path=other)
        assert 'OTHER HEADER' in extract_pdf_text(merged, pages=[0])[0]

    def test_invalid_document(self, header_path):
        with pytest.raises(PdfError, match='Failed to merge header with document'):
            merge_header_with_document(b'garbage')

    def test_missing_header(self, tmp_path, monkeypatch):
        monkeypatch.setattr(Config, 'HEADER_PDF_PATH', str(tmp_path / 'nope.pdf'))
        with pytest.raises(PdfError):
            merge_header_with_document(build_pdf([["Body"]]))


class TestAnchorPageCheck:

    def test_clean_first_page(self, header_path):
        merged = merge_header_with_document(build_pdf([["Sign here {{DS:SIGNATURE_SIGNER}}"]]))
        validate_no_anchors_on_page(merged, 0)

    def test_anchor_on_first_page(self):
        pdf = build_pdf([["Cover {{DS:SIGNATURE_SIGNER}}"], ["Body"]])
        with pytest.raises(PdfError, match='SIGNATURE_SIGNER'):
            validate_no_anchors_on_page(pdf, 0)

    def test_other_page_index(self):
        pdf = build_pdf([["Cover"], ["Sign {{DS:DATE_SIGNED}}"]])
        validate_no_anchors_on_page(pdf, 0)
        with pytest.raises(PdfError, match='Page 2'):
            validate_no_anchors_on_page(pdf, 1)


class TestOptimize:

    def test_keeps_pages_and_text(self):
        pdf = build_pdf([["Page one {{DS:SIGNATURE}}"], ["Page two"]])
        optimized = optimize_for_docusign(pdf)
        assert page_count(optimized) == 2
        assert '{{DS:SIGNATURE}}' in extract_pdf_text(optimized, pages=[0])[0]

    def test_no_deprecated_compression_keywords(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            optimize_for_docusign(build_pdf([["Page one"], ["Page one"]]))
        messages = [str(w.message) for w in caught if issubclass(w.category, DeprecationWarning)]
        assert not [m for m in messages if 'remove_identicals' in m or 'remove_orphans' in m]

    def test_strips_annotations(self):
        writer = PdfWriter(clone_from=PdfReader(BytesIO(build_pdf([["Linked page"]]))))
        writer.add_annotation(page_number=0, annotation=Link(rect=(50, 50, 100, 100), url='https://example.com'))
        buffer = BytesIO()
        writer.write(buffer)

        optimized = optimize_for_docusign(buffer.getvalue())
        page = PdfReader(BytesIO(optimized)).pages[0]
        assert not page.get('/Annots')

    def test_invalid_pdf(self):
        with pytest.raises(PdfError, match='Failed to optimize'):
            optimize_for_docusign(b'garbage')


class TestDefaultHeader:

    def test_renders_single_page(self, tmp_path):
        path = render_default_header(tmp_path / 'assets' / 'header.pdf', organization_name='ACME Corp')
        assert path.is_file()
        data = path.read_bytes()
        assert page_count(data) == 1
        assert 'ACME Corp' in extract_pdf_text(data)[0]
        validate_no_anchors_on_page(data, 0)
        assert validate_header_pdf(path)
