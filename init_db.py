"""
First-run setup: database tables, header PDF and sample template sources.
"""

import logging
from pathlib import Path

from docx import Document
from dotenv import load_dotenv

# Load environment variables before Config reads them
load_dotenv()

from config import Config  # noqa: E402
from esign.documents.loader import TemplateLoader  # noqa: E402
from esign.documents.pdf_utils import render_default_header  # noqa: E402
from esign.documents.placeholders import anchor_string, placeholder_string  # noqa: E402
from models import create_all, init_engine  # noqa: E402

# Body text of the bundled sample documents, keyed by template slug.
# Each entry is a list of paragraphs; markers are filled in / anchored later.
SAMPLE_SOURCES = {
    'letter-of-recommendation': [
        ('heading', "Letter of Recommendation"),
        ('text', "To whom it may concern,"),
        ('text', (
            f"I am pleased to recommend {placeholder_string('FULL_NAME')}, who served as "
            f"{placeholder_string('POSITION')} from {placeholder_string('START_DATE')} "
            f"to {placeholder_string('END_DATE')}."
        )),
        ('text', placeholder_string('RECOMMENDATION_TEXT')),
        ('text', "Sincerely,"),
        ('text', f"Signature: {anchor_string('SIGNATURE_RECOMMENDER')}"),
        ('text', f"Date: {anchor_string('DATE_SIGNED')}"),
    ],
    'contractor-verification-letter': [
        ('heading', "Contractor Verification Letter"),
        ('text', (
            f"This letter verifies that {placeholder_string('CONTRACTOR_NAME')} has performed "
            f"contract work as of {placeholder_string('VERIFICATION_DATE')}."
        )),
        ('text', f"Contract details: {placeholder_string('CONTRACT_DETAILS')}"),
        ('text', f"Contractor: {anchor_string('SIGNATURE_CONTRACTOR')}"),
        ('text', f"CCOO: {anchor_string('SIGNATURE_CCOO')}"),
        ('text', f"Date: {anchor_string('DATE_SIGNED')}"),
    ],
    'contractor-end-of-agreement': [
        ('heading', "Contractor End of Agreement"),
        ('text', (
            f"The contract agreement with {placeholder_string('CONTRACTOR_NAME')}, in effect from "
            f"{placeholder_string('AGREEMENT_START_DATE')}, ends on {placeholder_string('AGREEMENT_END_DATE')}."
        )),
        ('text', f"Reason: {placeholder_string('TERMINATION_REASON')}"),
        ('text', f"Contractor: {anchor_string('SIGNATURE_CONTRACTOR')}"),
        ('text', f"Administrator: {anchor_string('SIGNATURE_ADMIN')}"),
        ('text', f"Date: {anchor_string('DATE_SIGNED')}"),
    ],
}


def write_sample_source(path: Path, paragraphs) -> None:
    document = Document()
    for kind, text in paragraphs:
        if kind == 'heading':
            document.add_heading(text, level=1)
        else:
            document.add_paragraph(text)
    path.parent.mkdir(parents=True, exist_ok=True)
    document.save(str(path))


def init_db():
    init_engine()
    create_all()
    print(f"Database tables created: {Config.SQLALCHEMY_DATABASE_URI}")

    header_path = Path(Config.HEADER_PDF_PATH)
    if header_path.exists():
        print(f"Header PDF already exists: {header_path}")
    else:
        render_default_header(header_path)
        print(f"Rendered default header PDF: {header_path}")

    TemplateLoader.load_all()
    for template in TemplateLoader.all(include_archived=True):
        paragraphs = SAMPLE_SOURCES.get(template.slug)
        path = TemplateLoader.source_path(template)
        if paragraphs is None or not template.is_docx:
            continue
        if path.exists():
            print(f"Template source already exists: {path}")
            continue
        write_sample_source(path, paragraphs)
        print(f"Wrote sample source for {template.slug}: {path}")

    Path(Config.UPLOADS_DIR).mkdir(parents=True, exist_ok=True)


if __name__ == '__main__':
    logging.basicConfig(level=Config.LOG_LEVEL)
    init_db()
