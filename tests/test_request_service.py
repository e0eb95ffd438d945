"""
Signing request pipeline tests.

Runs the full pipeline against an in-memory SQLite database. LibreOffice
is replaced by a converter that lays the DOCX text out on a PDF page,
and DocuSign by a mock client.

Run with: python -m pytest tests/test_request_service.py -v
"""

import sys
import textwrap
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Config
from esign import request_service, storage
from esign.docusign_accounts import connect_account
from esign.documents import (
    DocuSignAPIError,
    DocuSignTokens,
    PdfError,
    RequestStateError,
    StorageError,
    ValidationError,
)
from esign.documents.docx_renderer import extract_docx_text
from esign.documents.pdf_utils import extract_pdf_text, page_count
from init_db import SAMPLE_SOURCES, write_sample_source
from models import RequestStatus, SessionLocal, SigningRequest

from conftest import build_docx, build_pdf

USER = 'user-1'

LETTER_VALUES = {
    'FULL_NAME': 'Ada Lovelace',
    'START_DATE': '2024-03-01',
    'POSITION': 'Analyst',
    'RECOMMENDATION_TEXT': 'Ada was outstanding.',
}


def fake_convert(docx_bytes, *args, **kwargs):
    lines = []
    for paragraph in extract_docx_text(docx_bytes).splitlines():
        lines.extend(textwrap.wrap(paragraph, 70) or [''])
    return build_pdf([lines])


@pytest.fixture
def pipeline(workspace, db_session):
    """Workspace with sample template sources, a connected account and a mock client."""
    for slug, paragraphs in SAMPLE_SOURCES.items():
        write_sample_source(workspace / 'document_templates' / 'files' / f"{slug}.docx", paragraphs)

    connect_account(db_session, USER, DocuSignTokens(
        access_token='access-1',
        refresh_token='refresh-1',
        expires_in=3600,
        account_id='acc-1',
        base_url='https://demo.docusign.net/restapi'
    ))

    client = MagicMock()
    client.create_template_from_pdf.return_value = 'tmpl-123'

    with patch('esign.request_service.convert_docx_to_pdf', side_effect=fake_convert) as convert:
        yield {'session': db_session, 'client': client, 'convert': convert, 'workspace': workspace}


def create_letter_request(session, **overrides):
    kwargs = {'document_template_slug': 'letter-of-recommendation', 'filled_values': dict(LETTER_VALUES)}
    kwargs.update(overrides)
    return request_service.create_request(session, USER, **kwargs)


class TestCreateRequest:
    """Validation before a request is recorded."""

    def test_template_request_uses_defaults(self, pipeline):
        signing_request = create_letter_request(pipeline['session'])

        assert signing_request.status == RequestStatus.PENDING
        assert signing_request.roles == [{'role_name': 'Recommender', 'signing_order': 1}]
        assert [t['anchor_name'] for t in signing_request.tab_map] == ['SIGNATURE_RECOMMENDER', 'DATE_SIGNED']
        assert signing_request.filled_values['FULL_NAME'] == 'Ada Lovelace'

    def test_explicit_roles_and_camel_case(self, pipeline):
        signing_request = create_letter_request(
            pipeline['session'],
            roles=[{'roleName': 'Manager', 'signingOrder': 1}],
            tab_map=[{'anchorName': 'SIGNATURE_RECOMMENDER', 'roleName': 'Manager', 'tabType': 'signature'}]
        )
        assert signing_request.roles == [{'role_name': 'Manager', 'signing_order': 1}]
        assert signing_request.tab_map == [
            {'anchor_name': 'SIGNATURE_RECOMMENDER', 'role_name': 'Manager', 'tab_type': 'signature'}
        ]

    def test_missing_header(self, pipeline):
        Path(Config.HEADER_PDF_PATH).unlink()
        with pytest.raises(PdfError, match='Header PDF not found'):
            create_letter_request(pipeline['session'])

    def test_no_document_source(self, pipeline):
        with pytest.raises(ValidationError, match='No document source provided'):
            request_service.create_request(pipeline['session'], USER)

    def test_unknown_template(self, pipeline):
        with pytest.raises(ValidationError, match='Unknown document template'):
            create_letter_request(pipeline['session'], document_template_slug='nope')

    def test_missing_required_values(self, pipeline):
        with pytest.raises(ValidationError) as exc_info:
            create_letter_request(pipeline['session'], filled_values={'FULL_NAME': 'Ada'})
        assert exc_info.value.missing == ['START_DATE', 'POSITION', 'RECOMMENDATION_TEXT']
        assert pipeline['session'].query(SigningRequest).count() == 0

    def test_invalid_date_value(self, pipeline):
        values = dict(LETTER_VALUES, START_DATE='someday')
        with pytest.raises(ValidationError, match='START_DATE'):
            create_letter_request(pipeline['session'], filled_values=values)

    def test_tab_map_with_unknown_role(self, pipeline):
        with pytest.raises(ValidationError, match='unknown role'):
            create_letter_request(
                pipeline['session'],
                tab_map=[{'anchor_name': 'DATE_SIGNED', 'role_name': 'Witness', 'tab_type': 'date'}]
            )

    def test_unknown_upload(self, pipeline):
        with pytest.raises(StorageError):
            request_service.create_request(
                pipeline['session'], USER,
                uploaded_file_id='0' * 32,
                roles=[{'role_name': 'Signer', 'signing_order': 1}]
            )

    def test_upload_requires_a_role(self, pipeline):
        stored = storage.save_upload('doc.pdf', build_pdf([["Body"]]), 'application/pdf')
        with pytest.raises(ValidationError, match='signer role'):
            request_service.create_request(pipeline['session'], USER, uploaded_file_id=stored.file_id)


class TestProcessRequest:
    """pending -> processing -> completed / failed"""

    def test_template_request_completes(self, pipeline):
        session, client = pipeline['session'], pipeline['client']
        signing_request = create_letter_request(session)

        result = request_service.process_request(session, signing_request.id, client=client)

        assert result.status == RequestStatus.COMPLETED
        assert result.docusign_template_id == 'tmpl-123'
        assert result.error_message is None

        pdf_path = Path(result.generated_pdf_path)
        assert pdf_path == pipeline['workspace'] / 'uploads' / f"{signing_request.id}.pdf"
        merged = pdf_path.read_bytes()
        assert page_count(merged) == 2

        header_text, body_text = extract_pdf_text(merged)
        assert 'ACME Corp' in header_text
        assert 'Ada Lovelace' in body_text
        assert 'Analyst' in body_text
        assert 'March 01, 2024' in body_text
        assert '{{VAR:' not in body_text
        assert '{{DS:SIGNATURE_RECOMMENDER}}' in body_text

        args = client.create_template_from_pdf.call_args[0]
        assert args[0].access_token == 'access-1'
        assert args[1] == f"Template {signing_request.id}"
        assert args[2] == merged
        assert args[3] == [{'role_name': 'Recommender', 'signing_order': 1}]

    def test_uploaded_pdf_used_as_is(self, pipeline):
        session, client = pipeline['session'], pipeline['client']
        stored = storage.save_upload(
            'contract.pdf', build_pdf([["Contract body", "{{DS:SIGNATURE_SIGNER}}"]]), 'application/pdf'
        )
        signing_request = request_service.create_request(
            session, USER,
            uploaded_file_id=stored.file_id,
            roles=[{'role_name': 'Signer', 'signing_order': 1}],
            tab_map=[{'anchor_name': 'SIGNATURE_SIGNER', 'role_name': 'Signer', 'tab_type': 'signature'}]
        )

        result = request_service.process_request(session, signing_request.id, client=client)

        assert result.status == RequestStatus.COMPLETED
        pipeline['convert'].assert_not_called()
        merged = Path(result.generated_pdf_path).read_bytes()
        assert 'Contract body' in extract_pdf_text(merged, pages=[1])[0]

    def test_uploaded_docx_converted(self, pipeline):
        session, client = pipeline['session'], pipeline['client']
        docx = build_docx(["Uploaded {{DS:SIGNATURE_SIGNER}}"])
        stored = storage.save_upload('letter.docx', docx)
        signing_request = request_service.create_request(
            session, USER,
            uploaded_file_id=stored.file_id,
            roles=[{'role_name': 'Signer', 'signing_order': 1}]
        )

        result = request_service.process_request(session, signing_request.id, client=client)

        assert result.status == RequestStatus.COMPLETED
        pipeline['convert'].assert_called_once()

    def test_docusign_friendly_optimizes(self, pipeline):
        session, client = pipeline['session'], pipeline['client']
        signing_request = create_letter_request(session, docusign_friendly=True)

        with patch('esign.request_service.optimize_for_docusign', side_effect=lambda pdf: pdf) as optimize:
            request_service.process_request(session, signing_request.id, client=client)

        optimize.assert_called_once()

    def test_second_claim_rejected(self, pipeline):
        session, client = pipeline['session'], pipeline['client']
        signing_request = create_letter_request(session)
        request_service.process_request(session, signing_request.id, client=client)

        with pytest.raises(RequestStateError) as exc_info:
            request_service.process_request(session, signing_request.id, client=client)
        assert exc_info.value.status == RequestStatus.COMPLETED
        assert client.create_template_from_pdf.call_count == 1

    def test_claim_only_once(self, pipeline):
        session = pipeline['session']
        signing_request = create_letter_request(session)

        request_service.claim_request(session, signing_request.id)
        with pytest.raises(RequestStateError):
            request_service.claim_request(session, signing_request.id)

    def test_unknown_request(self, pipeline):
        with pytest.raises(ValidationError, match='Request not found'):
            request_service.process_request(pipeline['session'], 'missing-id', client=pipeline['client'])

    def test_docusign_failure_marks_failed(self, pipeline):
        session, client = pipeline['session'], pipeline['client']
        client.create_template_from_pdf.side_effect = DocuSignAPIError('Failed to create DocuSign template: 401')
        signing_request = create_letter_request(session)

        with pytest.raises(DocuSignAPIError):
            request_service.process_request(session, signing_request.id, client=client)

        stored = request_service.get_request(session, signing_request.id)
        session.refresh(stored)
        assert stored.status == RequestStatus.FAILED
        assert stored.error_message == 'Failed to create DocuSign template: 401'
        assert stored.docusign_template_id is None

    def test_not_connected_marks_failed(self, pipeline):
        session = pipeline['session']
        signing_request = request_service.create_request(
            session, 'user-without-docusign',
            document_template_slug='letter-of-recommendation',
            filled_values=dict(LETTER_VALUES)
        )

        with pytest.raises(DocuSignAPIError, match='DocuSign not connected'):
            request_service.process_request(session, signing_request.id, client=pipeline['client'])

        stored = request_service.get_request(session, signing_request.id)
        session.refresh(stored)
        assert stored.status == RequestStatus.FAILED
        assert stored.error_message == 'DocuSign not connected'

    def test_missing_anchor_in_source_marks_failed(self, pipeline):
        session = pipeline['session']
        source = pipeline['workspace'] / 'document_templates' / 'files' / 'letter-of-recommendation.docx'
        source.write_bytes(build_docx(["Dear {{VAR:FULL_NAME}}", "Signed {{DS:SIGNATURE_RECOMMENDER}}"]))
        signing_request = create_letter_request(session)

        with pytest.raises(ValidationError, match='DATE_SIGNED'):
            request_service.process_request(session, signing_request.id, client=pipeline['client'])

        stored = request_service.get_request(session, signing_request.id)
        session.refresh(stored)
        assert stored.status == RequestStatus.FAILED
        assert 'DATE_SIGNED' in stored.error_message

    def test_anchor_on_header_page_marks_failed(self, pipeline):
        Path(Config.HEADER_PDF_PATH).write_bytes(build_pdf([["Cover {{DS:SIGNATURE_RECOMMENDER}}"]]))
        session = pipeline['session']
        signing_request = create_letter_request(session)

        with pytest.raises(PdfError, match='must not contain DocuSign anchors'):
            request_service.process_request(session, signing_request.id, client=pipeline['client'])

        stored = request_service.get_request(session, signing_request.id)
        session.refresh(stored)
        assert stored.status == RequestStatus.FAILED

    def test_status_changed_during_processing_is_logged(self, pipeline, caplog):
        session, client = pipeline['session'], pipeline['client']
        signing_request = create_letter_request(session)

        def fail_elsewhere(*args, **kwargs):
            session.query(SigningRequest).filter(SigningRequest.id == signing_request.id).update(
                {'status': RequestStatus.FAILED, 'error_message': 'cancelled'}, synchronize_session=False
            )
            session.commit()
            return 'tmpl-late'

        client.create_template_from_pdf.side_effect = fail_elsewhere

        result = request_service.process_request(session, signing_request.id, client=client)

        assert result.status == RequestStatus.FAILED
        assert result.error_message == 'cancelled'
        assert result.docusign_template_id is None
        assert 'DocuSign template tmpl-late was not recorded' in caplog.text


class TestBackgroundProcessing:

    def test_processes_on_thread(self, pipeline):
        session, client = pipeline['session'], pipeline['client']
        signing_request = create_letter_request(session)

        thread = request_service.process_in_background(signing_request.id, session_factory=SessionLocal, client=client)
        thread.join(timeout=30)

        assert not thread.is_alive()
        stored = request_service.get_request(session, signing_request.id)
        session.refresh(stored)
        assert stored.status == RequestStatus.COMPLETED

    def test_failure_is_logged_not_raised(self, pipeline, caplog):
        session, client = pipeline['session'], pipeline['client']
        client.create_template_from_pdf.side_effect = DocuSignAPIError('boom')
        signing_request = create_letter_request(session)

        thread = request_service.process_in_background(signing_request.id, session_factory=SessionLocal, client=client)
        thread.join(timeout=30)

        stored = request_service.get_request(session, signing_request.id)
        session.refresh(stored)
        assert stored.status == RequestStatus.FAILED
        assert 'Error processing request' in caplog.text


class TestListRequests:

    def test_newest_first_and_filtered(self, pipeline):
        session = pipeline['session']
        older = create_letter_request(session)
        older.created_at = datetime.utcnow() - timedelta(hours=1)
        session.commit()
        newer = create_letter_request(session)
        other = request_service.create_request(
            session, 'user-2',
            document_template_slug='letter-of-recommendation',
            filled_values=dict(LETTER_VALUES)
        )

        assert [r.id for r in request_service.list_requests(session, USER)] == [newer.id, older.id]
        assert len(request_service.list_requests(session)) == 3
        assert other.id in [r.id for r in request_service.list_requests(session)]
