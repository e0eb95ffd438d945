"""
Signing request pipeline.

A request names a document source (template definition or uploaded
file), the values for the template's placeholders, and the roles / tab
map for DocuSign. Processing turns it into a DocuSign envelope template:

    pending -> processing -> completed
                          -> failed (error_message stored)
"""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from esign import storage
from esign.docusign_accounts import get_valid_tokens
from esign.documents.docusign_client import DocuSignClient
from esign.documents.docx_renderer import convert_docx_to_pdf, extract_docx_text, render_docx
from esign.documents.envelope_builder import EnvelopeBuilder
from esign.documents.exceptions import RequestStateError, ValidationError
from esign.documents.loader import TemplateLoader
from esign.documents.pdf_utils import (
    extract_pdf_text,
    merge_header_with_document,
    optimize_for_docusign,
    validate_header_pdf,
    validate_no_anchors_on_page,
)
from esign.documents.placeholders import find_unresolved_placeholders, validate_anchors, validate_placeholders
from esign.documents.transforms import format_value
from esign.documents.types import DocumentTemplate, parse_roles, parse_tab_map
from models import RequestStatus, SigningRequest, SessionLocal

logger = logging.getLogger(__name__)


def create_request(
    session,
    user_id: str,
    *,
    document_template_slug: Optional[str] = None,
    uploaded_file_id: Optional[str] = None,
    filled_values: Optional[Dict[str, Any]] = None,
    roles: Optional[List[Dict[str, Any]]] = None,
    tab_map: Optional[List[Dict[str, Any]]] = None,
    docusign_friendly: bool = False
) -> SigningRequest:
    """
    Validate and record a new signing request with status 'pending'.

    Empty roles / tab map fall back to the template's defaults.

    Raises:
        PdfError: the header PDF is missing
        ValidationError: no document source, unknown template, missing
            required values or an inconsistent tab map
        StorageError: the uploaded file id does not resolve
    """
    validate_header_pdf()

    if not document_template_slug and not uploaded_file_id:
        raise ValidationError("No document source provided")

    filled_values = dict(filled_values or {})
    roles = list(roles or [])
    tab_map = list(tab_map or [])
    anchors = None

    if document_template_slug:
        TemplateLoader.ensure_loaded()
        template = TemplateLoader.get_or_raise(document_template_slug)
        if template.archived:
            raise ValidationError(f"Template '{template.slug}' is archived", template_slug=template.slug)

        if not roles:
            roles = [r.to_dict() for r in template.default_roles]
        if not tab_map:
            tab_map = [t.to_dict() for t in template.default_tab_map]
        anchors = template.anchors

        result = validate_placeholders(template.placeholders, filled_values)
        if not result.valid:
            problems = []
            if result.missing:
                problems.append(f"missing required values: {', '.join(result.missing)}")
            problems.extend(f"{name}: {reason}" for name, reason in result.invalid.items())
            raise ValidationError(
                "Invalid placeholder values - " + "; ".join(problems),
                template_slug=template.slug,
                field='filled_values',
                missing=result.missing
            )
    else:
        storage.resolve_upload(uploaded_file_id)

    if not roles:
        raise ValidationError("At least one signer role is required", field='roles')
    EnvelopeBuilder.validate_tab_map(roles, tab_map, anchors)

    signing_request = SigningRequest(
        user_id=user_id,
        document_template_slug=document_template_slug or None,
        uploaded_file_id=uploaded_file_id or None,
        filled_values=filled_values,
        roles=[r.to_dict() for r in parse_roles(roles)],
        tab_map=[t.to_dict() for t in parse_tab_map(tab_map)],
        docusign_friendly=bool(docusign_friendly),
        status=RequestStatus.PENDING
    )
    session.add(signing_request)
    session.commit()

    logger.info(f"Created signing request {signing_request.id} for user {user_id}")
    return signing_request


def get_request(session, request_id: str) -> Optional[SigningRequest]:
    return session.get(SigningRequest, request_id)


def list_requests(session, user_id: Optional[str] = None) -> List[SigningRequest]:
    """Requests newest first, optionally for a single user."""
    query = session.query(SigningRequest)
    if user_id:
        query = query.filter(SigningRequest.user_id == user_id)
    return query.order_by(SigningRequest.created_at.desc()).all()


def _transition(session, request_id: str, from_status: str, values: Dict[str, Any]) -> bool:
    """Conditional UPDATE: only applies while the request is in ``from_status``."""
    values = dict(values, updated_at=datetime.utcnow())
    updated = (
        session.query(SigningRequest)
        .filter(SigningRequest.id == request_id, SigningRequest.status == from_status)
        .update(values, synchronize_session=False)
    )
    session.commit()
    return updated == 1


def claim_request(session, request_id: str) -> SigningRequest:
    """
    Move a request from pending to processing.

    Only one caller can win the claim; everyone else gets RequestStateError.
    """
    if _transition(session, request_id, RequestStatus.PENDING, {'status': RequestStatus.PROCESSING}):
        signing_request = session.get(SigningRequest, request_id)
        session.refresh(signing_request)
        return signing_request

    signing_request = session.get(SigningRequest, request_id)
    if signing_request is None:
        raise ValidationError(f"Request not found: {request_id}")
    session.refresh(signing_request)
    raise RequestStateError(
        f"Request {request_id} is '{signing_request.status}', expected '{RequestStatus.PENDING}'",
        request_id=request_id,
        status=signing_request.status
    )


def _render_template(template: DocumentTemplate, filled_values: Dict[str, Any]) -> bytes:
    source = storage.read_template_file(template)

    if template.is_pdf:
        # PDF templates carry no editable text; anchors still have to be present
        if filled_values:
            logger.warning(f"Template {template.slug} is a PDF; filled values are not applied")
        text = "\n".join(extract_pdf_text(source))
        _check_anchors(template, text)
        return source

    values = {p.name: format_value(p, filled_values.get(p.name)) for p in template.placeholders}
    rendered = render_docx(source, values)

    text = extract_docx_text(rendered)
    unresolved = find_unresolved_placeholders(text)
    if unresolved:
        logger.warning(f"Template {template.slug} has undeclared placeholders left in place: {unresolved}")
    _check_anchors(template, text)

    return convert_docx_to_pdf(rendered)


def _check_anchors(template: DocumentTemplate, text: str) -> None:
    result = validate_anchors(template.required_anchors(), text)
    if not result.valid:
        raise ValidationError(
            f"Required anchors missing from {template.file_path}: {', '.join(result.missing)}",
            template_slug=template.slug,
            missing=result.missing
        )


def build_document_pdf(signing_request: SigningRequest) -> bytes:
    """Produce the request's document as PDF, before the header is added."""
    if signing_request.document_template_slug:
        TemplateLoader.ensure_loaded()
        template = TemplateLoader.get_or_raise(signing_request.document_template_slug)
        return _render_template(template, signing_request.filled_values or {})

    if signing_request.uploaded_file_id:
        content, ext = storage.read_upload(signing_request.uploaded_file_id)
        if ext == 'docx':
            if signing_request.filled_values:
                content = render_docx(content, {
                    k: '' if v is None else str(v) for k, v in signing_request.filled_values.items()
                })
            return convert_docx_to_pdf(content)
        return content

    raise ValidationError("No document source provided")


def process_request(session, request_id: str, client=DocuSignClient) -> SigningRequest:
    """
    Run a pending request through the pipeline.

    On any failure the request is marked 'failed' with the error message
    and the exception is re-raised.
    """
    signing_request = claim_request(session, request_id)
    logger.info(f"Processing signing request {request_id}")

    try:
        tokens = get_valid_tokens(session, signing_request.user_id, client=client)

        document_pdf = build_document_pdf(signing_request)

        merged_pdf = merge_header_with_document(document_pdf)
        validate_no_anchors_on_page(merged_pdf, page_index=0)

        if signing_request.docusign_friendly:
            merged_pdf = optimize_for_docusign(merged_pdf)

        pdf_path = storage.save_generated_pdf(request_id, merged_pdf)

        template_id = client.create_template_from_pdf(
            tokens,
            f"Template {request_id}",
            merged_pdf,
            signing_request.roles,
            signing_request.tab_map
        )

        completed = _transition(session, request_id, RequestStatus.PROCESSING, {
            'status': RequestStatus.COMPLETED,
            'generated_pdf_path': str(pdf_path),
            'docusign_template_id': template_id,
            'error_message': None,
        })
        if not completed:
            logger.warning(
                f"Signing request {request_id} left '{RequestStatus.PROCESSING}' before completion; "
                f"DocuSign template {template_id} was not recorded"
            )
    except Exception as e:
        session.rollback()
        logger.error(f"Signing request {request_id} failed: {e}")
        _transition(session, request_id, RequestStatus.PROCESSING, {
            'status': RequestStatus.FAILED,
            'error_message': str(e),
        })
        raise

    session.refresh(signing_request)
    if completed:
        logger.info(f"Signing request {request_id} completed: DocuSign template {template_id}")
    return signing_request


def process_in_background(request_id: str, session_factory=None, client=DocuSignClient) -> threading.Thread:
    """
    Process a request on a daemon thread with its own session.

    Failures are already recorded on the request; here they are only logged.
    """
    session_factory = session_factory or SessionLocal

    def run():
        session = session_factory()
        try:
            process_request(session, request_id, client=client)
        except Exception:
            logger.exception(f"Error processing request {request_id}")
        finally:
            session.close()

    thread = threading.Thread(target=run, name=f"signing-request-{request_id[:8]}", daemon=True)
    thread.start()
    return thread
