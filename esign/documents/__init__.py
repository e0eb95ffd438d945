"""
Document Assembly System

A configuration-driven pipeline that turns a template (or an uploaded
document) into a DocuSign envelope template. Templates are defined in
YAML files and processed through placeholder substitution, header
merging and envelope construction.

Usage:
    from esign.documents import TemplateLoader, EnvelopeBuilder, DocuSignClient

    # On startup
    TemplateLoader.load_all()

    # When processing a request
    template = TemplateLoader.get('letter-of-recommendation')
    result = validate_placeholders(template.placeholders, filled_values)
    pdf = merge_header_with_document(document_pdf)
    template_id = DocuSignClient.create_template_from_pdf(
        tokens, name, pdf, template.default_roles, template.default_tab_map
    )
"""

from .types import (
    PlaceholderType,
    TabType,
    Placeholder,
    Anchor,
    SignerRole,
    TabMapping,
    DocumentTemplate,
    ValidationResult,
    DocuSignTokens
)

from .exceptions import (
    DocumentError,
    ConfigurationError,
    ValidationError,
    RenderError,
    PdfError,
    StorageError,
    RequestStateError,
    DocuSignAPIError
)

from .placeholders import (
    extract_placeholders,
    extract_anchors,
    replace_placeholders,
    validate_placeholders,
    validate_anchors,
    anchor_string
)

from .loader import TemplateLoader
from .envelope_builder import EnvelopeBuilder, Signer
from .docusign_client import DocuSignClient
from .yaml_generator import YamlGenerator
from .transforms import TRANSFORMS, apply_transform, register_transform
from .pdf_utils import (
    validate_header_pdf,
    merge_header_with_document,
    validate_no_anchors_on_page,
    optimize_for_docusign
)

__all__ = [
    # Types
    'PlaceholderType',
    'TabType',
    'Placeholder',
    'Anchor',
    'SignerRole',
    'TabMapping',
    'DocumentTemplate',
    'ValidationResult',
    'DocuSignTokens',

    # Exceptions
    'DocumentError',
    'ConfigurationError',
    'ValidationError',
    'RenderError',
    'PdfError',
    'StorageError',
    'RequestStateError',
    'DocuSignAPIError',

    # Placeholders / anchors
    'extract_placeholders',
    'extract_anchors',
    'replace_placeholders',
    'validate_placeholders',
    'validate_anchors',
    'anchor_string',

    # Services
    'TemplateLoader',
    'EnvelopeBuilder',
    'Signer',
    'DocuSignClient',
    'YamlGenerator',

    # PDF
    'validate_header_pdf',
    'merge_header_with_document',
    'validate_no_anchors_on_page',
    'optimize_for_docusign',

    # Transforms
    'TRANSFORMS',
    'apply_transform',
    'register_transform',
]
