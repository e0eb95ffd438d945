"""
Document System Exceptions

Custom exceptions for template definitions, document assembly
and DocuSign template registration.
"""


class DocumentError(Exception):
    """Base exception for all document system errors."""
    pass


class ConfigurationError(DocumentError):
    """
    Raised when the template definition directory is invalid.

    Aggregates YAML syntax errors, schema failures and referential
    integrity issues (e.g., a tab mapping that names an unknown role)
    across every definition file.
    """
    pass


class ValidationError(DocumentError):
    """
    Raised when a single template definition or request fails validation.

    ``missing`` lists the placeholder or anchor names that were required
    but not supplied.
    """
    def __init__(self, message: str, template_slug: str = None, field: str = None, missing: list = None):
        self.template_slug = template_slug
        self.field = field
        self.missing = list(missing or [])
        super().__init__(message)


class RenderError(DocumentError):
    """Raised when placeholder substitution or DOCX conversion fails."""
    pass


class PdfError(DocumentError):
    """Raised for header PDF, merge and page-validation failures."""
    pass


class StorageError(DocumentError):
    """Raised for unknown uploads and disallowed file types."""
    pass


class RequestStateError(DocumentError):
    """
    Raised on an illegal request status transition.

    A request can only be picked up for processing while it is pending.
    """
    def __init__(self, message: str, request_id: str = None, status: str = None):
        self.request_id = request_id
        self.status = status
        super().__init__(message)


class DocuSignAPIError(DocumentError):
    """
    Raised when DocuSign OAuth or REST calls fail.

    Wraps the underlying API error with context.
    """
    def __init__(self, message: str, status_code: int = None, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)
