import os


class Config:
    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///esign.db')

    # DocuSign OAuth / REST settings
    DOCUSIGN_INTEGRATION_KEY = os.getenv('DOCUSIGN_INTEGRATION_KEY', '')
    DOCUSIGN_SECRET_KEY = os.getenv('DOCUSIGN_SECRET_KEY', '')
    DOCUSIGN_AUTH_SERVER = os.getenv('DOCUSIGN_AUTH_SERVER', 'account-d.docusign.com')
    DOCUSIGN_BASE_PATH = os.getenv('DOCUSIGN_BASE_PATH', 'https://demo.docusign.net/restapi')
    DOCUSIGN_REDIRECT_URI = os.getenv('DOCUSIGN_REDIRECT_URI', 'http://localhost:5005/auth/docusign/callback')
    DOCUSIGN_SCOPES = os.getenv('DOCUSIGN_SCOPES', 'signature impersonation')

    # Documents
    HEADER_PDF_PATH = os.getenv('HEADER_PDF_PATH', 'assets/header-template.pdf')
    UPLOADS_DIR = os.getenv('UPLOADS_DIR', 'uploads')
    TEMPLATE_DEFINITIONS_DIR = os.getenv('TEMPLATE_DEFINITIONS_DIR', 'document_templates')
    TEMPLATE_FILES_DIR = os.getenv('TEMPLATE_FILES_DIR', 'document_templates/files')
    SOFFICE_BINARY = os.getenv('SOFFICE_BINARY', 'soffice')
    SOFFICE_TIMEOUT = int(os.getenv('SOFFICE_TIMEOUT', 120))
    ORGANIZATION_NAME = os.getenv('ORGANIZATION_NAME', 'Organization')

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
