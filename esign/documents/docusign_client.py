"""
DocuSign Client

Thin wrapper around the DocuSign OAuth (Authorization Code Grant) and
eSignature REST APIs. Only covers what template registration needs:
building the consent URL, exchanging / refreshing tokens, resolving the
account and creating an envelope template.

Without DOCUSIGN_INTEGRATION_KEY the client runs in mock mode and
returns canned responses instead of calling DocuSign.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import quote, urlencode

import requests

from config import Config
from .types import DocuSignTokens
from .exceptions import DocuSignAPIError
from .envelope_builder import EnvelopeBuilder

logger = logging.getLogger(__name__)

# Request timeout
DEFAULT_TIMEOUT = 30
UPLOAD_TIMEOUT = 60

DEFAULT_EXPIRES_IN = 3600
API_VERSION = 'v2.1'


def _error_details(e: requests.exceptions.RequestException) -> Tuple[Optional[int], Optional[str]]:
    """Pull status code and body out of a requests exception, if it has a response."""
    response = getattr(e, 'response', None)
    if response is None:
        return None, None
    return response.status_code, response.text


class DocuSignClient:
    """
    Client for DocuSign API operations.

    Provides methods for:
        - Building the OAuth consent URL
        - Exchanging an authorization code / refreshing tokens
        - Resolving the account id and REST base URL
        - Creating envelope templates from a PDF
    """

    @classmethod
    def is_mock_mode(cls) -> bool:
        """Check if running in mock mode (no integration key)."""
        return not Config.DOCUSIGN_INTEGRATION_KEY

    @classmethod
    def _auth_base(cls) -> str:
        return f"https://{Config.DOCUSIGN_AUTH_SERVER}"

    @classmethod
    def get_auth_url(cls, state: Optional[str] = None) -> str:
        """Build the URL that sends a user to DocuSign to grant consent."""
        params = {
            'response_type': 'code',
            'scope': Config.DOCUSIGN_SCOPES,
            'client_id': Config.DOCUSIGN_INTEGRATION_KEY,
            'redirect_uri': Config.DOCUSIGN_REDIRECT_URI,
        }
        if state:
            params['state'] = state
        return f"{cls._auth_base()}/oauth/auth?{urlencode(params, quote_via=quote)}"

    @classmethod
    def exchange_code_for_token(cls, code: str) -> DocuSignTokens:
        """
        Exchange an authorization code for tokens.

        Returns:
            DocuSignTokens including the resolved account id and base URL
        """
        if cls.is_mock_mode():
            logger.warning("DocuSign mock mode: returning mock tokens")
            return cls._mock_tokens()

        token_data = cls._request_token({
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': Config.DOCUSIGN_REDIRECT_URI,
        }, action="obtain access token from DocuSign")

        account_id, base_url = cls.get_account_info(token_data['access_token'])
        return DocuSignTokens(
            access_token=token_data['access_token'],
            refresh_token=token_data.get('refresh_token'),
            expires_in=int(token_data.get('expires_in') or DEFAULT_EXPIRES_IN),
            account_id=account_id,
            base_url=base_url
        )

    @classmethod
    def refresh_access_token(cls, refresh_token: str) -> DocuSignTokens:
        """
        Refresh an access token.

        DocuSign may or may not rotate the refresh token; the old one is
        kept when the response has none.
        """
        if cls.is_mock_mode():
            logger.warning("DocuSign mock mode: returning mock tokens")
            tokens = cls._mock_tokens()
            tokens.refresh_token = refresh_token
            return tokens

        token_data = cls._request_token({
            'grant_type': 'refresh_token',
            'refresh_token': refresh_token,
        }, action="refresh access token")

        account_id, base_url = cls.get_account_info(token_data['access_token'])
        return DocuSignTokens(
            access_token=token_data['access_token'],
            refresh_token=token_data.get('refresh_token') or refresh_token,
            expires_in=int(token_data.get('expires_in') or DEFAULT_EXPIRES_IN),
            account_id=account_id,
            base_url=base_url
        )

    @classmethod
    def _request_token(cls, form: Dict[str, str], action: str) -> Dict[str, Any]:
        """POST to /oauth/token with HTTP Basic client authentication."""
        try:
            response = requests.post(
                f"{cls._auth_base()}/oauth/token",
                data=form,
                auth=(Config.DOCUSIGN_INTEGRATION_KEY, Config.DOCUSIGN_SECRET_KEY),
                timeout=DEFAULT_TIMEOUT
            )
            response.raise_for_status()
            token_data = response.json()
        except requests.exceptions.RequestException as e:
            status_code, error_body = _error_details(e)
            logger.error(f"DocuSign token request failed: {e}")
            if error_body:
                logger.error(f"Response body: {error_body}")
            raise DocuSignAPIError(
                f"Failed to {action}: {status_code or ''} {error_body or e}".strip(),
                status_code=status_code,
                response_body=error_body
            )

        if not token_data.get('access_token'):
            raise DocuSignAPIError(f"Failed to {action}: No access_token in response")
        return token_data

    @classmethod
    def get_account_info(cls, access_token: str) -> Tuple[str, str]:
        """
        Resolve the account to work in.

        Picks the user's default account, falling back to the first one.

        Returns:
            (account_id, base_url) where base_url ends in /restapi
        """
        if cls.is_mock_mode():
            return 'mock-account-id', Config.DOCUSIGN_BASE_PATH

        try:
            response = requests.get(
                f"{cls._auth_base()}/oauth/userinfo",
                headers={'Authorization': f"Bearer {access_token}"},
                timeout=DEFAULT_TIMEOUT
            )
            response.raise_for_status()
            user_info = response.json()
        except requests.exceptions.RequestException as e:
            status_code, error_body = _error_details(e)
            logger.error(f"DocuSign userinfo request failed: {e}")
            raise DocuSignAPIError(
                f"Failed to get user info from DocuSign: {e}",
                status_code=status_code,
                response_body=error_body
            )

        if not isinstance(user_info, dict):
            raise DocuSignAPIError("Unexpected DocuSign user info response")

        accounts = user_info.get('accounts') or []
        if not accounts:
            raise DocuSignAPIError("No DocuSign account found")

        account = next(
            (a for a in accounts if str(a.get('is_default', '')).lower() == 'true'),
            accounts[0]
        )
        if not account.get('account_id') or not account.get('base_uri'):
            raise DocuSignAPIError("DocuSign account is missing account_id/base_uri")

        base_url = f"{account['base_uri'].rstrip('/')}/restapi"
        return account['account_id'], base_url

    @classmethod
    def create_template(cls, tokens: DocuSignTokens, template_request: Dict[str, Any]) -> str:
        """
        Create an envelope template.

        Args:
            tokens: Access token plus account id / base URL
            template_request: EnvelopeTemplate body (see EnvelopeBuilder)

        Returns:
            The new DocuSign template id
        """
        if cls.is_mock_mode():
            return cls._mock_template_id(template_request)

        url = f"{tokens.base_url.rstrip('/')}/{API_VERSION}/accounts/{tokens.account_id}/templates"
        try:
            response = requests.post(
                url,
                headers={
                    'Authorization': f"Bearer {tokens.access_token}",
                    'Content-Type': 'application/json'
                },
                json=template_request,
                timeout=UPLOAD_TIMEOUT  # Longer timeout for PDF upload
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.RequestException as e:
            status_code, error_body = _error_details(e)
            logger.error(f"DocuSign create template failed: {e}")
            if error_body:
                logger.error(f"Response body: {error_body}")
            raise DocuSignAPIError(
                f"Failed to create DocuSign template: {status_code or ''} {error_body or e}".strip(),
                status_code=status_code,
                response_body=error_body
            )

        template_id = result.get('templateId')
        if not template_id:
            raise DocuSignAPIError("Failed to create DocuSign template: No templateId in response")

        logger.info(f"Created DocuSign template {template_id} ({template_request.get('name')})")
        return template_id

    @classmethod
    def create_template_from_pdf(
        cls,
        tokens: DocuSignTokens,
        name: str,
        pdf_bytes: bytes,
        roles: Iterable[Any],
        tab_map: Iterable[Any]
    ) -> str:
        """Build the template request for a PDF and create it."""
        template_request = EnvelopeBuilder.build_template_request(name, pdf_bytes, roles, tab_map)
        return cls.create_template(tokens, template_request)

    @classmethod
    def _mock_tokens(cls) -> DocuSignTokens:
        """Return mock tokens for testing."""
        return DocuSignTokens(
            access_token=f"mock-access-{uuid.uuid4().hex[:8]}",
            refresh_token=f"mock-refresh-{uuid.uuid4().hex[:8]}",
            expires_in=DEFAULT_EXPIRES_IN,
            account_id='mock-account-id',
            base_url=Config.DOCUSIGN_BASE_PATH
        )

    @classmethod
    def _mock_template_id(cls, template_request: Dict[str, Any]) -> str:
        """Return a mock template id for testing."""
        template_id = f"mock-template-{uuid.uuid4().hex[:12]}"
        logger.warning(f"DocuSign mock mode: template '{template_request.get('name')}' -> {template_id}")
        return template_id
