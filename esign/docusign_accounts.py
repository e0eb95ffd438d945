"""
DocuSign connected accounts.

Stores the tokens returned by the OAuth callback and hands out a valid
access token to the request pipeline, refreshing it when it is about to
expire.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from esign.documents.docusign_client import DocuSignClient
from esign.documents.exceptions import DocuSignAPIError
from esign.documents.types import DocuSignTokens
from models import DocuSignAccount

logger = logging.getLogger(__name__)

DEFAULT_LEEWAY = 60


def connect_account(session, user_id: str, tokens: DocuSignTokens) -> DocuSignAccount:
    """
    Insert or update the connected account for a user.

    Keyed by (user_id, DocuSign account id), so reconnecting the same
    account replaces its tokens.
    """
    account = session.query(DocuSignAccount).filter_by(
        user_id=user_id,
        provider_account_id=tokens.account_id
    ).first()

    if account is None:
        account = DocuSignAccount(user_id=user_id, provider_account_id=tokens.account_id)
        session.add(account)

    account.access_token = tokens.access_token
    if tokens.refresh_token:
        account.refresh_token = tokens.refresh_token
    account.expires_at = datetime.utcnow() + timedelta(seconds=tokens.expires_in)
    account.base_url = tokens.base_url
    session.commit()

    logger.info(f"Connected DocuSign account {tokens.account_id} for user {user_id}")
    return account


def get_account(session, user_id: str) -> Optional[DocuSignAccount]:
    """Most recently updated connected account for a user."""
    return (
        session.query(DocuSignAccount)
        .filter_by(user_id=user_id)
        .order_by(DocuSignAccount.updated_at.desc())
        .first()
    )


def _to_tokens(account: DocuSignAccount) -> DocuSignTokens:
    remaining = 0
    if account.expires_at:
        remaining = max(int((account.expires_at - datetime.utcnow()).total_seconds()), 0)
    return DocuSignTokens(
        access_token=account.access_token,
        refresh_token=account.refresh_token,
        expires_in=remaining,
        account_id=account.provider_account_id,
        base_url=account.base_url
    )


def get_valid_tokens(session, user_id: str, leeway: int = DEFAULT_LEEWAY, client=DocuSignClient) -> DocuSignTokens:
    """
    Tokens the pipeline can use right now.

    Refreshes (and persists) the access token when it expires within
    ``leeway`` seconds and a refresh token is stored.
    """
    account = get_account(session, user_id)
    if account is None or not account.access_token:
        raise DocuSignAPIError("DocuSign not connected")
    if not account.base_url:
        raise DocuSignAPIError("DocuSign base URL not configured")

    expiring = (
        account.expires_at is not None
        and account.expires_at <= datetime.utcnow() + timedelta(seconds=leeway)
    )
    if expiring and account.refresh_token:
        logger.info(f"Refreshing DocuSign access token for user {user_id}")
        refreshed = client.refresh_access_token(account.refresh_token)
        account = connect_account(session, user_id, refreshed)
    elif expiring:
        logger.warning(f"DocuSign access token for user {user_id} is expiring and no refresh token is stored")

    return _to_tokens(account)
