"""Bearer-token provider.

Token sources, first hit wins:

1. Token passed by the caller (MCP tool argument / CLI option)
2. ``SHEETSQL_ACCESS_TOKEN`` (``Settings.access_token``)
3. Service-account JSON (``auth.service_account_path``)
4. Authorized-user JSON (``auth.token_path``), refreshed when expired
5. Application Default Credentials

The interactive OAuth consent flow is not handled here; run it once with
your own tooling and point ``auth.token_path`` at the resulting file.
"""
from __future__ import annotations

import logging
import os

import google.auth
from google.auth.exceptions import DefaultCredentialsError, RefreshError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials

from sheetsql.errors import AuthenticationError
from sheetsql.settings import Settings

logger = logging.getLogger(__name__)


def resolve_access_token(settings: Settings, explicit_token: str | None = None) -> str:
    """Return a bearer token or raise AuthenticationError."""
    if explicit_token and explicit_token.strip():
        return explicit_token.strip()
    if settings.access_token:
        return settings.access_token

    credentials = _load_credentials(settings)
    if credentials is None:
        raise AuthenticationError(
            "No Google credentials available. Pass an access token, set SHEETSQL_ACCESS_TOKEN, "
            "or configure auth.service_account_path / auth.token_path in sheetsql_project.yaml."
        )

    if not credentials.valid:
        try:
            credentials.refresh(Request())
        except RefreshError as e:
            raise AuthenticationError(f"Failed to refresh Google credentials: {e}") from e
    if not credentials.token:
        raise AuthenticationError("Google credentials did not yield an access token.")
    return credentials.token


def _load_credentials(settings: Settings):
    scopes = settings.auth.scopes

    sa_path = settings.auth.service_account_path
    if sa_path and os.path.exists(sa_path):
        logger.debug("Using service account credentials from %s", sa_path)
        return service_account.Credentials.from_service_account_file(sa_path, scopes=scopes)

    token_path = settings.auth.token_path
    if token_path and os.path.exists(token_path):
        logger.debug("Using authorized-user credentials from %s", token_path)
        credentials = Credentials.from_authorized_user_file(token_path, scopes)
        if credentials.expired and credentials.refresh_token:
            try:
                credentials.refresh(Request())
            except RefreshError as e:
                raise AuthenticationError(f"Failed to refresh Google credentials: {e}") from e
            with open(token_path, "w", encoding="utf-8") as f:
                f.write(credentials.to_json())
        return credentials

    try:
        credentials, _ = google.auth.default(scopes=scopes)
    except DefaultCredentialsError:
        return None
    logger.debug("Using application default credentials")
    return credentials
