"""
Service-account credentials for BigQuery.
"""
from __future__ import annotations

from google.oauth2 import service_account

from src.core.errors import AuthFailureError
from src.core.logging import get_logger, register_secret

logger = get_logger(__name__)

_TOKEN_URI = "https://oauth2.googleapis.com/token"
_SCOPES = ["https://www.googleapis.com/auth/bigquery"]


def get_credentials(client_email: str, private_key: str) -> service_account.Credentials:
    """Build credentials from a client email + PEM private key.

    Raises
    ------
    AuthFailureError
        If either value is missing or the key cannot be parsed.  The key
        itself never appears in the message.
    """
    if not client_email or not private_key:
        raise AuthFailureError("Google service account is not configured")

    register_secret(private_key)
    info = {
        "type": "service_account",
        "client_email": client_email,
        "private_key": private_key,
        "token_uri": _TOKEN_URI,
    }
    try:
        credentials = service_account.Credentials.from_service_account_info(info, scopes=_SCOPES)
    except (ValueError, TypeError) as exc:
        logger.warning("Invalid service account key for %s", client_email)
        raise AuthFailureError(
            f"Unable to authenticate as {client_email}: invalid private key"
        ) from exc
    logger.debug("Service account credentials created for %s", client_email)
    return credentials
