"""
Signed tokens for one-click email opt-out links.

Every notification email carries a link that switches the recipient's
email channel off without logging in. Tokens are stateless, signed with
UNSUBSCRIBE_SECRET_KEY and expire after 90 days.
"""

import hashlib
import os
from typing import Optional
from urllib.parse import quote

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

UNSUBSCRIBE_SALT = "email-opt-out"
DEFAULT_MAX_AGE_DAYS = 90


def _get_serializer(secret_key: Optional[str] = None) -> URLSafeTimedSerializer:
    """
    Serializer for token generation and validation.

    Raises:
        ValueError: If no secret is given and UNSUBSCRIBE_SECRET_KEY is not set
    """
    secret_key = secret_key or os.getenv("UNSUBSCRIBE_SECRET_KEY")
    if not secret_key:
        raise ValueError("UNSUBSCRIBE_SECRET_KEY environment variable must be set.")

    return URLSafeTimedSerializer(
        secret_key,
        salt=UNSUBSCRIBE_SALT,
        signer_kwargs={"digest_method": hashlib.sha256},
    )


def generate_unsubscribe_token(user_id: str, secret_key: Optional[str] = None) -> str:
    """
    Generate a signed opt-out token for a user.

    Args:
        user_id: User's unique identifier (UUID)
        secret_key: Signing secret (defaults to UNSUBSCRIBE_SECRET_KEY)

    Returns:
        URL-safe token string (format: payload.timestamp.signature)
    """
    return _get_serializer(secret_key).dumps(user_id)


def validate_unsubscribe_token(
    token: str,
    secret_key: Optional[str] = None,
    max_age_days: int = DEFAULT_MAX_AGE_DAYS,
) -> Optional[str]:
    """
    Validate a token and extract the user_id.

    Never raises - returns None for any invalid, expired or unsigned token.

    Examples:
        >>> token = generate_unsubscribe_token("user-123", "secret")
        >>> validate_unsubscribe_token(token, "secret")
        'user-123'
        >>> validate_unsubscribe_token("invalid-token", "secret") is None
        True
    """
    try:
        serializer = _get_serializer(secret_key)
        user_id = serializer.loads(token, max_age=max_age_days * 24 * 60 * 60)
    except (BadSignature, SignatureExpired, ValueError, TypeError):
        return None

    return user_id if isinstance(user_id, str) else None


def build_unsubscribe_url(
    frontend_base_url: str, user_id: str, secret_key: Optional[str] = None
) -> str:
    """Link the email footer points to."""
    token = generate_unsubscribe_token(user_id, secret_key)
    return f"{frontend_base_url.rstrip('/')}/unsubscribe?token={quote(token)}"


def unsubscribe_from_email(
    token: str, profiles, secret_key: Optional[str] = None
) -> Optional[str]:
    """
    Apply a one-click opt-out.

    Args:
        token: Token from the link
        profiles: ProfileStore used to switch the email preference off

    Returns:
        The user_id that was unsubscribed, or None if the token or user is invalid
    """
    user_id = validate_unsubscribe_token(token, secret_key)
    if user_id is None:
        return None

    if not profiles.disable_email_notifications(user_id):
        return None
    return user_id
