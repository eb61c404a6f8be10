"""
JWT creation and verification for the local auth collaborator.

Tokens are signed with RS256: only this process holds the private key,
verifiers only need the public key.

Token structure (claims):
    - ``user_id``  -- integer primary key of the authenticated user.
    - ``username`` -- human-readable identifier.
    - ``iat``      -- issued-at timestamp (UTC epoch seconds).
    - ``exp``      -- expiration timestamp (UTC epoch seconds).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

DEFAULT_ALLOWED_ALGORITHMS = ["RS256"]
REQUIRED_TOKEN_CLAIMS = ["user_id", "username", "iat", "exp"]


def create_token(
    user_id: int,
    username: str,
    private_key: str,
    expiry_hours: int,
) -> str:
    """
    Create an RS256-signed JWT containing canonical auth claims.

    Args:
        user_id: Primary key of the authenticated user.  Must be a
            positive integer.
        username: Display name of the user.  Must be a non-empty string.
        private_key: The RSA private key in PEM format.
        expiry_hours: Number of hours from *now* until the token expires.

    Returns:
        A compact JWS string suitable for an ``Authorization: Bearer`` header.

    Raises:
        ValueError: If *user_id* is not positive or *username* is blank.
    """
    if int(user_id) <= 0:
        raise ValueError("user_id must be a positive integer")
    if not isinstance(username, str) or not username.strip():
        raise ValueError("username must be a non-empty string")

    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=int(expiry_hours))

    payload: dict[str, Any] = {
        "user_id": int(user_id),
        "username": username,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


def verify_token(
    token: str,
    public_key: str,
    leeway: int = 30,
    algorithms: list[str] | None = None,
) -> dict[str, Any] | None:
    """
    Decode and validate a JWT, returning the payload on success.

    Performs signature, expiry and required-claim checks, then validates
    that ``user_id`` is a positive integer and ``username`` a non-empty
    string.

    Args:
        token: The encoded JWT string to verify.
        public_key: The RSA public key in PEM format.
        leeway: Seconds of tolerated clock skew for ``exp``/``iat``.
        algorithms: Acceptable signing algorithms.  Defaults to
            ``["RS256"]`` to prevent algorithm-confusion attacks.

    Returns:
        The decoded payload, or ``None`` if verification fails for any reason.
    """
    try:
        decoded = jwt.decode(
            token,
            public_key,
            algorithms=algorithms or DEFAULT_ALLOWED_ALGORITHMS,
            options={"require": REQUIRED_TOKEN_CLAIMS},
            leeway=leeway,
        )
    except jwt.InvalidTokenError:
        return None

    user_id = decoded.get("user_id")
    username = decoded.get("username")

    # bool is an int subclass
    if not isinstance(user_id, int) or isinstance(user_id, bool) or user_id <= 0:
        return None
    if not isinstance(username, str) or not username.strip():
        return None
    return decoded
