"""
Signed launch tokens

A launch token is an HS256 JWT embedded in the content root URL handed to the
player. It scopes content retrieval to one package of one tenant for a
limited time, so relative asset URLs inside the content work without the
player having to attach identity headers.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from scorm_backend.config import ScormSettings, get_settings
from scorm_backend.services.exceptions import AccessDenied

ALGORITHM = "HS256"
AUDIENCE = "scorm-content"


def create_launch_token(
    package_id: int,
    tenant_id: str,
    learner_id: str,
    settings: Optional[ScormSettings] = None,
) -> tuple:
    """Return ``(token, expires_at)`` for a package launch."""
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(seconds=settings.launch_ttl_seconds)
    payload = {
        "pkg": package_id,
        "tnt": tenant_id,
        "sub": learner_id,
        "aud": AUDIENCE,
        "iat": now,
        "exp": expire,
    }
    token = jwt.encode(payload, settings.launch_secret, algorithm=ALGORITHM)
    return token, expire


def decode_launch_token(
    token: str, settings: Optional[ScormSettings] = None
) -> dict:
    """Validate a launch token and return its claims.

    Raises AccessDenied when the token is expired, tampered with or malformed.
    """
    settings = settings or get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.launch_secret,
            algorithms=[ALGORITHM],
            audience=AUDIENCE,
            options={"require": ["exp", "pkg", "tnt"]},
        )
    except jwt.ExpiredSignatureError:
        raise AccessDenied("Launch token has expired")
    except jwt.InvalidTokenError:
        raise AccessDenied("Invalid launch token")
    return claims
