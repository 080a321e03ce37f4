"""
Inspection of the authentication tokens stored on integrations.
"""

import logging
import time
from typing import Optional

import jwt

logger = logging.getLogger(__name__)


def token_expiry(token: str) -> Optional[float]:
    """
    Return the ``exp`` claim of a JWT as a UNIX timestamp.

    The signature is not verified; the backends do that. Opaque tokens
    and tokens without an ``exp`` claim return None.
    """
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None

    exp = payload.get("exp")
    if exp is None:
        return None
    try:
        return float(exp)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed exp claim: {exp!r}")
        return None


def is_token_expired(token: str, leeway: float = 0.0, now: Optional[float] = None) -> bool:
    """Whether a JWT token has expired; opaque tokens never expire here."""
    expiry = token_expiry(token)
    if expiry is None:
        return False
    current = time.time() if now is None else now
    return expiry <= current + leeway
