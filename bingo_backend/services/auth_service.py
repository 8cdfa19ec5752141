"""
Token handling for authenticated requests.

Issues and verifies HS256 JWT access tokens carrying the user id.
"""

import os
import logging
from datetime import timedelta
from typing import Optional, Dict

import jwt
from dotenv import load_dotenv

from bingo_backend.utils.datetime_utils import utcnow

load_dotenv()

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))


def create_access_token(user_id: int, expires_in_hours: Optional[int] = None) -> str:
    """
    Create a signed access token for a user.

    Args:
        user_id: User ID to embed in the token
        expires_in_hours: Override for the configured lifetime

    Returns:
        Encoded JWT string
    """
    hours = expires_in_hours if expires_in_hours is not None else JWT_EXPIRATION_HOURS
    now = utcnow()
    payload = {
        "user_id": user_id,
        "iat": now,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict]:
    """
    Verify a token and return its payload.

    Returns:
        Decoded payload, or None if the token is expired or invalid
    """
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected invalid token: {e}")
        return None
