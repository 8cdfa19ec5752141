"""
User service layer.

Registration and credentials live outside this service; it only resolves
user records for authenticated requests and creates rows for seeding/tests.
"""

from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from bingo_backend.database.models import User
import logging

logger = logging.getLogger(__name__)


def _user_to_dict(user: User) -> Dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def create_user(session: AsyncSession, username: str, email: str) -> Dict:
    """
    Create a user record.

    Args:
        session: Database session
        username: Unique display name
        email: Email address (normalized to lowercase)

    Returns:
        User dictionary
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username:
        raise ValueError("Username is required")
    if not email:
        raise ValueError("Email is required")

    user = User(username=username, email=email)
    session.add(user)
    await session.flush()
    await session.refresh(user)
    logger.info(f"Created user {user.id} ({username})")
    return _user_to_dict(user)


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[Dict]:
    """
    Get user by email address.

    Args:
        session: Database session
        email: Email address (will be normalized to lowercase)

    Returns:
        User dictionary or None if not found
    """
    email = email.strip().lower() if email else None
    if not email:
        return None

    result = await session.execute(
        select(User).where(func.lower(func.trim(User.email)) == email).limit(1)
    )
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None
