"""
Personal resolution service.

Personal resolutions are owned and mutable only by their author. They fill
the remaining cells of the author's cards once team-provided resolutions run out.
"""

from typing import List, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from bingo_backend.database.models import PersonalResolution
from bingo_backend.services.errors import NotFoundError
from bingo_backend.utils.constants import MAX_RESOLUTION_LENGTH
import logging

logger = logging.getLogger(__name__)


def _resolution_to_dict(resolution: PersonalResolution) -> Dict:
    return {
        "id": resolution.id,
        "text": resolution.text,
        "created_at": resolution.created_at.isoformat() if resolution.created_at else None,
        "updated_at": resolution.updated_at.isoformat() if resolution.updated_at else None,
    }


def _validate_text(text: str) -> str:
    text = (text or "").strip()
    if not text:
        raise ValueError("Resolution text cannot be empty")
    if len(text) > MAX_RESOLUTION_LENGTH:
        raise ValueError(f"Resolution text is too long (max {MAX_RESOLUTION_LENGTH} characters)")
    return text


async def _get_owned(session: AsyncSession, resolution_id: int, user_id: int) -> PersonalResolution:
    # Rows owned by other users are reported as missing
    result = await session.execute(
        select(PersonalResolution).where(
            PersonalResolution.id == resolution_id, PersonalResolution.user_id == user_id
        )
    )
    resolution = result.scalar_one_or_none()
    if resolution is None:
        raise NotFoundError("Resolution not found")
    return resolution


async def create_resolution(session: AsyncSession, user_id: int, text: str) -> Dict:
    """
    Create a personal resolution.

    Args:
        session: Database session
        user_id: Owner
        text: Resolution text (non-empty, at most 500 characters)

    Returns:
        Dict with resolution data
    """
    resolution = PersonalResolution(user_id=user_id, text=_validate_text(text))
    session.add(resolution)
    await session.flush()
    await session.refresh(resolution)
    return _resolution_to_dict(resolution)


async def list_resolutions(session: AsyncSession, user_id: int) -> List[Dict]:
    """List a user's personal resolutions, newest first."""
    result = await session.execute(
        select(PersonalResolution)
        .where(PersonalResolution.user_id == user_id)
        .order_by(PersonalResolution.created_at.desc(), PersonalResolution.id.desc())
    )
    return [_resolution_to_dict(r) for r in result.scalars().all()]


async def get_resolution(session: AsyncSession, resolution_id: int, user_id: int) -> Dict:
    """Get one of the user's personal resolutions."""
    return _resolution_to_dict(await _get_owned(session, resolution_id, user_id))


async def update_resolution(
    session: AsyncSession, resolution_id: int, user_id: int, text: str
) -> Dict:
    """Replace the text of one of the user's personal resolutions."""
    text = _validate_text(text)
    resolution = await _get_owned(session, resolution_id, user_id)
    resolution.text = text
    await session.flush()
    await session.refresh(resolution)
    return _resolution_to_dict(resolution)


async def delete_resolution(session: AsyncSession, resolution_id: int, user_id: int) -> None:
    """
    Delete one of the user's personal resolutions.

    Cells already generated from it keep their copied text.
    """
    await _get_owned(session, resolution_id, user_id)
    await session.execute(delete(PersonalResolution).where(PersonalResolution.id == resolution_id))
    await session.flush()
