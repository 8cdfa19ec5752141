"""
Gameplay service: marking bingo card cells completed or to-complete.
"""

from typing import Dict, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from bingo_backend.database.models import BingoCard, BingoCardCell, CellState
from bingo_backend.services.errors import (
    EmptyCellNotCompletableError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
)
import logging

logger = logging.getLogger(__name__)

VALID_CELL_STATES = {state.value for state in CellState}


async def get_cell_with_card(
    session: AsyncSession, cell_id: int
) -> Tuple[BingoCardCell, BingoCard]:
    """
    Load a cell together with the card that owns it.

    Raises:
        NotFoundError: Cell does not exist
    """
    result = await session.execute(
        select(BingoCardCell, BingoCard)
        .join(BingoCard, BingoCard.id == BingoCardCell.card_id)
        .where(BingoCardCell.id == cell_id)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("Cell not found")
    return row[0], row[1]


async def set_cell_state(
    session: AsyncSession, cell_id: int, requester_id: int, new_state: Optional[str]
) -> Dict:
    """
    Set a cell's completion state.

    Only the card owner may change a cell. Both directions are always
    allowed (completed -> to_complete reverts), except that an empty
    placeholder can never become completed. Joker cells behave like any
    other cell.

    Args:
        session: Database session
        cell_id: Cell ID
        requester_id: User making the change
        new_state: "to_complete" or "completed"

    Returns:
        Dict with cell id and new state

    Raises:
        NotFoundError, ForbiddenError, InvalidTransitionError,
        EmptyCellNotCompletableError
    """
    cell, card = await get_cell_with_card(session, cell_id)

    if card.user_id != requester_id:
        raise ForbiddenError("You can only update your own card")

    if new_state not in VALID_CELL_STATES:
        raise InvalidTransitionError('Invalid state. Must be "to_complete" or "completed"')

    if cell.is_empty and new_state == CellState.COMPLETED.value:
        raise EmptyCellNotCompletableError()

    cell.state = new_state
    await session.flush()

    logger.debug(f"User {requester_id} set cell {cell_id} to {new_state}")
    return {"id": cell.id, "card_id": card.id, "state": cell.state}
