"""Bingo game route handlers: starting the game, viewing cards, marking cells."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from bingo_backend.database.db import get_db_session
from bingo_backend.services import bingo_service, gameplay_service, team_service
from bingo_backend.api.auth_dependencies import get_current_user
from bingo_backend.api.routes import http_error_for
from bingo_backend.models.schemas import (
    StartGameResponse,
    BingoCardResponse,
    BingoCardSummaryResponse,
    CellStateUpdate,
    CellStateResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/teams/{team_id}/start-bingo", response_model=StartGameResponse)
async def start_bingo_game(
    team_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Start the team's game: generate every member's card and lock the team.

    Leader only. Fails with 400 (and the first under-provisioned member in
    the body) until every member wrote a resolution for every other member.
    """
    try:
        return await bingo_service.start_game(session, team_id, user["id"])
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error starting bingo game for team {team_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error starting bingo game")


@router.get("/api/teams/{team_id}/my-card", response_model=BingoCardResponse)
async def get_my_card(
    team_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the caller's own card."""
    try:
        await team_service.require_team_member(session, team_id, user["id"])
        return await bingo_service.get_card(session, team_id, user["id"])
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error fetching card for team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching bingo card")


@router.get("/api/teams/{team_id}/cards", response_model=List[BingoCardSummaryResponse])
async def get_team_cards(
    team_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a progress summary of every card in the team."""
    try:
        return await bingo_service.get_team_cards(session, team_id, user["id"])
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error fetching cards for team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching bingo cards")


@router.get("/api/teams/{team_id}/cards/{user_id}", response_model=BingoCardResponse)
async def get_user_card(
    team_id: int,
    user_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a teammate's card."""
    try:
        return await bingo_service.get_card_for_viewer(session, team_id, user["id"], user_id)
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error fetching card of user {user_id} in team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching bingo card")


@router.put("/api/cells/{cell_id}/state", response_model=CellStateResponse)
async def update_cell_state(
    cell_id: int,
    payload: CellStateUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Mark a cell of the caller's card completed, or revert it to to_complete."""
    try:
        return await gameplay_service.set_cell_state(session, cell_id, user["id"], payload.state)
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error updating cell {cell_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating cell state")
