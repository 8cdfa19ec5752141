"""Team formation route handlers: teams, invitations and provided resolutions."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from bingo_backend.database.db import get_db_session
from bingo_backend.services import team_service
from bingo_backend.api.auth_dependencies import get_current_user
from bingo_backend.api.routes import http_error_for
from bingo_backend.models.schemas import (
    TeamCreate,
    TeamResolutionUpdate,
    TeamResponse,
    TeamDetailsResponse,
    InvitationCreate,
    InvitationResponse,
    JoinTeamRequest,
    JoinTeamResponse,
    ProvidedResolutionCreate,
    ProvidedResolutionResponse,
    ResolutionToCreateResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/teams", response_model=TeamResponse, status_code=201)
async def create_team(
    payload: TeamCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a team; the caller becomes its leader."""
    try:
        return await team_service.create_team(session, payload.name, user["id"])
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error creating team: {e}")
        raise HTTPException(status_code=500, detail="Error creating team")


@router.get("/api/teams", response_model=List[TeamResponse])
async def get_my_teams(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the teams the caller belongs to."""
    try:
        return await team_service.get_user_teams(session, user["id"])
    except Exception as e:
        logger.error(f"Error fetching teams: {e}")
        raise HTTPException(status_code=500, detail="Error fetching teams")


@router.post("/api/teams/join", response_model=JoinTeamResponse)
async def join_team(
    payload: JoinTeamRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Join a team with an invite code."""
    try:
        return await team_service.join_team(session, user["id"], payload.invite_code)
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error joining team: {e}")
        raise HTTPException(status_code=500, detail="Error joining team")


@router.get("/api/teams/{team_id}", response_model=TeamDetailsResponse)
async def get_team(
    team_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get team details with members. Members only."""
    try:
        return await team_service.get_team_details(session, team_id, user["id"])
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error fetching team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching team")


@router.put("/api/teams/{team_id}/resolution", response_model=TeamResponse)
async def set_team_resolution(
    team_id: int,
    payload: TeamResolutionUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Set the team resolution shown in every card's center cell. Leader only."""
    try:
        return await team_service.set_team_resolution(
            session, team_id, user["id"], payload.resolution_text
        )
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error setting team resolution for team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error setting team resolution")


@router.post("/api/teams/{team_id}/invitations", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    team_id: int,
    payload: InvitationCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Invite a user by email. Leader only."""
    try:
        return await team_service.create_invitation(session, team_id, user["id"], payload.email)
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error creating invitation for team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error creating invitation")


@router.post("/api/teams/{team_id}/provided-resolutions", response_model=ProvidedResolutionResponse)
async def create_provided_resolution(
    team_id: int,
    payload: ProvidedResolutionCreate,
    response: Response,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Write (or rewrite) the resolution for another member's card.

    Returns 201 when created, 200 when an existing resolution was updated.
    """
    try:
        resolution, created = await team_service.upsert_provided_resolution(
            session, team_id, user["id"], payload.to_user_id, payload.text
        )
        response.status_code = 201 if created else 200
        return resolution
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error saving provided resolution for team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error saving resolution")


@router.get(
    "/api/teams/{team_id}/provided-resolutions/to-create",
    response_model=List[ResolutionToCreateResponse],
)
async def get_resolutions_to_create(
    team_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List teammates and whether the caller has written their resolution yet."""
    try:
        return await team_service.get_resolutions_to_create(session, team_id, user["id"])
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error fetching resolutions to create for team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching resolutions")


@router.get(
    "/api/teams/{team_id}/provided-resolutions/for-me",
    response_model=List[ProvidedResolutionResponse],
)
async def get_resolutions_for_me(
    team_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List the resolutions teammates wrote for the caller."""
    try:
        return await team_service.get_resolutions_for_me(session, team_id, user["id"])
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error fetching resolutions for me in team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching resolutions")
