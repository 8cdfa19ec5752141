"""Personal resolution route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from bingo_backend.database.db import get_db_session
from bingo_backend.services import resolution_service
from bingo_backend.api.auth_dependencies import get_current_user
from bingo_backend.api.routes import http_error_for
from bingo_backend.models.schemas import (
    MessageResponse,
    PersonalResolutionCreate,
    PersonalResolutionResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/resolutions", response_model=PersonalResolutionResponse, status_code=201)
async def create_resolution(
    payload: PersonalResolutionCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a personal resolution."""
    try:
        return await resolution_service.create_resolution(session, user["id"], payload.text)
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error creating resolution: {e}")
        raise HTTPException(status_code=500, detail="Error creating resolution")


@router.get("/api/resolutions", response_model=List[PersonalResolutionResponse])
async def list_resolutions(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List the caller's personal resolutions."""
    try:
        return await resolution_service.list_resolutions(session, user["id"])
    except Exception as e:
        logger.error(f"Error listing resolutions: {e}")
        raise HTTPException(status_code=500, detail="Error listing resolutions")


@router.get("/api/resolutions/{resolution_id}", response_model=PersonalResolutionResponse)
async def get_resolution(
    resolution_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get one of the caller's personal resolutions."""
    try:
        return await resolution_service.get_resolution(session, resolution_id, user["id"])
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error fetching resolution {resolution_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching resolution")


@router.put("/api/resolutions/{resolution_id}", response_model=PersonalResolutionResponse)
async def update_resolution(
    resolution_id: int,
    payload: PersonalResolutionCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update one of the caller's personal resolutions."""
    try:
        return await resolution_service.update_resolution(
            session, resolution_id, user["id"], payload.text
        )
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error updating resolution {resolution_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating resolution")


@router.delete("/api/resolutions/{resolution_id}", response_model=MessageResponse)
async def delete_resolution(
    resolution_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete one of the caller's personal resolutions."""
    try:
        await resolution_service.delete_resolution(session, resolution_id, user["id"])
        return {"status": "ok", "message": "Resolution deleted"}
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error deleting resolution {resolution_id}: {e}")
        raise HTTPException(status_code=500, detail="Error deleting resolution")
