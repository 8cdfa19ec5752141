"""Proof route handlers: uploading proof images and reviewing them."""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from bingo_backend.database.db import get_db_session
from bingo_backend.services import proof_service, storage_service
from bingo_backend.api.auth_dependencies import get_current_user
from bingo_backend.api.routes import http_error_for, limiter
from bingo_backend.models.schemas import ProofResponse, ProofDeclineRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/cells/{cell_id}/proofs", response_model=ProofResponse, status_code=201)
@limiter.limit("20/minute")
async def submit_proof(
    request: Request,
    cell_id: int,
    proof: UploadFile = File(...),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Upload a proof image for a cell of the caller's own card.

    Accepts JPEG, PNG, GIF or WebP up to 5MB as multipart field ``proof``.
    The stored file is removed again if the proof row cannot be committed.
    """
    try:
        content = await proof.read()
        result = await proof_service.submit_proof(
            session, cell_id, user["id"], content, proof.content_type, proof.filename
        )

        try:
            await session.commit()
        except Exception:
            loop = asyncio.get_event_loop()
            await loop.run_in_executor(None, storage_service.delete_file, result["file_url"])
            raise

        return result
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error submitting proof for cell {cell_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error submitting proof")


@router.get("/api/cells/{cell_id}/proofs", response_model=List[ProofResponse])
async def get_cell_proofs(
    cell_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List a cell's proofs, newest first. Team members only."""
    try:
        return await proof_service.get_cell_proofs(session, cell_id, user["id"])
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error fetching proofs for cell {cell_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching proofs")


@router.put("/api/proofs/{proof_id}/approve", response_model=ProofResponse)
async def approve_proof(
    proof_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Approve a teammate's pending proof."""
    try:
        return await proof_service.approve_proof(session, proof_id, user["id"])
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error approving proof {proof_id}: {e}")
        raise HTTPException(status_code=500, detail="Error approving proof")


@router.put("/api/proofs/{proof_id}/decline", response_model=ProofResponse)
async def decline_proof(
    proof_id: int,
    payload: Optional[ProofDeclineRequest] = None,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline a teammate's pending proof. A comment is required."""
    try:
        comment = payload.comment if payload else None
        return await proof_service.decline_proof(session, proof_id, user["id"], comment)
    except ValueError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Error declining proof {proof_id}: {e}")
        raise HTTPException(status_code=500, detail="Error declining proof")
