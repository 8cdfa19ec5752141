"""
Proof service: submitting evidence for a cell and peer review.

A card owner attaches image proofs to their cells; any other member of the
team may approve or decline a pending proof (declining requires a comment).
Proofs are never superseded: every submission stays in the cell's history.
Review is one-way, PENDING -> APPROVED | DECLINED.
"""

import asyncio
import os
from typing import List, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from bingo_backend.database.models import (
    BingoCard,
    BingoCardCell,
    Proof,
    ProofStatus,
    User,
)
from bingo_backend.services import storage_service, team_service
from bingo_backend.services.gameplay_service import get_cell_with_card
from bingo_backend.services.errors import (
    CommentRequiredError,
    ForbiddenError,
    InvalidProofFileError,
    InvalidTransitionError,
    NotFoundError,
    ProofAlreadyReviewedError,
    SelfReviewError,
)
from bingo_backend.utils.constants import (
    ALLOWED_PROOF_CONTENT_TYPES,
    ALLOWED_PROOF_EXTENSIONS,
    MAX_PROOF_FILE_SIZE_BYTES,
)
from bingo_backend.utils.datetime_utils import utcnow
import logging

logger = logging.getLogger(__name__)

DECISION_APPROVE = "approve"
DECISION_DECLINE = "decline"

_DECISION_STATUS = {
    DECISION_APPROVE: ProofStatus.APPROVED.value,
    DECISION_DECLINE: ProofStatus.DECLINED.value,
}


def _proof_to_dict(proof: Proof, reviewed_by_username: Optional[str] = None) -> Dict:
    return {
        "id": proof.id,
        "cell_id": proof.cell_id,
        "file_url": proof.file_url,
        "file_type": proof.file_type,
        "status": proof.status,
        "reviewed_by_user_id": proof.reviewed_by_user_id,
        "reviewed_by_username": reviewed_by_username,
        "review_comment": proof.review_comment,
        "uploaded_at": proof.uploaded_at.isoformat() if proof.uploaded_at else None,
        "reviewed_at": proof.reviewed_at.isoformat() if proof.reviewed_at else None,
    }


def validate_proof_file(file_bytes: bytes, content_type: Optional[str], filename: Optional[str]) -> str:
    """
    Check an upload against the size limit and the image whitelist.

    Both the declared MIME type and the filename extension must be allowed.
    The bytes themselves are not inspected.

    Returns:
        The normalized (lowercase) file extension

    Raises:
        InvalidProofFileError: Empty, too large, or not an allowed image type
    """
    if not file_bytes:
        raise InvalidProofFileError("No file uploaded")

    if len(file_bytes) > MAX_PROOF_FILE_SIZE_BYTES:
        raise InvalidProofFileError(
            f"File size exceeds maximum of {MAX_PROOF_FILE_SIZE_BYTES // (1024 * 1024)}MB"
        )

    ct = (content_type or "").lower()
    if ct not in ALLOWED_PROOF_CONTENT_TYPES:
        raise InvalidProofFileError("Only image files are allowed (JPEG, PNG, GIF, WebP)")

    extension = os.path.splitext(filename or "")[1].lower()
    if extension not in ALLOWED_PROOF_EXTENSIONS:
        raise InvalidProofFileError("Only image files are allowed (JPEG, PNG, GIF, WebP)")

    return extension


async def submit_proof(
    session: AsyncSession,
    cell_id: int,
    requester_id: int,
    file_bytes: bytes,
    content_type: Optional[str],
    filename: Optional[str],
) -> Dict:
    """
    Attach a proof image to a cell of the requester's own card.

    Args:
        session: Database session
        cell_id: Cell ID
        requester_id: Uploading user (must own the card)
        file_bytes: Raw file content
        content_type: Declared MIME type
        filename: Original filename (used for the extension whitelist)

    Returns:
        Dict with the new pending proof

    Raises:
        NotFoundError, ForbiddenError, InvalidProofFileError
    """
    cell, card = await get_cell_with_card(session, cell_id)
    if card.user_id != requester_id:
        raise ForbiddenError("You can only submit proof for your own card")

    extension = validate_proof_file(file_bytes, content_type, filename)
    content_type = content_type.lower()

    loop = asyncio.get_event_loop()
    file_url = await loop.run_in_executor(
        None, storage_service.store_proof_file, file_bytes, cell.id, extension, content_type
    )

    try:
        proof = Proof(
            cell_id=cell.id,
            file_url=file_url,
            file_type=content_type,
            status=ProofStatus.PENDING.value,
        )
        session.add(proof)
        await session.flush()
        await session.refresh(proof)
    except Exception:
        await loop.run_in_executor(None, storage_service.delete_file, file_url)
        raise

    logger.info(f"User {requester_id} submitted proof {proof.id} for cell {cell.id}")
    return _proof_to_dict(proof)


async def get_cell_proofs(session: AsyncSession, cell_id: int, requester_id: int) -> List[Dict]:
    """
    List every proof of a cell, newest first. Team members only.
    """
    _, card = await get_cell_with_card(session, cell_id)
    await team_service.require_team_member(session, card.team_id, requester_id)

    result = await session.execute(
        select(Proof, User.username)
        .outerjoin(User, User.id == Proof.reviewed_by_user_id)
        .where(Proof.cell_id == cell_id)
        .order_by(Proof.uploaded_at.desc(), Proof.id.desc())
    )
    return [_proof_to_dict(proof, username) for proof, username in result.all()]


async def review_proof(
    session: AsyncSession,
    proof_id: int,
    requester_id: int,
    decision: str,
    comment: Optional[str] = None,
) -> Dict:
    """
    Approve or decline a pending proof.

    Args:
        session: Database session
        proof_id: Proof ID
        requester_id: Reviewer (a teammate of the card owner)
        decision: "approve" or "decline"
        comment: Required (non-blank) when declining, optional otherwise

    Returns:
        Dict with the reviewed proof

    Raises:
        NotFoundError: Proof does not exist
        ForbiddenError: Reviewer is not a member of the card's team
        SelfReviewError: Reviewer owns the card
        InvalidTransitionError: Unknown decision
        CommentRequiredError: Declining without a comment
        ProofAlreadyReviewedError: Proof is already approved or declined
    """
    result = await session.execute(
        select(Proof, BingoCard.user_id, BingoCard.team_id)
        .join(BingoCardCell, BingoCardCell.id == Proof.cell_id)
        .join(BingoCard, BingoCard.id == BingoCardCell.card_id)
        .where(Proof.id == proof_id)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("Proof not found")
    proof, card_owner_id, team_id = row

    if not await team_service.is_team_member(session, team_id, requester_id):
        raise ForbiddenError("Not a team member")

    if card_owner_id == requester_id:
        raise SelfReviewError()

    if decision not in _DECISION_STATUS:
        raise InvalidTransitionError('Invalid decision. Must be "approve" or "decline"')

    comment = (comment or "").strip() or None
    if decision == DECISION_DECLINE and comment is None:
        raise CommentRequiredError()

    if proof.status != ProofStatus.PENDING.value:
        raise ProofAlreadyReviewedError(proof.status)

    new_status = _DECISION_STATUS[decision]
    reviewed = await session.execute(
        update(Proof)
        .where(Proof.id == proof_id, Proof.status == ProofStatus.PENDING.value)
        .values(
            status=new_status,
            reviewed_by_user_id=requester_id,
            reviewed_at=utcnow(),
            review_comment=comment,
        )
        .execution_options(synchronize_session=False)
    )
    if reviewed.rowcount != 1:
        # Another reviewer got there first
        await session.refresh(proof)
        raise ProofAlreadyReviewedError(proof.status)

    await session.refresh(proof)
    logger.info(f"User {requester_id} {new_status} proof {proof_id}")
    return _proof_to_dict(proof)


async def approve_proof(session: AsyncSession, proof_id: int, requester_id: int) -> Dict:
    """Approve a pending proof."""
    return await review_proof(session, proof_id, requester_id, DECISION_APPROVE)


async def decline_proof(
    session: AsyncSession, proof_id: int, requester_id: int, comment: Optional[str]
) -> Dict:
    """Decline a pending proof with a comment."""
    return await review_proof(session, proof_id, requester_id, DECISION_DECLINE, comment)
