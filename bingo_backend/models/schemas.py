"""
Pydantic models for API request/response validation.
"""

from typing import Optional, List
from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error body returned for business-rule violations."""

    detail: str
    details: Optional[str] = None


class MessageResponse(BaseModel):
    """Generic status message."""

    status: str = "ok"
    message: str


# ──────────────────────────────────────────────────────────────
# Teams
# ──────────────────────────────────────────────────────────────


class TeamCreate(BaseModel):
    """Request to create a team."""

    name: str = Field(..., min_length=1, max_length=255)


class TeamResolutionUpdate(BaseModel):
    """Request to set the team-wide (joker) resolution."""

    resolution_text: str = Field(..., min_length=1, max_length=500)


class TeamResponse(BaseModel):
    """Team data."""

    id: int
    name: str
    leader_user_id: int
    team_resolution_text: Optional[str] = None
    status: str
    created_at: Optional[str] = None
    role: Optional[str] = None


class TeamMemberResponse(BaseModel):
    """A member of a team."""

    user_id: int
    username: str
    role: str
    joined_at: Optional[str] = None


class TeamDetailsResponse(BaseModel):
    """Team with members and the caller's role."""

    team: TeamResponse
    members: List[TeamMemberResponse]
    my_role: str


class InvitationCreate(BaseModel):
    """Request to invite a user by email."""

    email: str = Field(..., min_length=3, max_length=255)


class InvitationResponse(BaseModel):
    """Created invitation."""

    id: int
    team_id: int
    invited_email: str
    invite_code: str


class JoinTeamRequest(BaseModel):
    """Request to accept an invitation."""

    invite_code: str = Field(..., min_length=1)


class JoinTeamResponse(BaseModel):
    """Result of joining a team."""

    team_id: int


# ──────────────────────────────────────────────────────────────
# Resolutions
# ──────────────────────────────────────────────────────────────


class ProvidedResolutionCreate(BaseModel):
    """Request to write a resolution for another member."""

    to_user_id: int
    text: str = Field(..., min_length=1, max_length=500)


class ProvidedResolutionResponse(BaseModel):
    """A resolution one member wrote for another."""

    id: int
    team_id: int
    from_user_id: int
    to_user_id: int
    text: str
    from_username: Optional[str] = None


class ResolutionToCreateResponse(BaseModel):
    """Another member and the caller's resolution for them, if any."""

    user_id: int
    username: str
    resolution_provided: bool
    resolution_text: Optional[str] = None
    resolution_id: Optional[int] = None


class PersonalResolutionCreate(BaseModel):
    """Request to create or update a personal resolution."""

    text: str = Field(..., min_length=1, max_length=500)


class PersonalResolutionResponse(BaseModel):
    """A personal resolution."""

    id: int
    text: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ──────────────────────────────────────────────────────────────
# Bingo cards
# ──────────────────────────────────────────────────────────────


class StartGameResponse(BaseModel):
    """Result of starting a team's game."""

    team_id: int
    status: str
    cards_generated: int


class BingoCellResponse(BaseModel):
    """A single cell of a bingo card."""

    id: int
    card_id: int
    row_num: int
    col_num: int
    resolution_text: str
    is_joker: bool
    is_empty: bool
    source_type: str
    source_resolution_id: Optional[int] = None
    state: str


class BingoCardResponse(BaseModel):
    """A card with its cells in row-major order."""

    id: int
    team_id: int
    user_id: int
    grid_size: int
    cells: List[BingoCellResponse]


class BingoCardSummaryResponse(BaseModel):
    """Card summary for the team overview."""

    id: int
    team_id: int
    user_id: int
    username: str
    grid_size: int
    completed_cells: int
    playable_cells: int


class CellStateUpdate(BaseModel):
    """Request to change a cell's completion state."""

    state: str


class CellStateResponse(BaseModel):
    """Updated cell state."""

    id: int
    card_id: int
    state: str


# ──────────────────────────────────────────────────────────────
# Proofs
# ──────────────────────────────────────────────────────────────


class ProofResponse(BaseModel):
    """A proof attached to a cell."""

    id: int
    cell_id: int
    file_url: str
    file_type: str
    status: str
    reviewed_by_user_id: Optional[int] = None
    reviewed_by_username: Optional[str] = None
    review_comment: Optional[str] = None
    uploaded_at: Optional[str] = None
    reviewed_at: Optional[str] = None


class ProofDeclineRequest(BaseModel):
    """Request to decline a proof. The comment is validated by the service."""

    comment: Optional[str] = None
