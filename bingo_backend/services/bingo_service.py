"""
Bingo game service: card generation and the game start gate.

A team leader starts the game once every member has written a resolution
for every other member. Starting generates one card per member and flips
the team to ``started`` in a single unit of work: either every card exists
and the team is started, or nothing changed.

Card layout:
    - the center cell is the joker and carries the team resolution
    - other cells are filled row-major from the member's shuffled resolution
      pool (provided resolutions first, then personal ones)
    - once the pool is exhausted the remaining cells become empty placeholders
"""

import random
from typing import List, Dict, Optional, NamedTuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, case
from bingo_backend.database.models import (
    Team,
    TeamStatus,
    TeamProvidedResolution,
    PersonalResolution,
    BingoCard,
    BingoCardCell,
    CellSourceType,
    CellState,
    User,
)
from bingo_backend.services import team_service
from bingo_backend.services.errors import (
    AlreadyStartedError,
    DuplicateCardError,
    ForbiddenError,
    InsufficientMembersError,
    MissingTeamResolutionError,
    NotFoundError,
    ResolutionsIncompleteError,
)
from bingo_backend.utils.constants import GRID_SIZE, EMPTY_CELL_TEXT
import logging

logger = logging.getLogger(__name__)

MIN_TEAM_MEMBERS = 2

_system_random = random.SystemRandom()


class PoolEntry(NamedTuple):
    """A candidate resolution for one member's card, tagged with its provenance."""

    text: str
    source_type: str
    source_id: Optional[int]


def _cell_to_dict(cell: BingoCardCell) -> Dict:
    return {
        "id": cell.id,
        "card_id": cell.card_id,
        "row_num": cell.row_num,
        "col_num": cell.col_num,
        "resolution_text": cell.resolution_text,
        "is_joker": cell.is_joker,
        "is_empty": cell.is_empty,
        "source_type": cell.source_type,
        "source_resolution_id": cell.source_resolution_id,
        "state": cell.state,
    }


def _card_to_dict(card: BingoCard, cells: Optional[List[BingoCardCell]] = None) -> Dict:
    data = {
        "id": card.id,
        "team_id": card.team_id,
        "user_id": card.user_id,
        "grid_size": card.grid_size,
    }
    if cells is not None:
        data["cells"] = [_cell_to_dict(c) for c in cells]
    return data


# ──────────────────────────────────────────────────────────────
# Resolution pool
# ──────────────────────────────────────────────────────────────


async def build_resolution_pool(
    session: AsyncSession, team_id: int, user_id: int
) -> List[PoolEntry]:
    """
    Collect every resolution that may fill a member's card.

    Resolutions other members wrote for the user in this team come first,
    followed by the user's personal resolutions. Order within each group is
    irrelevant because the card generator shuffles the pool. Nothing is
    deduplicated or truncated.

    Args:
        session: Database session
        team_id: Team ID
        user_id: Member whose card is being filled

    Returns:
        List of PoolEntry
    """
    provided_result = await session.execute(
        select(TeamProvidedResolution.id, TeamProvidedResolution.text)
        .where(
            TeamProvidedResolution.team_id == team_id,
            TeamProvidedResolution.to_user_id == user_id,
        )
        .order_by(TeamProvidedResolution.id)
    )
    personal_result = await session.execute(
        select(PersonalResolution.id, PersonalResolution.text)
        .where(PersonalResolution.user_id == user_id)
        .order_by(PersonalResolution.id)
    )

    pool = [
        PoolEntry(text=row.text, source_type=CellSourceType.TEAM_PROVIDED.value, source_id=row.id)
        for row in provided_result.all()
    ]
    pool.extend(
        PoolEntry(text=row.text, source_type=CellSourceType.PERSONAL.value, source_id=row.id)
        for row in personal_result.all()
    )
    return pool


# ──────────────────────────────────────────────────────────────
# Card generation
# ──────────────────────────────────────────────────────────────


def layout_cells(
    pool: List[PoolEntry],
    team_resolution_text: str,
    grid_size: int = GRID_SIZE,
    rng: Optional[random.Random] = None,
) -> List[Dict]:
    """
    Lay out the cells of one card.

    Shuffles a copy of the pool uniformly, then walks the grid row-major.
    The center cell is always the joker; every other cell takes the next
    pool entry or, once the pool is exhausted, the empty placeholder.

    Args:
        pool: Candidate resolutions (not modified)
        team_resolution_text: Joker text
        grid_size: Odd grid dimension N
        rng: Random source; defaults to the system random generator

    Returns:
        N*N cell dicts in row-major order, ready to become BingoCardCell rows
    """
    if grid_size < 1 or grid_size % 2 == 0:
        raise ValueError(f"Grid size must be a positive odd number, got {grid_size}")

    shuffled = list(pool)
    (rng or _system_random).shuffle(shuffled)
    entries = iter(shuffled)

    center = grid_size // 2
    cells = []
    for row in range(grid_size):
        for col in range(grid_size):
            if row == center and col == center:
                cells.append(
                    {
                        "row_num": row,
                        "col_num": col,
                        "resolution_text": team_resolution_text,
                        "is_joker": True,
                        "is_empty": False,
                        "source_type": CellSourceType.TEAM_RESOLUTION.value,
                        "source_resolution_id": None,
                        "state": CellState.TO_COMPLETE.value,
                    }
                )
                continue

            entry = next(entries, None)
            if entry is None:
                cells.append(
                    {
                        "row_num": row,
                        "col_num": col,
                        "resolution_text": EMPTY_CELL_TEXT,
                        "is_joker": False,
                        "is_empty": True,
                        "source_type": CellSourceType.NONE.value,
                        "source_resolution_id": None,
                        "state": CellState.TO_COMPLETE.value,
                    }
                )
            else:
                cells.append(
                    {
                        "row_num": row,
                        "col_num": col,
                        "resolution_text": entry.text,
                        "is_joker": False,
                        "is_empty": False,
                        "source_type": entry.source_type,
                        "source_resolution_id": entry.source_id,
                        "state": CellState.TO_COMPLETE.value,
                    }
                )
    return cells


async def generate_card(
    session: AsyncSession,
    team_id: int,
    user_id: int,
    team_resolution_text: str,
    grid_size: int = GRID_SIZE,
    rng: Optional[random.Random] = None,
) -> Dict:
    """
    Generate and persist one member's card.

    The card row and all of its cells are written inside a savepoint, so a
    failure leaves neither behind. Only ``start_game`` should call this.

    Args:
        session: Database session (caller owns the transaction)
        team_id: Team ID
        user_id: Card owner
        team_resolution_text: Joker text
        grid_size: Odd grid dimension
        rng: Optional random source for the shuffle

    Returns:
        Dict with card data including cells

    Raises:
        DuplicateCardError: A card already exists for (team, user)
    """
    existing = await session.execute(
        select(BingoCard.id).where(BingoCard.team_id == team_id, BingoCard.user_id == user_id)
    )
    if existing.scalar_one_or_none() is not None:
        raise DuplicateCardError(team_id, user_id)

    pool = await build_resolution_pool(session, team_id, user_id)
    layout = layout_cells(pool, team_resolution_text, grid_size=grid_size, rng=rng)

    async with session.begin_nested():
        card = BingoCard(team_id=team_id, user_id=user_id, grid_size=grid_size)
        session.add(card)
        await session.flush()

        cells = [BingoCardCell(card_id=card.id, **cell) for cell in layout]
        session.add_all(cells)
        await session.flush()

    empty_count = sum(1 for c in layout if c["is_empty"])
    logger.info(
        f"Generated card {card.id} for user {user_id} in team {team_id} "
        f"(pool={len(pool)}, empty_cells={empty_count})"
    )
    return _card_to_dict(card, cells)


# ──────────────────────────────────────────────────────────────
# Game start gate
# ──────────────────────────────────────────────────────────────


async def _get_authored_counts(session: AsyncSession, team_id: int) -> Dict[int, int]:
    """Count provided resolutions per author in one aggregated query."""
    result = await session.execute(
        select(TeamProvidedResolution.from_user_id, func.count(TeamProvidedResolution.id))
        .where(TeamProvidedResolution.team_id == team_id)
        .group_by(TeamProvidedResolution.from_user_id)
    )
    return {from_user_id: count for from_user_id, count in result.all()}


async def check_start_readiness(session: AsyncSession, team: Team) -> List[int]:
    """
    Verify a forming team may start. Returns the member ids on success.

    Raises:
        AlreadyStartedError: Team already started
        MissingTeamResolutionError: No team resolution set
        InsufficientMembersError: Fewer than two members
        ResolutionsIncompleteError: A member has not written a resolution for
            every other member (the first such member, in join order)
    """
    if team.status == TeamStatus.STARTED.value:
        raise AlreadyStartedError()

    if not (team.team_resolution_text or "").strip():
        raise MissingTeamResolutionError()

    member_ids = await team_service.get_team_member_ids(session, team.id)
    if len(member_ids) < MIN_TEAM_MEMBERS:
        raise InsufficientMembersError(len(member_ids))

    authored = await _get_authored_counts(session, team.id)
    expected = len(member_ids) - 1
    for member_id in member_ids:
        actual = authored.get(member_id, 0)
        if actual < expected:
            raise ResolutionsIncompleteError(member_id, actual, expected)

    return member_ids


async def start_game(
    session: AsyncSession,
    team_id: int,
    requester_id: int,
    grid_size: int = GRID_SIZE,
    rng: Optional[random.Random] = None,
) -> Dict:
    """
    Start a team's bingo game.

    Locks the team row, validates readiness, then generates every member's
    card and flips the team to ``started`` inside one savepoint. If any card
    fails, the savepoint rolls back: no card remains and the team stays
    ``forming``. A concurrent start either waits on the row lock and then
    sees ``started``, or loses the conditional status update.

    Args:
        session: Database session (caller owns the transaction)
        team_id: Team ID
        requester_id: User asking to start (must be the leader)
        grid_size: Odd grid dimension
        rng: Optional random source for the shuffles

    Returns:
        Dict with team_id, status and the number of generated cards

    Raises:
        NotFoundError, ForbiddenError, AlreadyStartedError,
        MissingTeamResolutionError, InsufficientMembersError,
        ResolutionsIncompleteError, DuplicateCardError
    """
    result = await session.execute(
        select(Team)
        .where(Team.id == team_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFoundError("Team not found")
    if team.leader_user_id != requester_id:
        raise ForbiddenError("Only team leader can start the game")

    member_ids = await check_start_readiness(session, team)
    team_resolution_text = team.team_resolution_text

    async with session.begin_nested():
        for member_id in member_ids:
            await generate_card(
                session, team_id, member_id, team_resolution_text, grid_size=grid_size, rng=rng
            )

        flipped = await session.execute(
            update(Team)
            .where(Team.id == team_id, Team.status == TeamStatus.FORMING.value)
            .values(status=TeamStatus.STARTED.value)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            raise AlreadyStartedError()

    await session.refresh(team)
    logger.info(f"Team {team_id} started bingo game with {len(member_ids)} cards")
    return {"team_id": team_id, "status": team.status, "cards_generated": len(member_ids)}


# ──────────────────────────────────────────────────────────────
# Card queries
# ──────────────────────────────────────────────────────────────


async def get_card(session: AsyncSession, team_id: int, user_id: int) -> Dict:
    """
    Get a member's card with its cells in row-major order.

    Raises:
        NotFoundError: No card exists (the game may not have started yet)
    """
    result = await session.execute(
        select(BingoCard).where(BingoCard.team_id == team_id, BingoCard.user_id == user_id)
    )
    card = result.scalar_one_or_none()
    if card is None:
        raise NotFoundError("Bingo card not found. Game may not have started yet.")

    cells_result = await session.execute(
        select(BingoCardCell)
        .where(BingoCardCell.card_id == card.id)
        .order_by(BingoCardCell.row_num, BingoCardCell.col_num)
    )
    return _card_to_dict(card, list(cells_result.scalars().all()))


async def get_card_for_viewer(
    session: AsyncSession, team_id: int, viewer_id: int, owner_id: int
) -> Dict:
    """Get any member's card on behalf of a teammate."""
    await team_service.require_team_member(session, team_id, viewer_id)
    return await get_card(session, team_id, owner_id)


async def get_team_cards(session: AsyncSession, team_id: int, viewer_id: int) -> List[Dict]:
    """
    Summarize every card of a team with the owner's username and progress.

    ``playable_cells`` excludes empty placeholders; ``completed_cells`` counts
    cells in the completed state.
    """
    await team_service.require_team_member(session, team_id, viewer_id)

    completed = func.sum(case((BingoCardCell.state == CellState.COMPLETED.value, 1), else_=0))
    playable = func.sum(case((BingoCardCell.is_empty.is_(False), 1), else_=0))
    result = await session.execute(
        select(
            BingoCard.id,
            BingoCard.user_id,
            BingoCard.grid_size,
            User.username,
            func.coalesce(completed, 0).label("completed_cells"),
            func.coalesce(playable, 0).label("playable_cells"),
        )
        .join(User, User.id == BingoCard.user_id)
        .outerjoin(BingoCardCell, BingoCardCell.card_id == BingoCard.id)
        .where(BingoCard.team_id == team_id)
        .group_by(BingoCard.id, BingoCard.user_id, BingoCard.grid_size, User.username)
        .order_by(BingoCard.id)
    )
    return [
        {
            "id": row.id,
            "team_id": team_id,
            "user_id": row.user_id,
            "username": row.username,
            "grid_size": row.grid_size,
            "completed_cells": int(row.completed_cells),
            "playable_cells": int(row.playable_cells),
        }
        for row in result.all()
    ]
