"""
Team service for team formation before a bingo game starts.

Handles team creation, the team-wide (joker) resolution, invitations,
membership lookups and the resolutions members write for each other.
"""

import uuid
from typing import List, Dict, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from bingo_backend.database.models import (
    Team,
    TeamMembership,
    TeamInvitation,
    TeamProvidedResolution,
    TeamRole,
    TeamStatus,
    InvitationStatus,
    User,
)
from bingo_backend.services.errors import (
    AlreadyStartedError,
    ForbiddenError,
    NotFoundError,
)
from bingo_backend.utils.constants import MAX_RESOLUTION_LENGTH
import logging

logger = logging.getLogger(__name__)


def _team_to_dict(team: Team) -> Dict:
    return {
        "id": team.id,
        "name": team.name,
        "leader_user_id": team.leader_user_id,
        "team_resolution_text": team.team_resolution_text,
        "status": team.status,
        "created_at": team.created_at.isoformat() if team.created_at else None,
    }


def _provided_to_dict(resolution: TeamProvidedResolution) -> Dict:
    return {
        "id": resolution.id,
        "team_id": resolution.team_id,
        "from_user_id": resolution.from_user_id,
        "to_user_id": resolution.to_user_id,
        "text": resolution.text,
    }


def _dialect_insert(session: AsyncSession):
    """Pick the INSERT construct with ON CONFLICT support for the bound database."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


def _clean_resolution_text(text: Optional[str], field: str = "Resolution text") -> str:
    text = (text or "").strip()
    if not text:
        raise ValueError(f"{field} cannot be empty")
    if len(text) > MAX_RESOLUTION_LENGTH:
        raise ValueError(f"{field} is too long (max {MAX_RESOLUTION_LENGTH} characters)")
    return text


async def get_team(session: AsyncSession, team_id: int, for_update: bool = False) -> Team:
    """
    Load a team or raise NotFoundError.

    Args:
        session: Database session
        team_id: Team ID
        for_update: Lock the row until the transaction ends. Paths that
            change what a started game snapshots take this lock, so they
            serialize with start_game.

    Returns:
        Team ORM instance
    """
    query = select(Team).where(Team.id == team_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(query)
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFoundError("Team not found")
    return team


async def is_team_member(session: AsyncSession, team_id: int, user_id: int) -> bool:
    """Check whether a user belongs to a team."""
    result = await session.execute(
        select(TeamMembership.id).where(
            TeamMembership.team_id == team_id, TeamMembership.user_id == user_id
        )
    )
    return result.scalar_one_or_none() is not None


async def require_team_member(session: AsyncSession, team_id: int, user_id: int) -> None:
    """Raise ForbiddenError unless the user belongs to the team."""
    if not await is_team_member(session, team_id, user_id):
        raise ForbiddenError("Not a team member")


async def get_team_member_ids(session: AsyncSession, team_id: int) -> List[int]:
    """
    Get the user ids of all team members, in the order they joined.

    Args:
        session: Database session
        team_id: Team ID

    Returns:
        List of user IDs
    """
    result = await session.execute(
        select(TeamMembership.user_id)
        .where(TeamMembership.team_id == team_id)
        .order_by(TeamMembership.id)
    )
    return list(result.scalars().all())


async def create_team(session: AsyncSession, name: str, leader_id: int) -> Dict:
    """
    Create a team; the creator becomes its leader and first member.

    Args:
        session: Database session
        name: Team name
        leader_id: User creating the team

    Returns:
        Dict with team data

    Raises:
        ValueError: If the name is blank
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Team name is required")

    team = Team(name=name, leader_user_id=leader_id, status=TeamStatus.FORMING.value)
    session.add(team)
    await session.flush()

    session.add(TeamMembership(team_id=team.id, user_id=leader_id, role=TeamRole.LEADER.value))
    await session.flush()
    await session.refresh(team)

    logger.info(f"User {leader_id} created team {team.id} ({name})")
    return _team_to_dict(team)


async def set_team_resolution(
    session: AsyncSession, team_id: int, requester_id: int, text: str
) -> Dict:
    """
    Set the team-wide resolution shown in every card's joker cell.

    Raises:
        NotFoundError: Team does not exist
        ForbiddenError: Requester is not the leader
        AlreadyStartedError: Cards were already generated with the old text
        ValueError: Text is blank or too long
    """
    team = await get_team(session, team_id, for_update=True)
    if team.leader_user_id != requester_id:
        raise ForbiddenError("Only team leader can set team resolution")
    if team.status == TeamStatus.STARTED.value:
        raise AlreadyStartedError("Team resolution cannot change after the game started")

    team.team_resolution_text = _clean_resolution_text(text, "Team resolution text")
    await session.flush()
    await session.refresh(team)
    return _team_to_dict(team)


async def create_invitation(
    session: AsyncSession, team_id: int, requester_id: int, email: str
) -> Dict:
    """
    Invite a user (by email) to a team. Leader only.

    Returns:
        Dict with the invitation id and invite code
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValueError("Email is required")

    team = await get_team(session, team_id, for_update=True)
    if team.leader_user_id != requester_id:
        raise ForbiddenError("Only team leader can invite users")
    if team.status == TeamStatus.STARTED.value:
        raise AlreadyStartedError("Cannot invite users after the game started")

    invitation = TeamInvitation(
        team_id=team_id,
        invited_email=email,
        invite_code=str(uuid.uuid4()),
        status=InvitationStatus.PENDING.value,
    )
    session.add(invitation)
    await session.flush()

    logger.info(f"Team {team_id} invited {email}")
    return {
        "id": invitation.id,
        "team_id": team_id,
        "invited_email": email,
        "invite_code": invitation.invite_code,
    }


async def join_team(session: AsyncSession, user_id: int, invite_code: str) -> Dict:
    """
    Accept an invitation and become a team member.

    The invitation must be pending and addressed to the user's email.

    Raises:
        NotFoundError: User or matching pending invitation not found
        AlreadyStartedError: The team's game already started
        ValueError: User is already a member
    """
    if not invite_code:
        raise ValueError("Invite code is required")

    user_result = await session.execute(select(User.email).where(User.id == user_id))
    user_email = user_result.scalar_one_or_none()
    if user_email is None:
        raise NotFoundError("User not found")

    result = await session.execute(
        select(TeamInvitation).where(
            TeamInvitation.invite_code == invite_code,
            TeamInvitation.invited_email == user_email.strip().lower(),
            TeamInvitation.status == InvitationStatus.PENDING.value,
        )
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise NotFoundError("Invalid or expired invitation")

    team = await get_team(session, invitation.team_id, for_update=True)
    if team.status == TeamStatus.STARTED.value:
        raise AlreadyStartedError("Cannot join a team whose game already started")

    if await is_team_member(session, team.id, user_id):
        raise ValueError("Already a team member")

    session.add(TeamMembership(team_id=team.id, user_id=user_id, role=TeamRole.MEMBER.value))
    invitation.status = InvitationStatus.ACCEPTED.value
    await session.flush()

    logger.info(f"User {user_id} joined team {team.id}")
    return {"team_id": team.id}


async def get_user_teams(session: AsyncSession, user_id: int) -> List[Dict]:
    """Get all teams a user belongs to, newest first, with the user's role."""
    result = await session.execute(
        select(Team, TeamMembership.role)
        .join(TeamMembership, TeamMembership.team_id == Team.id)
        .where(TeamMembership.user_id == user_id)
        .order_by(Team.created_at.desc(), Team.id.desc())
    )
    return [{**_team_to_dict(team), "role": role} for team, role in result.all()]


async def get_team_details(session: AsyncSession, team_id: int, requester_id: int) -> Dict:
    """
    Get a team with its members and the requester's role. Members only.
    """
    team = await get_team(session, team_id)

    result = await session.execute(
        select(TeamMembership, User.username)
        .join(User, User.id == TeamMembership.user_id)
        .where(TeamMembership.team_id == team_id)
        .order_by(TeamMembership.id)
    )
    rows = result.all()

    my_role = next((m.role for m, _ in rows if m.user_id == requester_id), None)
    if my_role is None:
        raise ForbiddenError("Not a team member")

    members = [
        {
            "user_id": membership.user_id,
            "username": username,
            "role": membership.role,
            "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
        }
        for membership, username in rows
    ]
    return {"team": _team_to_dict(team), "members": members, "my_role": my_role}


async def _get_provided_resolution_id(
    session: AsyncSession, team_id: int, from_user_id: int, to_user_id: int
) -> Optional[int]:
    result = await session.execute(
        select(TeamProvidedResolution.id).where(
            TeamProvidedResolution.team_id == team_id,
            TeamProvidedResolution.from_user_id == from_user_id,
            TeamProvidedResolution.to_user_id == to_user_id,
        )
    )
    return result.scalar_one_or_none()


async def upsert_provided_resolution(
    session: AsyncSession,
    team_id: int,
    from_user_id: int,
    to_user_id: int,
    text: str,
) -> Tuple[Dict, bool]:
    """
    Create or overwrite the resolution one member writes for another.

    A second submission for the same (team, from, to) replaces the text
    rather than adding a row.

    Args:
        session: Database session
        team_id: Team ID
        from_user_id: Author
        to_user_id: Recipient whose card will contain the text
        text: Resolution text

    Returns:
        Tuple of (resolution dict, created flag)

    Raises:
        ForbiddenError: Author is not a team member
        ValueError: Recipient is not a member, is the author, or text is blank
        AlreadyStartedError: Cards were already generated
    """
    if not await is_team_member(session, team_id, from_user_id):
        raise ForbiddenError("Not a team member")
    if not await is_team_member(session, team_id, to_user_id):
        raise ValueError("Recipient is not a team member")
    if from_user_id == to_user_id:
        raise ValueError("Cannot create resolution for yourself")

    text = _clean_resolution_text(text)

    team = await get_team(session, team_id, for_update=True)
    if team.status == TeamStatus.STARTED.value:
        raise AlreadyStartedError("Resolutions cannot change after the game started")

    existing_id = await _get_provided_resolution_id(session, team_id, from_user_id, to_user_id)

    insert = _dialect_insert(session)
    stmt = insert(TeamProvidedResolution).values(
        team_id=team_id, from_user_id=from_user_id, to_user_id=to_user_id, text=text
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["team_id", "from_user_id", "to_user_id"],
        set_=dict(text=stmt.excluded.text, updated_at=func.now()),
    )
    result = await session.scalars(
        stmt.returning(TeamProvidedResolution),
        execution_options={"populate_existing": True},
    )
    resolution = result.one()
    return _provided_to_dict(resolution), existing_id is None


async def get_resolutions_to_create(
    session: AsyncSession, team_id: int, user_id: int
) -> List[Dict]:
    """
    List the other members and whether the user already wrote a resolution for each.
    """
    await require_team_member(session, team_id, user_id)

    members_result = await session.execute(
        select(User.id, User.username)
        .join(TeamMembership, TeamMembership.user_id == User.id)
        .where(TeamMembership.team_id == team_id, User.id != user_id)
        .order_by(TeamMembership.id)
    )

    created_result = await session.execute(
        select(TeamProvidedResolution).where(
            TeamProvidedResolution.team_id == team_id,
            TeamProvidedResolution.from_user_id == user_id,
        )
    )
    created = {r.to_user_id: r for r in created_result.scalars().all()}

    members = []
    for member_id, username in members_result.all():
        resolution = created.get(member_id)
        members.append(
            {
                "user_id": member_id,
                "username": username,
                "resolution_provided": resolution is not None,
                "resolution_text": resolution.text if resolution else None,
                "resolution_id": resolution.id if resolution else None,
            }
        )
    return members


async def get_resolutions_for_me(
    session: AsyncSession, team_id: int, user_id: int
) -> List[Dict]:
    """List the resolutions other members wrote for the user."""
    await require_team_member(session, team_id, user_id)

    result = await session.execute(
        select(TeamProvidedResolution, User.username)
        .join(User, User.id == TeamProvidedResolution.from_user_id)
        .where(
            TeamProvidedResolution.team_id == team_id,
            TeamProvidedResolution.to_user_id == user_id,
        )
        .order_by(TeamProvidedResolution.id)
    )
    return [
        {**_provided_to_dict(resolution), "from_username": username}
        for resolution, username in result.all()
    ]
