"""
SQLAlchemy ORM models for the Resolution Bingo game.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from bingo_backend.database.db import Base


class TeamStatus(str, enum.Enum):
    """Team lifecycle status. FORMING -> STARTED happens exactly once."""

    FORMING = "forming"
    STARTED = "started"


class TeamRole(str, enum.Enum):
    """Role of a user inside a team."""

    LEADER = "leader"
    MEMBER = "member"


class InvitationStatus(str, enum.Enum):
    """Team invitation status enum."""

    PENDING = "pending"
    ACCEPTED = "accepted"


class CellState(str, enum.Enum):
    """Completion state of a bingo card cell."""

    TO_COMPLETE = "to_complete"
    COMPLETED = "completed"


class CellSourceType(str, enum.Enum):
    """Where the resolution text of a cell came from."""

    TEAM_RESOLUTION = "team_resolution"
    TEAM_PROVIDED = "team_provided"
    PERSONAL = "personal"
    NONE = "none"


class ProofStatus(str, enum.Enum):
    """Proof review status. PENDING -> APPROVED | DECLINED, both terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class User(Base):
    """User accounts. Registration and credentials are managed elsewhere."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    memberships = relationship("TeamMembership", back_populates="user")
    personal_resolutions = relationship(
        "PersonalResolution", back_populates="user", cascade="all, delete-orphan"
    )


class Team(Base):
    """A group of users playing one bingo round."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    leader_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    team_resolution_text = Column(Text, nullable=True)  # Joker cell text on every card
    status = Column(String(20), default=TeamStatus.FORMING.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    leader = relationship("User", foreign_keys=[leader_user_id])
    memberships = relationship(
        "TeamMembership", back_populates="team", cascade="all, delete-orphan"
    )
    cards = relationship("BingoCard", back_populates="team")

    __table_args__ = (
        CheckConstraint("status IN ('forming', 'started')", name="ck_teams_status"),
        Index("idx_teams_leader", "leader_user_id"),
    )


class TeamMembership(Base):
    """Join table (Team ↔ User) with a role."""

    __tablename__ = "team_memberships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    role = Column(String(20), default=TeamRole.MEMBER.value, nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    team = relationship("Team", back_populates="memberships")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_memberships_team_user"),
        Index("idx_team_memberships_user", "user_id"),
    )


class TeamInvitation(Base):
    """Invitation to join a team, redeemed with its invite code."""

    __tablename__ = "team_invitations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    invited_email = Column(String(255), nullable=False)
    invite_code = Column(String(36), nullable=False, unique=True)
    status = Column(String(20), default=InvitationStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_team_invitations_team", "team_id"),)


class TeamProvidedResolution(Base):
    """A resolution one member writes for another member of the same team."""

    __tablename__ = "team_provided_resolutions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    to_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    from_user = relationship("User", foreign_keys=[from_user_id])
    to_user = relationship("User", foreign_keys=[to_user_id])

    __table_args__ = (
        UniqueConstraint(
            "team_id", "from_user_id", "to_user_id", name="uq_provided_resolution_team_from_to"
        ),
        CheckConstraint("from_user_id <> to_user_id", name="ck_provided_resolution_not_self"),
        Index("idx_provided_resolutions_team_to", "team_id", "to_user_id"),
        Index("idx_provided_resolutions_team_from", "team_id", "from_user_id"),
    )


class PersonalResolution(Base):
    """A resolution a user writes for themselves; used as card filler."""

    __tablename__ = "personal_resolutions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    text = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="personal_resolutions")

    __table_args__ = (Index("idx_personal_resolutions_user", "user_id"),)


class BingoCard(Base):
    """One member's card. Created only during game start."""

    __tablename__ = "bingo_cards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    grid_size = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    team = relationship("Team", back_populates="cards")
    user = relationship("User")
    cells = relationship("BingoCardCell", back_populates="card", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_bingo_cards_team_user"),
    )


class BingoCardCell(Base):
    """A single grid cell of a bingo card."""

    __tablename__ = "bingo_card_cells"

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(Integer, ForeignKey("bingo_cards.id", ondelete="CASCADE"), nullable=False)
    row_num = Column(Integer, nullable=False)
    col_num = Column(Integer, nullable=False)
    resolution_text = Column(Text, nullable=False)
    is_joker = Column(Boolean, default=False, nullable=False)
    is_empty = Column(Boolean, default=False, nullable=False)
    source_type = Column(String(20), default=CellSourceType.NONE.value, nullable=False)
    source_resolution_id = Column(Integer, nullable=True)  # Id in the table named by source_type
    state = Column(String(20), default=CellState.TO_COMPLETE.value, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    card = relationship("BingoCard", back_populates="cells")
    proofs = relationship("Proof", back_populates="cell", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("card_id", "row_num", "col_num", name="uq_bingo_card_cells_position"),
        CheckConstraint("NOT (is_joker AND is_empty)", name="ck_bingo_card_cells_joker_not_empty"),
        CheckConstraint("state IN ('to_complete', 'completed')", name="ck_bingo_card_cells_state"),
        Index("idx_bingo_card_cells_card", "card_id"),
    )


class Proof(Base):
    """Uploaded evidence for a cell, reviewed by teammates."""

    __tablename__ = "proofs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cell_id = Column(Integer, ForeignKey("bingo_card_cells.id", ondelete="CASCADE"), nullable=False)
    file_url = Column(String(1024), nullable=False)  # Reference returned by the blob store
    file_type = Column(String(100), nullable=False)  # Declared MIME type
    status = Column(String(20), default=ProofStatus.PENDING.value, nullable=False)
    reviewed_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    review_comment = Column(Text, nullable=True)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now())
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    cell = relationship("BingoCardCell", back_populates="proofs")
    reviewer = relationship("User", foreign_keys=[reviewed_by_user_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'declined')", name="ck_proofs_status"
        ),
        Index("idx_proofs_cell", "cell_id"),
        Index("idx_proofs_status", "status"),
    )
