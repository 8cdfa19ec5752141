"""
Business-rule errors raised by the bingo service layer.

Every error is a ``ValueError`` so callers that only care about "the request
was invalid" can keep catching ``ValueError``. Routes map the subclasses to
HTTP status codes (see ``bingo_backend.api.routes.http_error_for``).
"""

from typing import Optional


class BingoError(ValueError):
    """Base class for all game-state rule violations."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


# --- Authorization ---


class ForbiddenError(BingoError):
    """Raised when the requester lacks the role or ownership an operation needs."""


class SelfReviewError(BingoError):
    """Raised when a card owner tries to review their own proof."""

    def __init__(self, message: str = "Cannot review your own proof"):
        super().__init__(message)


# --- Not found ---


class NotFoundError(BingoError):
    """Raised when a team, card, cell, proof or resolution does not exist."""


# --- Preconditions ---


class PreconditionError(BingoError):
    """Raised when the game is not in a state that allows the operation."""


class AlreadyStartedError(PreconditionError):
    """Raised when a team has already started its game."""

    def __init__(self, message: str = "Game already started"):
        super().__init__(message)


class MissingTeamResolutionError(PreconditionError):
    """Raised when starting a game before the leader set the team resolution."""

    def __init__(self, message: str = "Team resolution must be set before starting"):
        super().__init__(message)


class InsufficientMembersError(PreconditionError):
    """Raised when a team has fewer than two members."""

    def __init__(self, member_count: int):
        super().__init__(
            "Need at least 2 team members to start",
            details=f"Team has {member_count} member(s)",
        )
        self.member_count = member_count


class ResolutionsIncompleteError(PreconditionError):
    """Raised when a member has not written a resolution for every other member."""

    def __init__(self, user_id: int, actual: int, expected: int):
        super().__init__(
            "All team members must create resolutions for all other members before starting",
            details=f"Member {user_id} has only created {actual} of {expected} required resolutions",
        )
        self.user_id = user_id
        self.actual = actual
        self.expected = expected


class DuplicateCardError(PreconditionError):
    """Raised when a card already exists for a (team, user) pair."""

    def __init__(self, team_id: int, user_id: int):
        super().__init__(f"Bingo card already exists for user {user_id} in team {team_id}")
        self.team_id = team_id
        self.user_id = user_id


class ProofAlreadyReviewedError(PreconditionError):
    """Raised when reviewing a proof that is already approved or declined."""

    def __init__(self, status: str):
        super().__init__(f"Proof has already been {status}")
        self.status = status


# --- Validation ---


class InvalidTransitionError(BingoError):
    """Raised for a cell state or review decision outside the allowed set."""


class EmptyCellNotCompletableError(BingoError):
    """Raised when marking an empty placeholder cell as completed."""

    def __init__(self, message: str = "Empty cells cannot be marked as completed"):
        super().__init__(message)


class CommentRequiredError(BingoError):
    """Raised when declining a proof without a comment."""

    def __init__(self, message: str = "Comment is required when declining proof"):
        super().__init__(message)


class InvalidProofFileError(BingoError):
    """Raised when an uploaded proof file is empty, too large or not an image."""
