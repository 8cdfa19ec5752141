"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error translation) lives here; every
sub-router imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from bingo_backend.services import errors

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Business-rule error translation
# ---------------------------------------------------------------------------
def http_error_for(exc: ValueError) -> HTTPException:
    """
    Map a service-layer error to an HTTPException.

    ForbiddenError -> 403, NotFoundError -> 404, DuplicateCardError and
    ProofAlreadyReviewedError -> 409, any other ValueError -> 400.
    Structured details (e.g. which member is missing resolutions) are
    included in the response body.
    """
    if isinstance(exc, errors.ForbiddenError):
        status_code = 403
    elif isinstance(exc, errors.NotFoundError):
        status_code = 404
    elif isinstance(exc, (errors.DuplicateCardError, errors.ProofAlreadyReviewedError)):
        status_code = 409
    else:
        status_code = 400

    if isinstance(exc, errors.BingoError) and exc.details:
        return HTTPException(
            status_code=status_code, detail={"error": exc.message, "details": exc.details}
        )
    return HTTPException(status_code=status_code, detail=str(exc))


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from bingo_backend.api.routes.health import router as health_router  # noqa: E402
from bingo_backend.api.routes.teams import router as teams_router  # noqa: E402
from bingo_backend.api.routes.resolutions import router as resolutions_router  # noqa: E402
from bingo_backend.api.routes.cards import router as cards_router  # noqa: E402
from bingo_backend.api.routes.proofs import router as proofs_router  # noqa: E402

router = APIRouter()
router.include_router(health_router)
router.include_router(teams_router)
router.include_router(resolutions_router)
router.include_router(cards_router)
router.include_router(proofs_router)
