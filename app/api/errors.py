from __future__ import annotations

from typing import Any

from app.services import errors as arena_errors


class APIError(Exception):
    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


# Most specific classes first; lookup walks the error's MRO.
STATUS_BY_ERROR: dict[type[arena_errors.ArenaError], int] = {
    arena_errors.InvalidConfigError: 400,
    arena_errors.NameTooLongError: 400,
    arena_errors.SessionAlreadyActiveError: 409,
    arena_errors.SessionNotStartedError: 404,
    arena_errors.SessionExpiredError: 410,
    arena_errors.InvalidSessionKeyError: 403,
    arena_errors.ScoreAlreadyLoggedError: 409,
    arena_errors.PlayerNotRankedError: 404,
    arena_errors.NotEligibleForPrizeError: 403,
    arena_errors.PrizeAlreadyClaimedError: 409,
    arena_errors.PolicyMismatchError: 409,
    arena_errors.InsufficientCommissionError: 409,
    arena_errors.UnauthorizedError: 403,
    arena_errors.TransferFailedError: 402,
    arena_errors.SettlementIncompleteError: 502,
    arena_errors.LeaderboardNotFoundError: 404,
    arena_errors.AlreadyInitializedError: 409,
}


def status_for(exc: arena_errors.ArenaError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 400


def api_error_from(exc: arena_errors.ArenaError) -> APIError:
    return APIError(
        code=exc.code,
        message=exc.message,
        status_code=status_for(exc),
        details=exc.details,
    )
