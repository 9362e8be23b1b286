"""Domain errors raised by the arena engine.

Each error carries a stable machine-readable ``code``; the HTTP layer maps
error classes to status codes and renders them in the standard error envelope.
"""

from __future__ import annotations

from typing import Any


class ArenaError(Exception):
    code = "ARENA_ERROR"
    message = "Arena operation failed"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


class InvalidConfigError(ArenaError):
    code = "INVALID_CONFIG"
    message = "Invalid leaderboard configuration"


class InvalidEntryFeeError(InvalidConfigError):
    code = "INVALID_ENTRY_FEE"
    message = "Invalid entry fee or prize ratio"


class InvalidPrizeDistributionError(InvalidConfigError):
    code = "INVALID_PRIZE_DISTRIBUTION"
    message = "Prize distribution must have three shares summing to 100"


class NameTooLongError(ArenaError):
    code = "NAME_TOO_LONG"
    message = "Display name exceeds 10 characters"


class SessionAlreadyActiveError(ArenaError):
    code = "SESSION_ALREADY_ACTIVE"
    message = "A game session is already active for this player"


class SessionNotStartedError(ArenaError):
    code = "SESSION_NOT_STARTED"
    message = "No game session exists for this player"


class SessionExpiredError(ArenaError):
    code = "SESSION_EXPIRED"
    message = "Game session expired"


class InvalidSessionKeyError(ArenaError):
    code = "INVALID_SESSION_KEY"
    message = "Invalid session key"


class ScoreAlreadyLoggedError(ArenaError):
    code = "SCORE_ALREADY_LOGGED"
    message = "Score already logged for this session"


class PlayerNotRankedError(ArenaError):
    code = "PLAYER_NOT_RANKED"
    message = "Player not found in leaderboard"


class NotEligibleForPrizeError(ArenaError):
    code = "NOT_ELIGIBLE_FOR_PRIZE"
    message = "Only the top three players are eligible for a prize"


class PrizeAlreadyClaimedError(ArenaError):
    code = "PRIZE_ALREADY_CLAIMED"
    message = "Prize already claimed"


class PolicyMismatchError(ArenaError):
    code = "POLICY_MISMATCH"
    message = "Operation not supported by this leaderboard's payout policy"


class InsufficientCommissionError(ArenaError):
    code = "INSUFFICIENT_COMMISSION"
    message = "Requested amount exceeds the commission pool"


class UnauthorizedError(ArenaError):
    code = "UNAUTHORIZED"
    message = "Unauthorized. Only the leaderboard authority can perform this action"


class TransferFailedError(ArenaError):
    code = "TRANSFER_FAILED"
    message = "Token transfer failed"


class SettlementIncompleteError(ArenaError):
    code = "SETTLEMENT_INCOMPLETE"
    message = "Settlement partially paid and could not be undone"


class LeaderboardNotFoundError(ArenaError):
    code = "LEADERBOARD_NOT_FOUND"
    message = "Leaderboard does not exist"


class AlreadyInitializedError(ArenaError):
    code = "ALREADY_INITIALIZED"
    message = "Leaderboard already initialized"
