"""Validation for leaderboard initialization and administrative updates."""

from __future__ import annotations

from collections.abc import Sequence

from app.services.errors import (
    InvalidConfigError,
    InvalidEntryFeeError,
    InvalidPrizeDistributionError,
    UnauthorizedError,
)
from app.services.leaderboard import PAID_RANKS, LeaderboardConfig
from app.services.session_keys import SECRET_KEY_LENGTH

PAYOUT_POLICIES = ("claim", "settle")


def build_config(
    *,
    authority: str,
    entry_fee: int,
    prize_ratio: int,
    prize_distribution: Sequence[int],
    owner_account: str,
    token_pool: str,
    secret_key: bytes,
    payout_policy: str = "claim",
    require_session_key: bool = True,
) -> LeaderboardConfig:
    if entry_fee <= 0:
        raise InvalidEntryFeeError("Entry fee must be positive")
    if not 0 <= prize_ratio < 100:
        raise InvalidEntryFeeError("Prize ratio must be in [0, 100)")

    shares = tuple(prize_distribution)
    if len(shares) != PAID_RANKS or any(share < 0 for share in shares) or sum(shares) != 100:
        raise InvalidPrizeDistributionError(details={"prize_distribution": list(shares)})

    if payout_policy not in PAYOUT_POLICIES:
        raise InvalidConfigError(
            "Unknown payout policy",
            details={"allowed": list(PAYOUT_POLICIES)},
        )
    validate_secret_key(secret_key)

    return LeaderboardConfig(
        entry_fee=entry_fee,
        prize_ratio=prize_ratio,
        commission_ratio=100 - prize_ratio,
        prize_distribution=shares,
        authority=authority,
        owner_account=owner_account,
        token_pool=token_pool,
        secret_key=secret_key,
        payout_policy=payout_policy,
        require_session_key=require_session_key,
    )


def validate_secret_key(secret_key: bytes) -> None:
    if len(secret_key) != SECRET_KEY_LENGTH:
        raise InvalidConfigError(
            f"Secret key must be {SECRET_KEY_LENGTH} bytes",
        )


def require_authority(config: LeaderboardConfig, caller: str) -> None:
    if caller != config.authority:
        raise UnauthorizedError()
