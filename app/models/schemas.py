"""Pydantic request/response schemas for the public arena API.

These models define input validation and response contracts used by routes
and exception handlers.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, StringConstraints

IDENTIFIER_PATTERN = r"^[A-Za-z0-9_:.-]{1,64}$"
SECRET_KEY_PATTERN = r"^[0-9a-fA-F]{64}$"
Identifier = Annotated[str, StringConstraints(pattern=IDENTIFIER_PATTERN)]
HexKey = Annotated[str, StringConstraints(pattern=SECRET_KEY_PATTERN)]
Amount = Annotated[int, Field(gt=0, le=2**64 - 1)]


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    error: ErrorBody


class InitializeRequest(BaseModel):
    entry_fee: Amount
    prize_ratio: int = Field(ge=0)
    prize_distribution: list[int] = Field(min_length=3, max_length=3)
    owner_account: Identifier
    token_pool: Identifier | None = None
    secret_key: HexKey | None = None
    payout_policy: Literal["claim", "settle"] = "claim"
    require_session_key: bool = True


class LeaderboardConfigView(BaseModel):
    entry_fee: int
    prize_ratio: int
    commission_ratio: int
    prize_distribution: list[int]
    authority: str
    owner_account: str
    token_pool: str
    payout_policy: Literal["claim", "settle"]
    require_session_key: bool


class LeaderboardRow(BaseModel):
    rank: int
    player_id: str
    display_name: str
    score: int
    claimed: bool


class LeaderboardResponse(BaseModel):
    leaderboard_id: str
    prize_pool: int
    commission_pool: int
    config: LeaderboardConfigView
    results: list[LeaderboardRow]


class SecretKeyUpdate(BaseModel):
    secret_key: HexKey


class TokenPoolUpdate(BaseModel):
    token_pool: Identifier


class StartGameRequest(BaseModel):
    name: str = Field(min_length=1)


class SessionResponse(BaseModel):
    leaderboard_id: str
    player_id: str
    display_name: str
    start_time: int
    expires_at: int
    status: Literal["active", "success", "expired", "rejected"]
    completed: bool


class ScoreSubmission(BaseModel):
    score: int = Field(ge=0, le=2**32 - 1)
    session_key: HexKey | None = None


class ScoreResult(BaseModel):
    leaderboard_id: str
    player_id: str
    score: int
    rank: int | None


class PrizePoolTopUp(BaseModel):
    amount: Amount


class PrizePoolResponse(BaseModel):
    leaderboard_id: str
    prize_pool: int
    commission_pool: int


class PayoutRow(BaseModel):
    destination: str
    amount: int
    rank: int | None = None


class ClaimResponse(BaseModel):
    leaderboard_id: str
    payout: PayoutRow


class SettlementResponse(BaseModel):
    leaderboard_id: str
    prize_pool_before: int
    total_paid: int
    payouts: list[PayoutRow]
    rollover: PayoutRow | None = None


class CommissionWithdrawal(BaseModel):
    amount: Amount | None = None


class CommissionResponse(BaseModel):
    leaderboard_id: str
    payout: PayoutRow
    commission_pool: int


class HealthResponse(BaseModel):
    status: Literal["ok"]


class ReadyResponse(BaseModel):
    status: Literal["ok"]
