"""HTTP route handlers for arena operations and service health checks.

Callers are identified by the ``X-Player-Id`` header, which the gateway in
front of this service has already authenticated.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Path, Request

from app.api.errors import APIError
from app.models.schemas import (
    IDENTIFIER_PATTERN,
    ClaimResponse,
    CommissionResponse,
    CommissionWithdrawal,
    HealthResponse,
    InitializeRequest,
    LeaderboardConfigView,
    LeaderboardResponse,
    LeaderboardRow,
    PayoutRow,
    PrizePoolResponse,
    PrizePoolTopUp,
    ReadyResponse,
    ScoreResult,
    ScoreSubmission,
    SecretKeyUpdate,
    SessionResponse,
    SettlementResponse,
    StartGameRequest,
    TokenPoolUpdate,
)
from app.services.arena import ArenaService
from app.services.leaderboard import Leaderboard
from app.services.prizes import Payout
from app.services.sessions import SESSION_TTL_SECONDS, GameSession

router = APIRouter(prefix="/v1")


def get_service(request: Request) -> ArenaService:
    return request.app.state.arena_service


def get_caller(x_player_id: str = Header(pattern=IDENTIFIER_PATTERN)) -> str:
    return x_player_id


def leaderboard_response(leaderboard: Leaderboard) -> LeaderboardResponse:
    config = leaderboard.config
    return LeaderboardResponse(
        leaderboard_id=leaderboard.leaderboard_id,
        prize_pool=leaderboard.prize_pool,
        commission_pool=leaderboard.commission_pool,
        config=LeaderboardConfigView(
            entry_fee=config.entry_fee,
            prize_ratio=config.prize_ratio,
            commission_ratio=config.commission_ratio,
            prize_distribution=list(config.prize_distribution),
            authority=config.authority,
            owner_account=config.owner_account,
            token_pool=config.token_pool,
            payout_policy=config.payout_policy,
            require_session_key=config.require_session_key,
        ),
        results=[
            LeaderboardRow(
                rank=row.rank,
                player_id=row.entry.player_id,
                display_name=row.entry.display_name,
                score=row.entry.score,
                claimed=row.entry.claimed,
            )
            for row in leaderboard.ranked()
        ],
    )


def session_response(leaderboard_id: str, session: GameSession) -> SessionResponse:
    return SessionResponse(
        leaderboard_id=leaderboard_id,
        player_id=session.player_id,
        display_name=session.display_name,
        start_time=session.start_time,
        expires_at=session.start_time + SESSION_TTL_SECONDS,
        status=session.status.value,
        completed=session.completed,
    )


def payout_row(payout: Payout) -> PayoutRow:
    return PayoutRow(destination=payout.destination, amount=payout.amount, rank=payout.rank)


@router.post("/leaderboards/{leaderboard_id}", response_model=LeaderboardResponse, status_code=201)
async def initialize(
    payload: InitializeRequest,
    leaderboard_id: str = Path(pattern=IDENTIFIER_PATTERN),
    caller: str = Depends(get_caller),
    service: ArenaService = Depends(get_service),
) -> LeaderboardResponse:
    leaderboard = await service.initialize(
        leaderboard_id,
        authority=caller,
        entry_fee=payload.entry_fee,
        prize_ratio=payload.prize_ratio,
        prize_distribution=payload.prize_distribution,
        owner_account=payload.owner_account,
        token_pool=payload.token_pool,
        secret_key=bytes.fromhex(payload.secret_key) if payload.secret_key else None,
        payout_policy=payload.payout_policy,
        require_session_key=payload.require_session_key,
    )
    return leaderboard_response(leaderboard)


@router.get("/leaderboards/{leaderboard_id}", response_model=LeaderboardResponse)
async def get_leaderboard(
    leaderboard_id: str = Path(pattern=IDENTIFIER_PATTERN),
    service: ArenaService = Depends(get_service),
) -> LeaderboardResponse:
    leaderboard = await service.get_leaderboard(leaderboard_id)
    return leaderboard_response(leaderboard)


@router.put("/leaderboards/{leaderboard_id}/secret-key", status_code=204)
async def set_secret_key(
    payload: SecretKeyUpdate,
    leaderboard_id: str = Path(pattern=IDENTIFIER_PATTERN),
    caller: str = Depends(get_caller),
    service: ArenaService = Depends(get_service),
) -> None:
    await service.set_secret_key(leaderboard_id, caller, bytes.fromhex(payload.secret_key))


@router.put("/leaderboards/{leaderboard_id}/token-pool", response_model=LeaderboardResponse)
async def set_token_pool(
    payload: TokenPoolUpdate,
    leaderboard_id: str = Path(pattern=IDENTIFIER_PATTERN),
    caller: str = Depends(get_caller),
    service: ArenaService = Depends(get_service),
) -> LeaderboardResponse:
    leaderboard = await service.set_token_pool(leaderboard_id, caller, payload.token_pool)
    return leaderboard_response(leaderboard)


@router.post(
    "/leaderboards/{leaderboard_id}/sessions",
    response_model=SessionResponse,
    status_code=201,
)
async def start_game(
    payload: StartGameRequest,
    leaderboard_id: str = Path(pattern=IDENTIFIER_PATTERN),
    caller: str = Depends(get_caller),
    service: ArenaService = Depends(get_service),
) -> SessionResponse:
    session = await service.start_game(leaderboard_id, caller, payload.name)
    return session_response(leaderboard_id, session)


@router.get(
    "/leaderboards/{leaderboard_id}/sessions/{player_id}",
    response_model=SessionResponse,
)
async def get_session(
    leaderboard_id: str = Path(pattern=IDENTIFIER_PATTERN),
    player_id: str = Path(pattern=IDENTIFIER_PATTERN),
    service: ArenaService = Depends(get_service),
) -> SessionResponse:
    session = await service.get_session(leaderboard_id, player_id)
    return session_response(leaderboard_id, session)


@router.post("/leaderboards/{leaderboard_id}/scores", response_model=ScoreResult)
async def submit_score(
    payload: ScoreSubmission,
    leaderboard_id: str = Path(pattern=IDENTIFIER_PATTERN),
    caller: str = Depends(get_caller),
    service: ArenaService = Depends(get_service),
) -> ScoreResult:
    outcome = await service.submit_score(
        leaderboard_id,
        caller,
        payload.score,
        bytes.fromhex(payload.session_key) if payload.session_key else None,
    )
    return ScoreResult(
        leaderboard_id=leaderboard_id,
        player_id=caller,
        score=outcome.score,
        rank=outcome.rank,
    )


@router.post("/leaderboards/{leaderboard_id}/prize-pool", response_model=PrizePoolResponse)
async def add_to_prize_pool(
    payload: PrizePoolTopUp,
    leaderboard_id: str = Path(pattern=IDENTIFIER_PATTERN),
    caller: str = Depends(get_caller),
    service: ArenaService = Depends(get_service),
) -> PrizePoolResponse:
    leaderboard = await service.add_to_prize_pool(leaderboard_id, caller, payload.amount)
    return PrizePoolResponse(
        leaderboard_id=leaderboard_id,
        prize_pool=leaderboard.prize_pool,
        commission_pool=leaderboard.commission_pool,
    )


@router.post("/leaderboards/{leaderboard_id}/claims", response_model=ClaimResponse)
async def claim(
    leaderboard_id: str = Path(pattern=IDENTIFIER_PATTERN),
    caller: str = Depends(get_caller),
    service: ArenaService = Depends(get_service),
) -> ClaimResponse:
    payout = await service.claim(leaderboard_id, caller)
    return ClaimResponse(leaderboard_id=leaderboard_id, payout=payout_row(payout))


@router.post("/leaderboards/{leaderboard_id}/settlements", response_model=SettlementResponse)
async def settle(
    leaderboard_id: str = Path(pattern=IDENTIFIER_PATTERN),
    caller: str = Depends(get_caller),
    service: ArenaService = Depends(get_service),
) -> SettlementResponse:
    settlement = await service.settle(leaderboard_id, caller)
    return SettlementResponse(
        leaderboard_id=leaderboard_id,
        prize_pool_before=settlement.prize_pool_before,
        total_paid=settlement.total_paid,
        payouts=[payout_row(p) for p in settlement.payouts],
        rollover=payout_row(settlement.rollover) if settlement.rollover else None,
    )


@router.post(
    "/leaderboards/{leaderboard_id}/commission-withdrawals",
    response_model=CommissionResponse,
)
async def withdraw_commission(
    payload: CommissionWithdrawal,
    leaderboard_id: str = Path(pattern=IDENTIFIER_PATTERN),
    caller: str = Depends(get_caller),
    service: ArenaService = Depends(get_service),
) -> CommissionResponse:
    payout = await service.withdraw_commission(leaderboard_id, caller, payload.amount)
    leaderboard = await service.get_leaderboard(leaderboard_id)
    return CommissionResponse(
        leaderboard_id=leaderboard_id,
        payout=payout_row(payout),
        commission_pool=leaderboard.commission_pool,
    )


# These checks are intended for infrastructure and do not need to appear in API docs.
@router.get("/healthz", response_model=HealthResponse, include_in_schema=False)
async def healthz() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get("/readyz", response_model=ReadyResponse, include_in_schema=False)
async def readyz(service: ArenaService = Depends(get_service)) -> ReadyResponse:
    try:
        # Readiness verifies backing Redis connectivity, not just process liveness.
        is_ready = await service.ping()
    except Exception as exc:
        raise APIError(
            code="REDIS_UNAVAILABLE",
            message="Redis readiness check failed",
            status_code=503,
        ) from exc

    if not is_ready:
        raise APIError(
            code="REDIS_UNAVAILABLE",
            message="Redis readiness check failed",
            status_code=503,
        )
    return ReadyResponse(status="ok")
