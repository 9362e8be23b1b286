"""FastAPI application wiring for routes, error handlers, and lifespan."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.errors import APIError, api_error_from
from app.api.routes import router
from app.models.schemas import ErrorBody, ErrorResponse
from app.services.arena import ArenaService
from app.services.errors import ArenaError
from app.services.session_keys import secret_from_text
from app.storage.ledger import RedisLedger
from app.storage.redis import create_redis_client
from app.storage.store import RedisArenaStore

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[], ArenaService]


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def get_default_secret() -> bytes | None:
    value = os.getenv("GAME_SECRET_KEY")
    return secret_from_text(value) if value else None


def error_response(exc: APIError) -> JSONResponse:
    payload = ErrorResponse(
        error=ErrorBody(code=exc.code, message=exc.message, details=exc.details),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=payload.model_dump(exclude_none=True),
    )


def create_app(service_factory: ServiceFactory | None = None) -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def app_lifespan(app: FastAPI):
        if service_factory is not None:
            app.state.arena_service = service_factory()
            yield
            return

        redis_client = create_redis_client()
        logger.info("Arena service using Redis-backed store and ledger")
        app.state.redis = redis_client
        app.state.arena_service = ArenaService(
            RedisArenaStore(redis_client),
            RedisLedger(redis_client),
            default_secret=get_default_secret(),
        )
        try:
            yield
        finally:
            await redis_client.aclose()

    app = FastAPI(title="Arena Leaderboard API", version="1.0.0", lifespan=app_lifespan)

    @app.exception_handler(APIError)
    async def api_error_handler(_: Request, exc: APIError) -> JSONResponse:
        return error_response(exc)

    @app.exception_handler(ArenaError)
    async def arena_error_handler(_: Request, exc: ArenaError) -> JSONResponse:
        return error_response(api_error_from(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        payload = ErrorResponse(
            error=ErrorBody(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details={"errors": exc.errors()},
            ),
        )
        return JSONResponse(status_code=400, content=payload.model_dump(exclude_none=True))

    app.include_router(router)
    return app


app = create_app()
