"""Leaderboard and session persistence as JSON documents in Redis."""

from __future__ import annotations

import json

from redis.asyncio import Redis
from redis.asyncio.client import Pipeline
from redis.exceptions import WatchError

from app.services.leaderboard import Leaderboard
from app.services.sessions import GameSession


def config_key(leaderboard_id: str) -> str:
    return f"arena:{leaderboard_id}:config"


def state_key(leaderboard_id: str) -> str:
    return f"arena:{leaderboard_id}:state"


def session_key(leaderboard_id: str, player_id: str) -> str:
    return f"arena:{leaderboard_id}:session:{player_id}"


class RedisArenaStore:
    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    async def create_leaderboard(self, leaderboard: Leaderboard) -> bool:
        key = config_key(leaderboard.leaderboard_id)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                if await pipe.exists(key):
                    await pipe.unwatch()
                    return False
                pipe.multi()
                self._queue_leaderboard(pipe, leaderboard)
                await pipe.execute()
        except WatchError:
            # Another initializer created the key between WATCH and EXEC.
            return False
        return True

    async def load_leaderboard(self, leaderboard_id: str) -> Leaderboard | None:
        raw_config, raw_state = await self.redis.mget(
            config_key(leaderboard_id),
            state_key(leaderboard_id),
        )
        if raw_config is None or raw_state is None:
            return None
        return Leaderboard.from_dicts(leaderboard_id, json.loads(raw_config), json.loads(raw_state))

    async def save_leaderboard(self, leaderboard: Leaderboard) -> None:
        # Config and state are written together so readers never see a mix.
        async with self.redis.pipeline(transaction=True) as pipe:
            self._queue_leaderboard(pipe, leaderboard)
            await pipe.execute()

    async def save_round(self, leaderboard: Leaderboard, session: GameSession) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            self._queue_leaderboard(pipe, leaderboard)
            self._queue_session(pipe, leaderboard.leaderboard_id, session)
            await pipe.execute()

    def _queue_leaderboard(self, pipe: Pipeline, leaderboard: Leaderboard) -> None:
        pipe.set(config_key(leaderboard.leaderboard_id), json.dumps(leaderboard.config.to_dict()))
        pipe.set(state_key(leaderboard.leaderboard_id), json.dumps(leaderboard.to_state_dict()))

    def _queue_session(self, pipe: Pipeline, leaderboard_id: str, session: GameSession) -> None:
        pipe.set(session_key(leaderboard_id, session.player_id), json.dumps(session.to_dict()))

    async def load_session(self, leaderboard_id: str, player_id: str) -> GameSession | None:
        raw = await self.redis.get(session_key(leaderboard_id, player_id))
        if raw is None:
            return None
        return GameSession.from_dict(json.loads(raw))

    async def save_session(self, leaderboard_id: str, session: GameSession) -> None:
        await self.redis.set(
            session_key(leaderboard_id, session.player_id),
            json.dumps(session.to_dict()),
        )

    async def ping(self) -> bool:
        response = await self.redis.ping()
        return bool(response)
