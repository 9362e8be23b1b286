from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.services.arena import ArenaService
from app.services.leaderboard import Leaderboard
from app.services.ports import TransferError
from app.services.session_keys import derive_session_key
from app.services.sessions import GameSession

SECRET = bytes(range(32))
ADMIN = "admin"
OWNER = "owner"


class MemoryStore:
    """ArenaStore keeping serialized documents, so unsaved mutations never leak.

    Set ``write_failures`` to make that many upcoming writes raise.
    """

    def __init__(self):
        self.leaderboards: dict[str, tuple[dict, dict]] = {}
        self.sessions: dict[tuple[str, str], dict] = {}
        self.write_failures = 0

    def _check_write(self) -> None:
        if self.write_failures:
            self.write_failures -= 1
            raise ConnectionError("Store unavailable")

    async def create_leaderboard(self, leaderboard: Leaderboard) -> bool:
        if leaderboard.leaderboard_id in self.leaderboards:
            return False
        await self.save_leaderboard(leaderboard)
        return True

    async def load_leaderboard(self, leaderboard_id: str) -> Leaderboard | None:
        if leaderboard_id not in self.leaderboards:
            return None
        config, state = self.leaderboards[leaderboard_id]
        return Leaderboard.from_dicts(leaderboard_id, config, state)

    async def save_leaderboard(self, leaderboard: Leaderboard) -> None:
        self._check_write()
        self.leaderboards[leaderboard.leaderboard_id] = (
            leaderboard.config.to_dict(),
            leaderboard.to_state_dict(),
        )

    async def load_session(self, leaderboard_id: str, player_id: str) -> GameSession | None:
        data = self.sessions.get((leaderboard_id, player_id))
        return GameSession.from_dict(data) if data else None

    async def save_session(self, leaderboard_id: str, session: GameSession) -> None:
        self._check_write()
        self.sessions[(leaderboard_id, session.player_id)] = session.to_dict()

    async def save_round(self, leaderboard: Leaderboard, session: GameSession) -> None:
        self._check_write()
        self.leaderboards[leaderboard.leaderboard_id] = (
            leaderboard.config.to_dict(),
            leaderboard.to_state_dict(),
        )
        self.sessions[(leaderboard.leaderboard_id, session.player_id)] = session.to_dict()

    async def ping(self) -> bool:
        return True


@dataclass
class MemoryLedger:
    balances: dict[str, int] = field(default_factory=dict)
    transfers: list[tuple[str, str, int, str | None]] = field(default_factory=list)
    failing_destinations: set[str] = field(default_factory=set)
    failing_sources: set[str] = field(default_factory=set)

    def mint(self, account: str, amount: int) -> None:
        self.balances[account] = self.balances.get(account, 0) + amount

    def balance(self, account: str) -> int:
        return self.balances.get(account, 0)

    async def transfer(self, source, destination, amount, *, authority=None) -> None:
        if destination in self.failing_destinations:
            raise TransferError(f"Destination rejected: {destination}")
        if source in self.failing_sources:
            raise TransferError(f"Source frozen: {source}")
        if self.balance(source) < amount:
            raise TransferError(f"Insufficient balance: {source}")
        self.balances[source] = self.balance(source) - amount
        self.balances[destination] = self.balance(destination) + amount
        self.transfers.append((source, destination, amount, authority))


class FakeClock:
    def __init__(self, start: int = 1_700_000_000):
        self.current = start

    def now(self) -> int:
        return self.current

    def advance(self, seconds: int) -> None:
        self.current += seconds


@dataclass
class Harness:
    service: ArenaService
    store: MemoryStore
    ledger: MemoryLedger
    clock: FakeClock

    def session_key(self, player_id: str, start_time: int, secret: bytes = SECRET) -> str:
        return derive_session_key(player_id, start_time, secret).hex()


def build_harness() -> Harness:
    store = MemoryStore()
    ledger = MemoryLedger()
    clock = FakeClock()
    service = ArenaService(store, ledger, clock=clock, default_secret=SECRET)
    return Harness(service=service, store=store, ledger=ledger, clock=clock)


@pytest.fixture()
def harness() -> Harness:
    return build_harness()


@pytest.fixture()
def client(harness: Harness):
    app = create_app(service_factory=lambda: harness.service)
    leaderboard_id = f"testboard_{uuid.uuid4().hex[:12]}"

    with TestClient(app) as test_client:
        yield test_client, harness, leaderboard_id


@pytest.fixture(scope="session")
def redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")
