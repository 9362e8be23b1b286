"""Capability interfaces the arena engine consumes but does not implement."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from app.services.leaderboard import Leaderboard
    from app.services.sessions import GameSession


class TransferError(Exception):
    """Raised by a ledger when a transfer cannot be executed."""


class LedgerPort(Protocol):
    async def transfer(
        self,
        source: str,
        destination: str,
        amount: int,
        *,
        authority: str | None = None,
    ) -> None:
        """Move ``amount`` tokens. ``authority`` names the signing party for pool payouts."""
        ...


class Clock(Protocol):
    def now(self) -> int: ...


class ArenaStore(Protocol):
    async def create_leaderboard(self, leaderboard: Leaderboard) -> bool:
        """Persist a new leaderboard; return False if the id is already taken."""
        ...

    async def load_leaderboard(self, leaderboard_id: str) -> Leaderboard | None: ...

    async def save_leaderboard(self, leaderboard: Leaderboard) -> None: ...

    async def load_session(self, leaderboard_id: str, player_id: str) -> GameSession | None: ...

    async def save_session(self, leaderboard_id: str, session: GameSession) -> None: ...

    async def save_round(self, leaderboard: Leaderboard, session: GameSession) -> None:
        """Write the leaderboard and one of its sessions in a single atomic step."""
        ...

    async def ping(self) -> bool: ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())
