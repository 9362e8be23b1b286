"""Bounded top-N leaderboard and the prize/commission pools it accrues."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.services.errors import PlayerNotRankedError

MAX_ENTRIES = 10
PAID_RANKS = 3


@dataclass(slots=True)
class Entry:
    player_id: str
    score: int
    display_name: str
    claimed: bool = False


@dataclass(slots=True)
class RankedEntry:
    rank: int
    entry: Entry


@dataclass(slots=True)
class LeaderboardConfig:
    entry_fee: int
    prize_ratio: int
    commission_ratio: int
    prize_distribution: tuple[int, int, int]
    authority: str
    owner_account: str
    token_pool: str
    secret_key: bytes
    payout_policy: str = "claim"
    require_session_key: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_fee": self.entry_fee,
            "prize_ratio": self.prize_ratio,
            "commission_ratio": self.commission_ratio,
            "prize_distribution": list(self.prize_distribution),
            "authority": self.authority,
            "owner_account": self.owner_account,
            "token_pool": self.token_pool,
            "secret_key": self.secret_key.hex(),
            "payout_policy": self.payout_policy,
            "require_session_key": self.require_session_key,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LeaderboardConfig:
        return cls(
            entry_fee=int(data["entry_fee"]),
            prize_ratio=int(data["prize_ratio"]),
            commission_ratio=int(data["commission_ratio"]),
            prize_distribution=tuple(int(p) for p in data["prize_distribution"]),
            authority=data["authority"],
            owner_account=data["owner_account"],
            token_pool=data["token_pool"],
            secret_key=bytes.fromhex(data["secret_key"]),
            payout_policy=data["payout_policy"],
            require_session_key=bool(data["require_session_key"]),
        )


@dataclass(slots=True)
class Leaderboard:
    leaderboard_id: str
    config: LeaderboardConfig
    prize_pool: int = 0
    commission_pool: int = 0
    entries: list[Entry] = field(default_factory=list)

    def insert(self, player_id: str, score: int, display_name: str) -> int | None:
        """Record a score and return its rank, or None if it was evicted at once."""
        entry = Entry(player_id=player_id, score=score, display_name=display_name)
        self.entries.append(entry)
        # list.sort is stable, so equal scores keep insertion order.
        self.entries.sort(key=lambda e: e.score, reverse=True)
        del self.entries[MAX_ENTRIES:]
        for index, candidate in enumerate(self.entries):
            if candidate is entry:
                return index
        return None

    def rank(self, player_id: str) -> int:
        for index, entry in enumerate(self.entries):
            if entry.player_id == player_id:
                return index
        raise PlayerNotRankedError(details={"player_id": player_id})

    def ranked(self) -> list[RankedEntry]:
        return [RankedEntry(rank=index, entry=entry) for index, entry in enumerate(self.entries)]

    def credit_entry_fee(self) -> tuple[int, int]:
        # Rounding remainders are dropped from both pools.
        fee = self.config.entry_fee
        prize_addition = fee * self.config.prize_ratio // 100
        commission_addition = fee * self.config.commission_ratio // 100
        self.prize_pool += prize_addition
        self.commission_pool += commission_addition
        return prize_addition, commission_addition

    def share(self, rank: int) -> int:
        return self.prize_pool * self.config.prize_distribution[rank] // 100

    def to_state_dict(self) -> dict[str, Any]:
        return {
            "prize_pool": self.prize_pool,
            "commission_pool": self.commission_pool,
            "entries": [
                {
                    "player_id": e.player_id,
                    "score": e.score,
                    "display_name": e.display_name,
                    "claimed": e.claimed,
                }
                for e in self.entries
            ],
        }

    @classmethod
    def from_dicts(
        cls,
        leaderboard_id: str,
        config: dict[str, Any],
        state: dict[str, Any],
    ) -> Leaderboard:
        return cls(
            leaderboard_id=leaderboard_id,
            config=LeaderboardConfig.from_dict(config),
            prize_pool=int(state["prize_pool"]),
            commission_pool=int(state["commission_pool"]),
            entries=[Entry(**row) for row in state["entries"]],
        )
