"""Per-player game session state machine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from app.services.errors import (
    InvalidSessionKeyError,
    NameTooLongError,
    ScoreAlreadyLoggedError,
    SessionAlreadyActiveError,
    SessionExpiredError,
)
from app.services.session_keys import verify_session_key

SESSION_TTL_SECONDS = 600
MAX_NAME_LENGTH = 10


class SessionStatus(str, Enum):
    ACTIVE = "active"
    SUCCESS = "success"
    EXPIRED = "expired"
    REJECTED = "rejected"


@dataclass(slots=True)
class GameSession:
    player_id: str
    display_name: str
    start_time: int
    status: SessionStatus = SessionStatus.ACTIVE
    session_key: bytes = b""

    @property
    def completed(self) -> bool:
        return self.status is not SessionStatus.ACTIVE

    def is_expired(self, now: int) -> bool:
        return now - self.start_time > SESSION_TTL_SECONDS

    def complete_score(self, submitted_key: bytes | None, now: int, require_key: bool) -> None:
        """Transition the session for a score submission or raise.

        Expiry is checked first so a stale session cannot be rescued by a
        valid key. Expired and rejected sessions are marked completed before
        the error is raised; the caller must persist that.
        """
        if self.is_expired(now):
            if not self.completed:
                self.status = SessionStatus.EXPIRED
            raise SessionExpiredError()

        if require_key and not verify_session_key(self.session_key, submitted_key or b""):
            if not self.completed:
                self.status = SessionStatus.REJECTED
            raise InvalidSessionKeyError()

        if self.completed:
            raise ScoreAlreadyLoggedError()

        self.status = SessionStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "display_name": self.display_name,
            "start_time": self.start_time,
            "status": self.status.value,
            "session_key": self.session_key.hex(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GameSession:
        return cls(
            player_id=data["player_id"],
            display_name=data["display_name"],
            start_time=int(data["start_time"]),
            status=SessionStatus(data["status"]),
            session_key=bytes.fromhex(data.get("session_key", "")),
        )


def validate_display_name(display_name: str) -> None:
    # Character count, not byte count.
    if len(display_name) > MAX_NAME_LENGTH:
        raise NameTooLongError(details={"max_length": MAX_NAME_LENGTH})


def retire_previous(previous: GameSession | None, now: int) -> None:
    """Allow a new start only once the player's previous session is over.

    An abandoned session that outlived its window is marked expired in place.
    """
    if previous is None or previous.completed:
        return
    if previous.is_expired(now):
        previous.status = SessionStatus.EXPIRED
        return
    raise SessionAlreadyActiveError(
        details={"expires_at": previous.start_time + SESSION_TTL_SECONDS},
    )
