"""Anti-cheat session keys.

A key binds a score submission to a session the service actually issued. It
is derived from the player, the session start time and the leaderboard
secret, so a trusted game server holding the secret can reproduce it while a
client forging submissions offline cannot.
"""

from __future__ import annotations

import hashlib
import hmac

SECRET_KEY_LENGTH = 32


def derive_session_key(player_id: str, start_time: int, secret: bytes) -> bytes:
    message = player_id.encode("utf-8") + start_time.to_bytes(8, "little", signed=True)
    return hmac.new(secret, message, hashlib.sha256).digest()


def verify_session_key(expected: bytes, submitted: bytes) -> bool:
    return hmac.compare_digest(expected, submitted)


def secret_from_text(value: str) -> bytes:
    # Zero-padded or truncated to the fixed secret width.
    raw = value.encode("utf-8")[:SECRET_KEY_LENGTH]
    return raw.ljust(SECRET_KEY_LENGTH, b"\x00")
