"""Sanitizing of player-supplied text and per-player chat rate limiting."""

import re
import time

from mafia.logic.exceptions import InvalidInputError, RateLimitedError

DEFAULT_PLAYER_NAME = "Player"
MAX_NAME_LENGTH = 24
MAX_CHAT_LENGTH = 200

_WHITESPACE_RUN = re.compile(r"\s+")
_ANGLE_BRACKETS = re.compile(r"[<>]")


def sanitize_name(raw: str | None) -> str:
    """Trim a display name, default it when empty, and bound its length."""
    name = _WHITESPACE_RUN.sub(" ", _ANGLE_BRACKETS.sub("", raw or "")).strip()
    return name[:MAX_NAME_LENGTH] or DEFAULT_PLAYER_NAME


def sanitize_chat_text(raw: str) -> str:
    """Strip angle brackets, collapse whitespace and truncate.

    Raises InvalidInputError if nothing printable is left.
    """
    text = _WHITESPACE_RUN.sub(" ", _ANGLE_BRACKETS.sub("", raw)).strip()
    if not text:
        raise InvalidInputError("Chat message is empty")
    return text[:MAX_CHAT_LENGTH]


class ChatRateLimiter:
    """Allow at most max_messages per player in each fixed window of window_seconds.

    A player's window opens with their first message and restarts on the
    first message sent after it has elapsed.
    """

    def __init__(self, max_messages: int, window_seconds: float) -> None:
        self._max_messages = max_messages
        self._window_seconds = window_seconds
        self._windows: dict[str, tuple[float, int]] = {}  # player_id -> (window start, count)

    def check(self, player_id: str, now: float | None = None) -> None:
        """Record one message for player_id or raise RateLimitedError."""
        now = time.monotonic() if now is None else now
        started, count = self._windows.get(player_id, (now, 0))
        if now - started >= self._window_seconds:
            started, count = now, 0
        if count >= self._max_messages:
            raise RateLimitedError(
                f"Too many messages: limit is {self._max_messages} per {self._window_seconds:g}s",
            )
        self._windows[player_id] = (started, count + 1)

    def forget(self, player_id: str) -> None:
        self._windows.pop(player_id, None)
