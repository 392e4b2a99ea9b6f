"""Typed domain exceptions for command precondition violations.

Every rule violation raised by the room state machine is a subclass of
GameRuleError carrying a stable ErrorCode. SessionManager catches them at the
command boundary and converts them to a single unicast error message, so the
room state is never touched by a rejected command.
"""

from enum import StrEnum


class ErrorCode(StrEnum):
    """Error codes sent to clients."""

    ROOM_NOT_FOUND = "room_not_found"
    PLAYER_NOT_FOUND = "player_not_found"
    NOT_HOST = "not_host"
    WRONG_PHASE = "wrong_phase"
    WRONG_STATUS = "wrong_status"
    INSUFFICIENT_PLAYERS = "insufficient_players"
    NOT_ALL_READY = "not_all_ready"
    INVALID_ROLE_SETTINGS = "invalid_role_settings"
    DUPLICATE_ACTION = "duplicate_action"
    RATE_LIMITED = "rate_limited"
    VALIDATION_ERROR = "validation_error"
    INVALID_MESSAGE = "invalid_message"
    INTERNAL_ERROR = "internal_error"


class GameRuleError(Exception):
    """Base exception for rejected commands."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RoomNotFoundError(GameRuleError):
    code = ErrorCode.ROOM_NOT_FOUND


class PlayerNotFoundError(GameRuleError):
    code = ErrorCode.PLAYER_NOT_FOUND


class NotHostError(GameRuleError):
    code = ErrorCode.NOT_HOST


class WrongPhaseError(GameRuleError):
    code = ErrorCode.WRONG_PHASE


class WrongStatusError(GameRuleError):
    code = ErrorCode.WRONG_STATUS


class InsufficientPlayersError(GameRuleError):
    code = ErrorCode.INSUFFICIENT_PLAYERS


class NotAllReadyError(GameRuleError):
    code = ErrorCode.NOT_ALL_READY


class InvalidRoleSettingsError(GameRuleError):
    code = ErrorCode.INVALID_ROLE_SETTINGS


class DuplicateActionError(GameRuleError):
    code = ErrorCode.DUPLICATE_ACTION


class RateLimitedError(GameRuleError):
    code = ErrorCode.RATE_LIMITED


class InvalidInputError(GameRuleError):
    """Bad input shape or value (names, targets, action types)."""

    code = ErrorCode.VALIDATION_ERROR
