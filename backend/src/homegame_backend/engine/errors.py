from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    NOT_ENOUGH_PLAYERS = "NOT_ENOUGH_PLAYERS"
    NOT_AWAITING_REVEAL = "NOT_AWAITING_REVEAL"
    NOT_AT_SHOWDOWN = "NOT_AT_SHOWDOWN"
    INVALID_WINNERS = "INVALID_WINNERS"
    HAND_ALREADY_SETTLED = "HAND_ALREADY_SETTLED"
    NO_ACTIVE_HAND = "NO_ACTIVE_HAND"
    HAND_ALREADY_RUNNING = "HAND_ALREADY_RUNNING"
    BAD_ACTION_SEQ = "BAD_ACTION_SEQ"
    UNKNOWN_PLAYER = "UNKNOWN_PLAYER"
    SEAT_TAKEN = "SEAT_TAKEN"
    INVALID_SEAT = "INVALID_SEAT"
    HAND_NOT_FOUND = "HAND_NOT_FOUND"


class EngineRejectedAction(Exception):
    def __init__(self, code: str | Enum, message: str) -> None:
        super().__init__(message)
        self.code = code.value if isinstance(code, Enum) else code
        self.message = message


class EngineStateError(RuntimeError):
    pass
