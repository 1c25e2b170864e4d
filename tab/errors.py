"""Exception types shared by the local engine, the sync controller and the server."""

from __future__ import annotations

from typing import Any, Dict, Optional

# Reason codes
GAME_ALREADY_OVER = "GAME_ALREADY_OVER"
WRONG_PHASE = "WRONG_PHASE"
CELL_OUT_OF_RANGE = "CELL_OUT_OF_RANGE"
EMPTY_CELL = "EMPTY_CELL"
NOT_OWNER = "NOT_OWNER"
TAB_RULE = "TAB_RULE"
NO_LEGAL_DESTINATIONS = "NO_LEGAL_DESTINATIONS"
NOT_A_TARGET = "NOT_A_TARGET"
MOVES_AVAILABLE = "MOVES_AVAILABLE"
NOT_YOUR_TURN = "NOT_YOUR_TURN"
NO_FORCED_PASS = "NO_FORCED_PASS"
NO_SESSION = "NO_SESSION"
SESSION_CLOSED = "SESSION_CLOSED"
UNKNOWN_COMMAND = "UNKNOWN_COMMAND"


class IllegalActionError(ValueError):
    """An action was refused before it changed any state.

    ``code`` is one of the reason codes above; ``details`` carries the
    values that made the action illegal (cell index, phase, ...).
    """

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        return f"IllegalActionError({self.code!r}, {self.message!r})"


class RemoteServiceError(Exception):
    """The remote authority refused a command or could not be reached."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
