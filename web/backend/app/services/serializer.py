from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from tab.board import FINAL, INITIAL, Piece
from tab.game import (
    FORCED_PASS,
    SELECT_DESTINATION,
    SELECT_ORIGIN,
    Roll,
    TurnStateMachine,
)
from tab.moves import is_capture
from tab.protocol import (
    STEP_CAPTURE_CHOICE,
    STEP_SELECT_DESTINATION,
    STEP_SELECT_ORIGIN,
)

if TYPE_CHECKING:
    from .session import Match


def roll_to_wire(roll: Optional[Roll]) -> Optional[dict]:
    if roll is None:
        return None
    return {"value": roll.value, "grantsExtraRoll": roll.grants_extra_roll}


def piece_to_wire(match: Match, piece: Optional[Piece]) -> Optional[dict]:
    if piece is None:
        return None
    return {
        "owner": match.identity_of(piece.owner),
        "inMotion": piece.state != INITIAL,
        "reachedFinalRow": piece.state == FINAL,
    }


def step_for(game: TurnStateMachine) -> str:
    """Wire step for the engine phase; a pending capture shows as captureChoice."""
    if game.phase != SELECT_DESTINATION:
        return STEP_SELECT_ORIGIN
    if any(is_capture(game.board, game.active_player, d) for d in game.selected_targets):
        return STEP_CAPTURE_CHOICE
    return STEP_SELECT_DESTINATION


def selectable_cells(game: TurnStateMachine) -> list[int]:
    if game.phase == SELECT_ORIGIN:
        return sorted(game.movable_pieces())
    if game.phase == SELECT_DESTINATION:
        return sorted(game.selected_targets)
    return []


def match_snapshot(match: Match) -> Dict[str, Any]:
    """Everything a freshly connected client needs, in wire form."""
    payload: Dict[str, Any] = {
        "session": match.session_id,
        "playerColorMap": match.color_map(),
    }
    game = match.game
    if game is not None:
        payload.update({
            "initialPlayer":    match.identity_of(game.first_player),
            "activePlayer":     match.identity_of(game.active_player),
            "step":             step_for(game),
            "roll":             roll_to_wire(game.current_roll),
            "forcedPassTarget": match.identity_of(game.active_player) if game.phase == FORCED_PASS else None,
            "pieces":           [piece_to_wire(match, p) for p in game.board],
            "selectableCells":  selectable_cells(game),
            "lastTouchedCell":  match.last_touched_cell,
        })
    if match.finished:
        payload["winner"] = match.winner
    return payload


def diff_payload(previous: Dict[str, Any], current: Dict[str, Any]) -> Dict[str, Any]:
    """Fields of *current* that differ from, or are missing in, *previous*."""
    return {
        key: value
        for key, value in current.items()
        if key not in previous or previous[key] != value
    }
