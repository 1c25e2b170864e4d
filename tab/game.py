"""
Tâb game engine.

Implements the local turn state machine:
- Stick throws (four two-sided sticks, 0 up counts as 6)
- Extra rolls on 1, 4 and 6, without switching player
- Forced pass when a throw leaves no legal move and no extra-roll credit
- Origin / destination selection with cancel, captures, piece states
- Win detection after every move, and forfeit
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from loguru import logger

from tab import errors
from tab.board import (
    DEFAULT_COLS,
    FINAL,
    GOLD,
    MOVED,
    PLAYERS,
    Board,
    Piece,
    initial_board,
    num_cells,
    opponent,
    row_of,
    terminal_row,
    validate_cols,
)
from tab.errors import IllegalActionError
from tab.moves import (
    can_move,
    count_pieces,
    legal_destinations,
    movable_pieces,
)

# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

AWAITING_ROLL: str = "awaitingRoll"
SELECT_ORIGIN: str = "selectOrigin"
SELECT_DESTINATION: str = "selectDestination"
FORCED_PASS: str = "forcedPass"
GAME_OVER: str = "gameOver"


# ---------------------------------------------------------------------------
# Sticks
# ---------------------------------------------------------------------------

STICK_COUNT: int = 4

# Throws that let the same player roll again.
EXTRA_ROLL_VALUES: FrozenSet[int] = frozenset({1, 4, 6})

# Exact distribution of four fair sticks; 5 cannot be thrown.
STICK_PROBABILITIES: Dict[int, float] = {
    1: 4 / 16,
    2: 6 / 16,
    3: 4 / 16,
    4: 1 / 16,
    6: 1 / 16,
}


@dataclass(frozen=True)
class Roll:
    value: int
    grants_extra_roll: bool


def throw_sticks(rng: random.Random) -> Tuple[bool, ...]:
    """Toss the sticks; True means the flat side landed up."""
    return tuple(rng.random() < 0.5 for _ in range(STICK_COUNT))


def roll_from_sticks(sticks: Sequence[bool]) -> Roll:
    """Score a throw: the up-count, except that no stick up scores 6."""
    up = sum(1 for s in sticks if s)
    value = 6 if up == 0 else up
    return Roll(value=value, grants_extra_roll=value in EXTRA_ROLL_VALUES)


# ---------------------------------------------------------------------------
# Move outcome
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MoveResult:
    origin: int
    destination: int
    captured: Optional[Piece]
    extra_roll: bool
    winner: Optional[str]


# ---------------------------------------------------------------------------
# TurnStateMachine
# ---------------------------------------------------------------------------

class TurnStateMachine:
    """Full local game state for one Tâb match.

    Owns the board and every turn field.  Each public method either
    completes its transition or raises :class:`IllegalActionError` without
    touching any state.
    """

    def __init__(
        self,
        cols: int = DEFAULT_COLS,
        first_player: str = GOLD,
        rng: Optional[random.Random] = None,
    ) -> None:
        if first_player not in PLAYERS:
            raise ValueError(f"Unknown player {first_player!r}")
        self.cols: int = validate_cols(cols)
        self.board: Board = initial_board(cols)
        self.first_player: str = first_player
        self.active_player: str = first_player
        self.phase: str = AWAITING_ROLL
        self.current_roll: Optional[Roll] = None
        self.last_roll: Optional[Roll] = None
        self.selected_origin: Optional[int] = None
        self.selected_targets: FrozenSet[int] = frozenset()
        self.rolls_this_turn: int = 0
        self.winner: Optional[str] = None
        self.move_count: int = 0
        self.last_move: Optional[Tuple[int, int]] = None
        self._rng = rng if rng is not None else random.Random()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def done(self) -> bool:
        return self.phase == GAME_OVER

    def piece_counts(self) -> Dict[str, int]:
        return {p: count_pieces(self.board, p) for p in PLAYERS}

    def movable_pieces(self) -> Dict[int, FrozenSet[int]]:
        """Movable pieces of the active player for the pending roll."""
        if self.current_roll is None or self.done:
            return {}
        return movable_pieces(self.board, self.active_player, self.current_roll.value, self.cols)

    def legal_moves(self) -> List[Tuple[int, int]]:
        """Every (origin, destination) pair open to the active player."""
        return [
            (origin, dest)
            for origin, dests in sorted(self.movable_pieces().items())
            for dest in sorted(dests)
        ]

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _require_live(self) -> None:
        if self.done:
            raise IllegalActionError(
                errors.GAME_ALREADY_OVER, "The game has already ended.", {"winner": self.winner}
            )

    def _require_phase(self, *phases: str) -> None:
        if self.phase not in phases:
            raise IllegalActionError(
                errors.WRONG_PHASE,
                f"Not allowed during {self.phase}.",
                {"phase": self.phase, "expected": list(phases)},
            )

    def _require_cell(self, idx: int) -> None:
        if not isinstance(idx, int) or isinstance(idx, bool) or not 0 <= idx < num_cells(self.cols):
            raise IllegalActionError(
                errors.CELL_OUT_OF_RANGE,
                f"Cell {idx!r} is out of range 0..{num_cells(self.cols) - 1}.",
                {"cell": idx},
            )

    # ------------------------------------------------------------------
    # Rolling
    # ------------------------------------------------------------------

    def roll_sticks(self) -> Roll:
        """Throw the sticks for the active player.

        With no movable piece the throw is either discarded (extra-roll
        credit, roll again) or leads to a forced pass.
        """
        self._require_live()
        self._require_phase(AWAITING_ROLL)

        roll = roll_from_sticks(throw_sticks(self._rng))
        self.rolls_this_turn += 1
        self.last_roll = roll
        logger.debug("{} threw {}", self.active_player, roll.value)

        if movable_pieces(self.board, self.active_player, roll.value, self.cols):
            self.current_roll = roll
            self.phase = SELECT_ORIGIN
        elif roll.grants_extra_roll:
            # No move, but the throw keeps the turn: roll again.
            self.current_roll = None
        else:
            self.current_roll = roll
            self.phase = FORCED_PASS
            logger.debug("{} has no move with {}, must pass", self.active_player, roll.value)

        return roll

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_origin(self, idx: int) -> FrozenSet[int]:
        """Pick the piece to move; returns its legal destinations."""
        self._require_live()
        self._require_phase(SELECT_ORIGIN)
        self._require_cell(idx)

        piece = self.board[idx]
        if piece is None:
            raise IllegalActionError(errors.EMPTY_CELL, f"Cell {idx} is empty.", {"cell": idx})
        if piece.owner != self.active_player:
            raise IllegalActionError(
                errors.NOT_OWNER, f"Cell {idx} holds a {piece.owner} piece.", {"cell": idx}
            )
        roll = self.current_roll.value
        if not can_move(piece, roll):
            raise IllegalActionError(
                errors.TAB_RULE,
                f"Cannot move initial pieces with roll = {roll}.",
                {"cell": idx, "roll": roll},
            )
        dests = legal_destinations(self.board, self.active_player, idx, roll, self.cols)
        if not dests:
            raise IllegalActionError(
                errors.NO_LEGAL_DESTINATIONS,
                f"No valid moves with {roll} from cell {idx}.",
                {"cell": idx, "roll": roll},
            )

        self.selected_origin = idx
        self.selected_targets = dests
        self.phase = SELECT_DESTINATION
        return dests

    def select_destination(self, idx: int) -> Optional[MoveResult]:
        """Move the selected piece to *idx*.

        Choosing the selected origin again cancels the selection and
        returns None.
        """
        self._require_live()
        self._require_phase(SELECT_DESTINATION)
        self._require_cell(idx)

        if idx == self.selected_origin:
            self.selected_origin = None
            self.selected_targets = frozenset()
            self.phase = SELECT_ORIGIN
            return None

        if idx not in self.selected_targets:
            raise IllegalActionError(
                errors.NOT_A_TARGET,
                f"Invalid move: move exactly {self.current_roll.value} steps.",
                {"cell": idx, "targets": sorted(self.selected_targets)},
            )

        return self._apply_move(self.selected_origin, idx)

    def move(self, origin: int, destination: int) -> MoveResult:
        """Select and play *origin* -> *destination* in one call."""
        self._require_live()
        self._require_phase(SELECT_ORIGIN)
        self._require_cell(destination)
        dests = self.select_origin(origin)
        if destination not in dests:
            self.selected_origin = None
            self.selected_targets = frozenset()
            self.phase = SELECT_ORIGIN
            raise IllegalActionError(
                errors.NOT_A_TARGET,
                f"Cell {destination} is not reachable from {origin}.",
                {"cell": destination, "targets": sorted(dests)},
            )
        return self._apply_move(origin, destination)

    # ------------------------------------------------------------------
    # Move execution
    # ------------------------------------------------------------------

    def _apply_move(self, origin: int, dest: int) -> MoveResult:
        player = self.active_player
        roll = self.current_roll
        piece = self.board[origin]
        captured = self.board[dest]

        piece = piece.advanced_to(MOVED)
        if row_of(dest, self.cols) == terminal_row(player):
            piece = piece.advanced_to(FINAL)

        self.board[dest] = piece
        self.board[origin] = None
        self.move_count += 1
        self.last_move = (origin, dest)
        self.current_roll = None
        self.selected_origin = None
        self.selected_targets = frozenset()

        if captured is not None:
            logger.debug("{} captured {} piece on {}", player, captured.owner, dest)

        winner = self._check_winner()
        if winner is not None:
            self._finish(winner, "captured every opposing piece")
        elif roll.grants_extra_roll:
            self.phase = AWAITING_ROLL
        else:
            self._switch_player()

        return MoveResult(
            origin=origin,
            destination=dest,
            captured=captured,
            extra_roll=winner is None and roll.grants_extra_roll,
            winner=winner,
        )

    def _check_winner(self) -> Optional[str]:
        for player in PLAYERS:
            if count_pieces(self.board, player) == 0:
                return opponent(player)
        return None

    # ------------------------------------------------------------------
    # Turn ends
    # ------------------------------------------------------------------

    def pass_turn(self) -> None:
        """End a turn that has no legal move."""
        self._require_live()
        if self.phase in (SELECT_ORIGIN, SELECT_DESTINATION):
            raise IllegalActionError(
                errors.MOVES_AVAILABLE, "A legal move exists; passing is not allowed."
            )
        self._require_phase(FORCED_PASS)
        self._switch_player()

    def forfeit(self, player: Optional[str] = None) -> str:
        """Resign for *player* (default: the active player); returns the winner."""
        self._require_live()
        loser = player if player is not None else self.active_player
        if loser not in PLAYERS:
            raise ValueError(f"Unknown player {loser!r}")
        winner = opponent(loser)
        self._finish(winner, "wins by resignation")
        return winner

    def _switch_player(self) -> None:
        """Hand the turn to the opponent and reset per-turn counters."""
        self.active_player = opponent(self.active_player)
        self.phase = AWAITING_ROLL
        self.current_roll = None
        self.selected_origin = None
        self.selected_targets = frozenset()
        self.rolls_this_turn = 0
        logger.debug("It's now {}'s turn", self.active_player)

    def _finish(self, winner: str, reason: str) -> None:
        self.winner = winner
        self.phase = GAME_OVER
        self.current_roll = None
        self.selected_origin = None
        self.selected_targets = frozenset()
        logger.info("{} {} after {} moves", winner, reason, self.move_count)

    # ------------------------------------------------------------------
    # Clone
    # ------------------------------------------------------------------

    def clone(self) -> TurnStateMachine:
        """Return an independent copy (shares the RNG)."""
        new = TurnStateMachine.__new__(TurnStateMachine)
        new.cols = self.cols
        new.board = self.board[:]
        new.first_player = self.first_player
        new.active_player = self.active_player
        new.phase = self.phase
        new.current_roll = self.current_roll
        new.last_roll = self.last_roll
        new.selected_origin = self.selected_origin
        new.selected_targets = self.selected_targets
        new.rolls_this_turn = self.rolls_this_turn
        new.winner = self.winner
        new.move_count = self.move_count
        new.last_move = self.last_move
        new._rng = self._rng
        return new

    # ------------------------------------------------------------------
    # String representation
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        roll = f", roll={self.current_roll.value}" if self.current_roll is not None else ""
        return (
            f"TurnStateMachine({self.phase}, {self.active_player} to play, "
            f"cols={self.cols}, move={self.move_count}{roll})"
        )
