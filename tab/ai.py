"""Computer opponent: random, greedy and one-ply expectimax move selection."""

from __future__ import annotations

import random
from typing import List, Optional, Tuple

import numpy as np
from loguru import logger

from tab.board import (
    Board,
    is_mirrored,
    mirror_index,
    opponent,
    path_position,
    row_of,
    terminal_row,
)
from tab.config import AI_LEVELS
from tab.game import (
    AWAITING_ROLL,
    FORCED_PASS,
    SELECT_ORIGIN,
    STICK_PROBABILITIES,
    MoveResult,
    TurnStateMachine,
)
from tab.moves import is_capture, movable_pieces

# Heuristic weights
_CAPTURE_BONUS = 10.0
_FINISH_BONUS = 6.0
_PROGRESS_WEIGHT = 0.5
_THREAT_WEIGHT = 8.0

_ROLL_VALUES = np.array(list(STICK_PROBABILITIES.keys()), dtype=np.int64)
_ROLL_PROBS = np.array(list(STICK_PROBABILITIES.values()), dtype=np.float64)

# Safety stop for a single computer turn.
_MAX_ACTIONS_PER_TURN = 500


def _progress(idx: int, player: str, cols: int) -> int:
    """Distance along *player*'s own route."""
    if is_mirrored(player):
        idx = mirror_index(idx, cols)
    return path_position(idx, cols)


def move_score(board: Board, player: str, origin: int, dest: int, cols: int) -> float:
    """Greedy value of a single move, ignoring the opponent's reply."""
    score = _PROGRESS_WEIGHT * (_progress(dest, player, cols) - _progress(origin, player, cols))
    if is_capture(board, player, dest):
        score += _CAPTURE_BONUS
    if row_of(dest, cols) == terminal_row(player) and row_of(origin, cols) != terminal_row(player):
        score += _FINISH_BONUS
    return score


def capture_threat(board: Board, player: str, cols: int) -> float:
    """Expected number of *player*'s pieces the opponent can hit next throw."""
    attacker = opponent(player)
    hits = np.zeros(len(_ROLL_VALUES), dtype=np.float64)
    for i, value in enumerate(_ROLL_VALUES):
        targets = set()
        for dests in movable_pieces(board, attacker, int(value), cols).values():
            targets.update(d for d in dests if is_capture(board, attacker, d))
        hits[i] = len(targets)
    return float(_ROLL_PROBS @ hits)


def _apply(board: Board, origin: int, dest: int) -> Board:
    after = board[:]
    after[dest] = after[origin]
    after[origin] = None
    return after


class AIPlayer:
    """Plays one side of a local match through the public game methods."""

    def __init__(self, player: str, level: str = "easy", rng: Optional[random.Random] = None) -> None:
        if level not in AI_LEVELS:
            raise ValueError(f"level must be one of {AI_LEVELS}, got {level!r}")
        self.player = player
        self.level = level
        self.rng = rng if rng is not None else random.Random()

    def choose_move(self, game: TurnStateMachine) -> Tuple[int, int]:
        """Pick an (origin, destination) pair for the pending roll."""
        moves = game.legal_moves()
        if not moves:
            raise RuntimeError("No legal moves available for the computer player.")
        if self.level == "easy":
            return self.rng.choice(moves)

        scores = np.array([self._score(game, o, d) for o, d in moves], dtype=np.float64)
        best = np.flatnonzero(scores == scores.max())
        return moves[int(self.rng.choice(list(best)))]

    def _score(self, game: TurnStateMachine, origin: int, dest: int) -> float:
        score = move_score(game.board, self.player, origin, dest, game.cols)
        if self.level == "hard":
            after = _apply(game.board, origin, dest)
            score -= _THREAT_WEIGHT * capture_threat(after, self.player, game.cols)
        return score

    def play_turn(self, game: TurnStateMachine) -> List[MoveResult]:
        """Roll, move and pass until the turn passes to the opponent."""
        results: List[MoveResult] = []
        for _ in range(_MAX_ACTIONS_PER_TURN):
            if game.done or game.active_player != self.player:
                break
            if game.phase == AWAITING_ROLL:
                roll = game.roll_sticks()
                logger.debug("AI ({}) threw {}", self.level, roll.value)
            elif game.phase == FORCED_PASS:
                logger.debug("AI skips turn automatically (no valid moves)")
                game.pass_turn()
            elif game.phase == SELECT_ORIGIN:
                origin, dest = self.choose_move(game)
                results.append(game.move(origin, dest))
            else:
                raise RuntimeError(f"Computer player cannot act during {game.phase}.")
        return results
