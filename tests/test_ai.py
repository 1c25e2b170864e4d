"""
Tests for tab.ai and tab.config: computer move choice, full computer
turns, threat estimation and match settings.
"""

from __future__ import annotations

import random
from unittest.mock import patch

import pytest

from tab.ai import AIPlayer, capture_threat, move_score
from tab.board import BLACK, GOLD, MOVED, Piece, num_cells
from tab.config import MatchConfig
from tab.game import AWAITING_ROLL, TurnStateMachine

COLS = 9


def _sticks(value):
    if value == 6:
        return (False,) * 4
    return (True,) * value + (False,) * (4 - value)


def _scripted(*values):
    return patch("tab.game.throw_sticks", side_effect=[_sticks(v) for v in values])


def _board(cells):
    board = [None] * num_cells(COLS)
    for idx, piece in cells.items():
        board[idx] = piece
    return board


# ===================================================================
# Heuristics
# ===================================================================

class TestHeuristics:

    def test_capture_scores_higher_than_plain_move(self):
        board = _board({9: Piece(GOLD, MOVED), 12: Piece(GOLD, MOVED), 11: Piece(BLACK, MOVED)})
        assert move_score(board, GOLD, 9, 11, COLS) > move_score(board, GOLD, 12, 14, COLS)

    def test_capture_threat(self):
        # Black on 9 hits 11 only with a 2.
        board = _board({11: Piece(GOLD, MOVED), 9: Piece(BLACK, MOVED)})
        assert capture_threat(board, GOLD, COLS) == pytest.approx(6 / 16)

    def test_no_threat(self):
        board = _board({11: Piece(GOLD, MOVED), 35: Piece(BLACK)})
        assert capture_threat(board, GOLD, COLS) == 0.0


# ===================================================================
# AIPlayer
# ===================================================================

class TestAIPlayer:

    def test_rejects_unknown_level(self):
        with pytest.raises(ValueError):
            AIPlayer(GOLD, "expert")

    @pytest.mark.parametrize("level", ["easy", "medium", "hard"])
    def test_choice_is_legal(self, level):
        game = TurnStateMachine(cols=COLS, rng=random.Random(3))
        with _scripted(1):
            game.roll_sticks()
        ai = AIPlayer(GOLD, level, random.Random(0))
        assert ai.choose_move(game) in game.legal_moves()

    @pytest.mark.parametrize("level", ["medium", "hard"])
    def test_prefers_capture(self, level):
        game = TurnStateMachine(cols=COLS)
        game.board = _board({
            9: Piece(GOLD, MOVED),
            12: Piece(GOLD, MOVED),
            11: Piece(BLACK, MOVED),
            35: Piece(BLACK),
        })
        with _scripted(2):
            game.roll_sticks()
        assert AIPlayer(GOLD, level, random.Random(0)).choose_move(game) == (9, 11)

    def test_no_moves(self):
        game = TurnStateMachine(cols=COLS)
        with pytest.raises(RuntimeError):
            AIPlayer(GOLD).choose_move(game)

    def test_play_turn_moves_until_turn_passes(self):
        game = TurnStateMachine(cols=COLS)
        ai = AIPlayer(GOLD, "easy", random.Random(0))
        with _scripted(1, 2):
            results = ai.play_turn(game)
        assert [(r.origin, r.destination) for r in results] == [(0, 9), (9, 11)]
        assert game.active_player == BLACK
        assert game.phase == AWAITING_ROLL

    def test_play_turn_passes_when_stuck(self):
        game = TurnStateMachine(cols=COLS)
        ai = AIPlayer(GOLD, "hard", random.Random(0))
        with _scripted(4, 3):
            results = ai.play_turn(game)
        assert results == []
        assert game.active_player == BLACK

    def test_play_turn_does_nothing_for_other_side(self):
        game = TurnStateMachine(cols=COLS)
        assert AIPlayer(BLACK).play_turn(game) == []
        assert game.phase == AWAITING_ROLL

    @pytest.mark.slow
    @pytest.mark.parametrize("level", ["easy", "hard"])
    def test_self_play_finishes(self, level):
        rng = random.Random(42)
        game = TurnStateMachine(cols=5, rng=rng)
        players = {GOLD: AIPlayer(GOLD, level, rng), BLACK: AIPlayer(BLACK, level, rng)}
        for _ in range(5000):
            if game.done:
                break
            players[game.active_player].play_turn(game)
        assert game.done
        assert game.winner in (GOLD, BLACK)


# ===================================================================
# MatchConfig
# ===================================================================

class TestMatchConfig:

    def test_defaults(self):
        config = MatchConfig()
        assert config.cols == 9
        assert config.first_player == GOLD
        assert "Player vs Player" in config.describe()

    def test_vs_computer(self):
        config = MatchConfig(cols=7, mode="pvc", ai_level="hard")
        assert "Computer (hard)" in config.describe()
        assert "7 columns" in config.describe()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"cols": 4},
            {"first_player": "Red"},
            {"mode": "online"},
            {"ai_level": "expert"},
            {"ai_player": "White"},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            MatchConfig(**kwargs)
