#!/usr/bin/env python3
"""Play Tâb from the terminal, against a friend or the computer."""

from __future__ import annotations

import argparse
import random
import sys
from typing import List, Optional

from loguru import logger

from tab.ai import AIPlayer
from tab.board import (
    BLACK,
    DEFAULT_COLS,
    GOLD,
    MAX_COLS,
    MIN_COLS,
    ROWS,
    piece_char,
)
from tab.config import AI_LEVELS, MODES, MatchConfig
from tab.coords import to_grid, to_index
from tab.errors import IllegalActionError
from tab.game import (
    AWAITING_ROLL,
    FORCED_PASS,
    SELECT_DESTINATION,
    SELECT_ORIGIN,
    MoveResult,
    TurnStateMachine,
)

PLAYER_BY_NAME = {"gold": GOLD, "black": BLACK}


def fmt_cell(idx: int, cols: int) -> str:
    """Cell index with its grid position, e.g. ``10(2,1)``."""
    r, c = to_grid(idx, cols)
    return f"{idx}({r},{c})"


def render_grid(game: TurnStateMachine) -> str:
    """Draw the board the way the grid coordinates lay it out."""
    cols = game.cols
    grid: List[List[str]] = [["."] * cols for _ in range(ROWS)]
    for idx, piece in enumerate(game.board):
        r, c = to_grid(idx, cols)
        grid[r][c] = piece_char(piece)
    marks = set(game.selected_targets)
    if game.selected_origin is not None:
        r, c = to_grid(game.selected_origin, cols)
        grid[r][c] = f"[{grid[r][c]}]"
    for idx in marks:
        r, c = to_grid(idx, cols)
        grid[r][c] = f"*{grid[r][c]}"

    header = "     " + " ".join(f"{c:>3}" for c in range(cols))
    lines = [header]
    for r in range(ROWS):
        lines.append(f"  {r}  " + " ".join(f"{cell:>3}" for cell in grid[r]))
    return "\n".join(lines)


def fmt_move(result: MoveResult, cols: int) -> str:
    text = f"{fmt_cell(result.origin, cols)} -> {fmt_cell(result.destination, cols)}"
    if result.captured is not None:
        text += f" (captures {result.captured.owner})"
    if result.extra_roll:
        text += ", rolls again"
    return text


def print_play_help() -> None:
    print("Commands:")
    print("  roll | r                  - throw the sticks")
    print("  moves | m                 - list legal moves for the current throw")
    print("  <cell>                    - select a cell by index")
    print("  <row> <col>               - select a cell by grid position")
    print("  pass | p                  - skip a turn that has no legal move")
    print("  board | b                 - display board")
    print("  resign                    - give up the game")
    print("  quit                      - exit")


def parse_cell(parts: List[str], cols: int) -> Optional[int]:
    try:
        if len(parts) == 1:
            return int(parts[0])
        if len(parts) == 2:
            return to_index(int(parts[0]), int(parts[1]), cols)
    except ValueError as exc:
        print(f"Invalid cell: {exc}")
        return None
    print("Invalid input. Type: help")
    return None


def status_line(game: TurnStateMachine) -> str:
    counts = game.piece_counts()
    roll = f" | roll={game.current_roll.value}" if game.current_roll is not None else ""
    return (
        f"To play: {game.active_player} ({game.phase}){roll} | "
        f"Gold {counts[GOLD]} - Black {counts[BLACK]} | move {game.move_count}"
    )


def human_action(game: TurnStateMachine) -> None:
    """Read and apply one human command."""
    raw = input(f"{game.active_player.lower()}> ").strip()
    if not raw:
        return
    low = raw.lower()

    if low in {"help", "?"}:
        print_play_help()
        return
    if low in {"quit", "exit"}:
        raise SystemExit(0)
    if low in {"board", "b", "show"}:
        print(render_grid(game))
        return
    if low in {"moves", "m"}:
        moves = game.legal_moves()
        if not moves:
            print("No legal moves.")
        for origin, dest in moves:
            print(f"  {fmt_cell(origin, game.cols)} -> {fmt_cell(dest, game.cols)}")
        return

    try:
        if low in {"roll", "r"}:
            roll = game.roll_sticks()
            extra = " (extra roll)" if roll.grants_extra_roll else ""
            print(f"{game.active_player} threw {roll.value}{extra}")
            if game.phase == FORCED_PASS:
                print("No available moves. You must skip turn.")
            elif game.phase == AWAITING_ROLL:
                print("No move with that throw, roll again.")
            return
        if low in {"pass", "p"}:
            game.pass_turn()
            print(f"Turn passes to {game.active_player}.")
            return
        if low == "resign":
            winner = game.forfeit()
            print(f"{winner} wins by resignation.")
            return

        cell = parse_cell(raw.split(), game.cols)
        if cell is None:
            return
        if game.phase == SELECT_ORIGIN:
            dests = game.select_origin(cell)
            print("Targets: " + ", ".join(fmt_cell(d, game.cols) for d in sorted(dests)))
        elif game.phase == SELECT_DESTINATION:
            result = game.select_destination(cell)
            if result is None:
                print("Selection cancelled.")
            else:
                print(f"Moved {fmt_move(result, game.cols)}")
        elif game.phase == FORCED_PASS:
            print("No available moves. You must skip turn.")
        else:
            print("Roll the sticks first!")
    except IllegalActionError as exc:
        print(exc.message)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Play Tâb in the terminal.")
    parser.add_argument(
        "--cols",
        type=int,
        default=DEFAULT_COLS,
        help=f"Board width, {MIN_COLS}..{MAX_COLS} (default: {DEFAULT_COLS}).",
    )
    parser.add_argument(
        "--first",
        choices=sorted(PLAYER_BY_NAME),
        default="gold",
        help="Side to move first (default: gold).",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default="pvc",
        help="pvp: two players on this terminal; pvc: against the computer (default).",
    )
    parser.add_argument(
        "--ai-level",
        choices=AI_LEVELS,
        default="medium",
        help="Computer strength (default: medium).",
    )
    parser.add_argument(
        "--ai-side",
        choices=sorted(PLAYER_BY_NAME),
        default="black",
        help="Side the computer plays (default: black).",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="RNG seed for sticks and computer choices.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show engine debug logging.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "WARNING")

    try:
        config = MatchConfig(
            cols=args.cols,
            first_player=PLAYER_BY_NAME[args.first],
            mode=args.mode,
            ai_level=args.ai_level,
            ai_player=PLAYER_BY_NAME[args.ai_side],
            seed=args.seed,
        )
    except ValueError as exc:
        print(f"Invalid settings: {exc}", file=sys.stderr)
        return 2

    rng = random.Random(config.seed)
    game = TurnStateMachine(cols=config.cols, first_player=config.first_player, rng=rng)
    ai = AIPlayer(config.ai_player, config.ai_level, rng) if config.mode == "pvc" else None

    print(config.describe())
    print_play_help()

    while not game.done:
        print()
        print(render_grid(game))
        print(status_line(game))

        if ai is not None and game.active_player == ai.player:
            for result in ai.play_turn(game):
                print(f"Computer: {fmt_move(result, game.cols)}")
            if not game.done:
                print(f"Computer's turn is over. {game.active_player} to play.")
            continue

        human_action(game)

    print()
    print(render_grid(game))
    print(f"Result: {game.winner} WINS")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
