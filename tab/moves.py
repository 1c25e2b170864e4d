"""
Move resolver for Tâb.

Computes the cells a piece can reach with a given stick roll.  Expansion
always happens in the canonical (Gold) frame; Black origins and results
are mirrored on the way in and out, so :func:`advance` never needs to know
whose piece it is moving.

Filters applied by :func:`legal_destinations`, in order:

1. no landing on one of your own pieces;
2. a piece that already reached its terminal row may not re-enter that row
   from outside it (moving within it is fine);
3. no returning to your home row once a piece has left it;
4. the terminal row opens only once your home row holds none of your pieces.

Landing on an opposing piece is a capture; the caller applies it.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, List, Optional

from tab.board import (
    FINAL,
    INITIAL,
    Board,
    Piece,
    home_row,
    is_mirrored,
    mirror_index,
    num_cells,
    row_of,
    successors,
    terminal_row,
)

# Only a throw of 1 releases a piece that has never moved.
RELEASE_ROLL: int = 1


# ---------------------------------------------------------------------------
# Ownership helpers
# ---------------------------------------------------------------------------

def is_player_piece(board: Board, idx: int, player: str) -> bool:
    """Return True if the piece at *idx* belongs to *player*."""
    piece = board[idx]
    return piece is not None and piece.owner == player


def player_cells(board: Board, player: str) -> List[int]:
    """Return a list of cell indices where *player* has pieces."""
    return [idx for idx, piece in enumerate(board) if piece is not None and piece.owner == player]


def count_pieces(board: Board, player: str) -> int:
    return len(player_cells(board, player))


def home_row_occupied(board: Board, player: str, cols: int) -> bool:
    """True while *player* still has a piece on their home row."""
    start = home_row(player) * cols
    return any(is_player_piece(board, idx, player) for idx in range(start, start + cols))


# ---------------------------------------------------------------------------
# Path expansion
# ---------------------------------------------------------------------------

def advance(origin: int, steps: int, cols: int) -> FrozenSet[int]:
    """Return every cell exactly *steps* successor hops from *origin*.

    Branch points widen the frontier; cells reached along several routes
    appear once.
    """
    frontier = {origin}
    for _ in range(steps):
        frontier = {nxt for pos in frontier for nxt in successors(pos, cols)}
    return frozenset(frontier)


def advance_for(player: str, origin: int, steps: int, cols: int) -> FrozenSet[int]:
    """:func:`advance` seen from *player*'s side of the board."""
    if not is_mirrored(player):
        return advance(origin, steps, cols)
    dests = advance(mirror_index(origin, cols), steps, cols)
    return frozenset(mirror_index(d, cols) for d in dests)


# ---------------------------------------------------------------------------
# Legality
# ---------------------------------------------------------------------------

def can_move(piece: Optional[Piece], roll: int) -> bool:
    """Tâb rule: a piece that never moved needs a 1 to leave home."""
    if piece is None or not roll or roll <= 0:
        return False
    return piece.state != INITIAL or roll == RELEASE_ROLL


def legal_destinations(
    board: Board, player: str, origin: int, roll: int, cols: int
) -> FrozenSet[int]:
    """Return the cells *player*'s piece on *origin* may land on with *roll*.

    Returns an empty set when *origin* holds no piece of *player* or the
    piece may not move with this roll.  When the branch produces several
    endpoints they are all returned; choosing is left to the player.
    """
    if not 0 <= origin < num_cells(cols):
        return frozenset()
    piece = board[origin]
    if piece is None or piece.owner != player or not can_move(piece, roll):
        return frozenset()

    start_row = home_row(player)
    final_row = terminal_row(player)
    row_from = row_of(origin, cols)
    home_blocked = home_row_occupied(board, player, cols)

    legal = set()
    for dest in advance_for(player, origin, roll, cols):
        occupant = board[dest]
        row_to = row_of(dest, cols)

        if occupant is not None and occupant.owner == player:
            continue
        if piece.state == FINAL and row_to == final_row and row_from != final_row:
            continue
        if row_to == start_row and row_from != start_row:
            continue
        if row_to == final_row and home_blocked:
            continue

        legal.add(dest)

    return frozenset(legal)


def movable_pieces(
    board: Board, player: str, roll: int, cols: int
) -> Dict[int, FrozenSet[int]]:
    """Map each of *player*'s movable pieces to its legal destinations.

    Pieces with no legal destination are left out, so an empty dict means
    the player has no move with this roll.
    """
    moves: Dict[int, FrozenSet[int]] = {}
    for idx in player_cells(board, player):
        dests = legal_destinations(board, player, idx, roll, cols)
        if dests:
            moves[idx] = dests
    return moves


def is_capture(board: Board, player: str, dest: int) -> bool:
    occupant = board[dest]
    return occupant is not None and occupant.owner != player
