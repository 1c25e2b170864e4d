"""
Tâb board representation and path topology.

Defines the 4 x cols board, the serpentine route pieces follow, the branch
and wrap-around successors, player rows, mirroring, initial setup and a
text display.

All geometry is expressed from the point of view of the player whose home
row is row 0 (Gold).  The opposing player (Black) reuses the same route
through :func:`mirror_index`.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, FrozenSet, List, Optional, Tuple

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ROWS: int = 4
DEFAULT_COLS: int = 9
MIN_COLS: int = 5
MAX_COLS: int = 15

# Players
GOLD: str = "Gold"
BLACK: str = "Black"
PLAYERS: Tuple[str, str] = (GOLD, BLACK)

# Piece movement states
INITIAL: str = "initial"
MOVED: str = "moved"
FINAL: str = "final"

_STATE_ORDER: Dict[str, int] = {INITIAL: 0, MOVED: 1, FINAL: 2}

_HOME_ROW: Dict[str, int] = {GOLD: 0, BLACK: ROWS - 1}
_TERMINAL_ROW: Dict[str, int] = {GOLD: ROWS - 1, BLACK: 0}


# ---------------------------------------------------------------------------
# Pieces
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Piece:
    owner: str
    state: str = INITIAL

    def advanced_to(self, state: str) -> Piece:
        """Return this piece in *state*, never moving backwards."""
        if _STATE_ORDER[state] <= _STATE_ORDER[self.state]:
            return self
        return Piece(self.owner, state)


Board = List[Optional[Piece]]


def opponent(player: str) -> str:
    """Return the other player."""
    return BLACK if player == GOLD else GOLD


def home_row(player: str) -> int:
    return _HOME_ROW[player]


def terminal_row(player: str) -> int:
    return _TERMINAL_ROW[player]


def is_mirrored(player: str) -> bool:
    """True for the player who moves along the mirrored route."""
    return _HOME_ROW[player] != 0


# ---------------------------------------------------------------------------
# Coordinate helpers
# ---------------------------------------------------------------------------

def validate_cols(cols: int) -> int:
    if not isinstance(cols, int) or isinstance(cols, bool):
        raise ValueError(f"cols must be an integer, got {cols!r}")
    if not MIN_COLS <= cols <= MAX_COLS:
        raise ValueError(f"cols must be in [{MIN_COLS}, {MAX_COLS}], got {cols}")
    return cols


def num_cells(cols: int) -> int:
    return ROWS * cols


def idx_to_rc(idx: int, cols: int) -> Tuple[int, int]:
    """Convert a flat cell index to (row, col)."""
    return divmod(idx, cols)


def rc_to_idx(r: int, c: int, cols: int) -> int:
    """Convert (row, col) to a flat cell index."""
    return r * cols + c


def row_of(idx: int, cols: int) -> int:
    return idx // cols


def mirror_index(idx: int, cols: int) -> int:
    """Reflect *idx* into the opposing player's frame (and back)."""
    return ROWS * cols - 1 - idx


# ---------------------------------------------------------------------------
# Path topology  (computed once per board width)
# ---------------------------------------------------------------------------

@lru_cache(maxsize=None)
def canonical_path(cols: int) -> Tuple[int, ...]:
    """
    Return the serpentine route as a tuple of cell indices.

    Even rows are walked from the last column down to column 0, odd rows
    from column 0 upwards, so consecutive path positions are always
    physically adjacent.
    """
    path: List[int] = []
    for r in range(ROWS):
        if r % 2 == 0:
            cols_order = range(cols - 1, -1, -1)
        else:
            cols_order = range(cols)
        path.extend(rc_to_idx(r, c, cols) for c in cols_order)
    return tuple(path)


@lru_cache(maxsize=None)
def _path_positions(cols: int) -> Dict[int, int]:
    return {idx: pos for pos, idx in enumerate(canonical_path(cols))}


def path_position(idx: int, cols: int) -> int:
    """Return how far along the canonical route *idx* lies."""
    return _path_positions(cols)[idx]


@lru_cache(maxsize=None)
def _build_successors(cols: int) -> Tuple[FrozenSet[int], ...]:
    """
    Build the successor table for a board *cols* wide.

    SUCCESSORS[idx] holds the cells one step ahead of *idx*:

    * the next cell on the canonical path;
    * on the step from row 2 into row 3, also the row 1 cell in the same
      column (the exit shortcut);
    * from the very last path cell (end of row 3), only the row 2 cell in
      the same column, so pieces keep circulating.
    """
    path = canonical_path(cols)
    table: List[FrozenSet[int]] = [frozenset()] * len(path)

    for pos, cur in enumerate(path):
        r_cur, c_cur = idx_to_rc(cur, cols)
        if pos + 1 < len(path):
            nxt = path[pos + 1]
            nexts = {nxt}
            if r_cur == 2 and row_of(nxt, cols) == 3:
                nexts.add(rc_to_idx(1, c_cur, cols))
        else:
            nexts = {rc_to_idx(2, c_cur, cols)}
        table[cur] = frozenset(nexts)

    return tuple(table)


def successors(idx: int, cols: int) -> FrozenSet[int]:
    """Return every cell one step ahead of *idx* on the canonical route."""
    return _build_successors(cols)[idx]


# ---------------------------------------------------------------------------
# Initial board setup
# ---------------------------------------------------------------------------

def initial_board(cols: int = DEFAULT_COLS) -> Board:
    """
    Return the starting position: Gold fills row 0, Black fills row 3,
    rows 1 and 2 are empty.  Every piece starts in the ``initial`` state.
    """
    validate_cols(cols)
    board: Board = [None] * num_cells(cols)
    for c in range(cols):
        board[rc_to_idx(home_row(GOLD), c, cols)] = Piece(GOLD)
        board[rc_to_idx(home_row(BLACK), c, cols)] = Piece(BLACK)
    return board


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------

_PIECE_CHAR = {
    (GOLD, INITIAL): "g",
    (GOLD, MOVED): "G",
    (GOLD, FINAL): "@",
    (BLACK, INITIAL): "b",
    (BLACK, MOVED): "B",
    (BLACK, FINAL): "#",
}


def piece_char(piece: Optional[Piece]) -> str:
    if piece is None:
        return "."
    return _PIECE_CHAR[(piece.owner, piece.state)]


def display_board(board: Board, cols: int) -> str:
    """
    Return a human-readable text representation of the board.

    Row 3 is printed at the top, row 0 at the bottom, each row prefixed by
    the index of its column-0 cell.  Lower case marks pieces that never
    moved, upper case moved pieces, ``@``/``#`` pieces that reached their
    terminal row.

    Example (cols=5, initial position)::

        15 | b  b  b  b  b
        10 | .  .  .  .  .
         5 | .  .  .  .  .
         0 | g  g  g  g  g
    """
    lines: List[str] = []
    for r in range(ROWS - 1, -1, -1):
        row_chars = [piece_char(board[rc_to_idx(r, c, cols)]) for c in range(cols)]
        lines.append(f"  {r * cols:2d} | {'  '.join(row_chars)}")
    text = "\n".join(lines)
    print(text)
    return text
