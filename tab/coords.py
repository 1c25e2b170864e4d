"""
Conversion between canonical cell indices and the 2D grid shown to a player.

Grid row 0 is the visual top, row 3 the bottom, column 0 the left edge.
Index 0 sits on the bottom row; the column direction alternates with the
row so that the index order snakes across the grid.  ``rotated`` turns the
whole grid by 180 degrees for the player who did not start.
"""

from __future__ import annotations

from typing import Tuple

from tab.board import ROWS, num_cells


def _rotate(row: int, col: int, cols: int) -> Tuple[int, int]:
    return ROWS - 1 - row, cols - 1 - col


def to_grid(idx: int, cols: int, rotated: bool = False) -> Tuple[int, int]:
    """Return the (row, col) grid position of cell *idx*."""
    if not 0 <= idx < num_cells(cols):
        raise ValueError(f"Cell {idx} is out of range for {cols} columns.")
    row_from_bottom, offset = divmod(idx, cols)
    row = ROWS - 1 - row_from_bottom
    col = offset if row_from_bottom % 2 == 0 else cols - 1 - offset
    if rotated:
        row, col = _rotate(row, col, cols)
    return row, col


def to_index(row: int, col: int, cols: int, rotated: bool = False) -> int:
    """Return the cell index shown at grid position (*row*, *col*)."""
    if not (0 <= row < ROWS and 0 <= col < cols):
        raise ValueError(f"Grid position ({row}, {col}) is off a 4x{cols} board.")
    if rotated:
        row, col = _rotate(row, col, cols)
    row_from_bottom = ROWS - 1 - row
    offset = col if row_from_bottom % 2 == 0 else cols - 1 - col
    return row_from_bottom * cols + offset
