"""Match configuration shared by the terminal front-end and the server."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tab.board import DEFAULT_COLS, GOLD, PLAYERS, validate_cols

MODES = ("pvp", "pvc")
AI_LEVELS = ("easy", "medium", "hard")


@dataclass
class MatchConfig:
    """Everything needed to set up one local match."""

    cols: int = DEFAULT_COLS
    first_player: str = GOLD
    mode: str = "pvp"            # 'pvp' (same computer) | 'pvc' (vs computer)
    ai_level: str = "easy"
    ai_player: str = "Black"     # side the computer plays in 'pvc'
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        validate_cols(self.cols)
        if self.first_player not in PLAYERS:
            raise ValueError(f"first_player must be one of {PLAYERS}, got {self.first_player!r}")
        if self.ai_player not in PLAYERS:
            raise ValueError(f"ai_player must be one of {PLAYERS}, got {self.ai_player!r}")
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of {MODES}, got {self.mode!r}")
        if self.ai_level not in AI_LEVELS:
            raise ValueError(f"ai_level must be one of {AI_LEVELS}, got {self.ai_level!r}")

    def describe(self) -> str:
        if self.mode == "pvc":
            mode_text = f"Player vs Computer ({self.ai_level})"
        else:
            mode_text = "Player vs Player (same computer)"
        return f"New game: {mode_text}, {self.cols} columns, first to play: {self.first_player}."
