"""
Wire models for the online game's update stream.

Every field of :class:`UpdateMessage` is optional.  A field that is absent
means "no change"; a field sent as ``null`` is a real value (no roll, no
forced pass, ended without winner).  :meth:`UpdateMessage.present` tells
the two apart.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator

STEP_SELECT_ORIGIN = "selectOrigin"
STEP_SELECT_DESTINATION = "selectDestination"
STEP_CAPTURE_CHOICE = "captureChoice"

# Steps during which the player is choosing where a selected piece goes.
DESTINATION_STEPS = frozenset({STEP_SELECT_DESTINATION, STEP_CAPTURE_CHOICE})

Step = Literal["selectOrigin", "selectDestination", "captureChoice"]


class RollPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    value: Literal[1, 2, 3, 4, 6]
    grants_extra_roll: bool = Field(alias="grantsExtraRoll")


class RemotePiece(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    owner: str
    in_motion: bool = Field(default=False, alias="inMotion")
    reached_final_row: bool = Field(default=False, alias="reachedFinalRow")


class UpdateMessage(BaseModel):
    """One partial update pushed by the remote authority."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    session: Optional[str] = None
    initial_player: Optional[str] = Field(default=None, alias="initialPlayer")
    active_player: Optional[str] = Field(default=None, alias="activePlayer")
    step: Optional[Step] = None
    roll: Optional[RollPayload] = None
    forced_pass_target: Optional[str] = Field(default=None, alias="forcedPassTarget")
    pieces: Optional[List[Optional[RemotePiece]]] = None
    selectable_cells: Optional[List[int]] = Field(default=None, alias="selectableCells")
    last_touched_cell: Optional[int] = Field(default=None, alias="lastTouchedCell")
    player_color_map: Optional[Dict[str, str]] = Field(default=None, alias="playerColorMap")
    winner: Optional[str] = None
    error: Optional[str] = None

    @field_validator("selectable_cells")
    @classmethod
    def ensure_non_negative_cells(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is not None and any(cell < 0 for cell in value):
            raise ValueError("selectableCells must hold non-negative cell indices")
        return value

    def present(self) -> Set[str]:
        """Names of the fields this message actually carries."""
        return set(self.model_fields_set)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)
