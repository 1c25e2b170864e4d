from __future__ import annotations

from pydantic import BaseModel, Field

from tab.board import DEFAULT_COLS, MAX_COLS, MIN_COLS

from ..services.session import DEFAULT_GROUP


class JoinRequest(BaseModel):
    group: int = DEFAULT_GROUP
    nick: str = Field(min_length=1)
    password: str = Field(min_length=1)
    size: int = Field(DEFAULT_COLS, ge=MIN_COLS, le=MAX_COLS)


class JoinResponse(BaseModel):
    session: str


class CommandRequest(BaseModel):
    nick: str = Field(min_length=1)
    password: str
    session: str


class NotifyRequest(CommandRequest):
    cell: int = Field(ge=0)
