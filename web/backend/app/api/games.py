from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse

from tab import errors
from tab.errors import IllegalActionError

from ..schemas.game import CommandRequest, JoinRequest, JoinResponse, NotifyRequest
from ..services.serializer import match_snapshot
from ..services.session import (
    INVALID_CREDENTIAL,
    NOT_A_PLAYER,
    SESSION_NOT_FOUND,
    session_manager,
)

router = APIRouter()

_STATUS_BY_CODE = {
    SESSION_NOT_FOUND: 404,
    NOT_A_PLAYER: 403,
    INVALID_CREDENTIAL: 401,
    errors.GAME_ALREADY_OVER: 409,
    errors.NOT_YOUR_TURN: 409,
    errors.WRONG_PHASE: 409,
    errors.MOVES_AVAILABLE: 409,
}


# ---------------------------------------------------------------------------
# Error helpers (returns the exact contract: {error_code, message, details})
# ---------------------------------------------------------------------------

def _err(status: int, error_code: str, message: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={
            "error_code": error_code,
            "message": message,
            "details": details or {},
        },
    )


def _refused(exc: IllegalActionError) -> JSONResponse:
    return _err(_STATUS_BY_CODE.get(exc.code, 422), exc.code, exc.message, exc.details)


# ---------------------------------------------------------------------------
# POST /api/join: pair up with a waiting player or start waiting
# ---------------------------------------------------------------------------

@router.post("/join", response_model=JoinResponse)
def join(req: JoinRequest):
    try:
        match = session_manager.join(req.group, req.nick, req.password, req.size)
    except IllegalActionError as exc:
        return _refused(exc)
    return JoinResponse(session=match.session_id)


# ---------------------------------------------------------------------------
# POST /api/roll | /api/notify | /api/pass | /api/leave: player commands
# ---------------------------------------------------------------------------

@router.post("/roll")
def roll(req: CommandRequest):
    try:
        session_manager.roll(req.session, req.nick, req.password)
    except IllegalActionError as exc:
        return _refused(exc)
    return {}


@router.post("/notify")
def notify(req: NotifyRequest):
    try:
        session_manager.notify(req.session, req.nick, req.password, req.cell)
    except IllegalActionError as exc:
        return _refused(exc)
    return {}


@router.post("/pass")
def pass_turn(req: CommandRequest):
    try:
        session_manager.pass_turn(req.session, req.nick, req.password)
    except IllegalActionError as exc:
        return _refused(exc)
    return {}


@router.post("/leave")
def leave(req: CommandRequest):
    try:
        session_manager.leave(req.session, req.nick, req.password)
    except IllegalActionError as exc:
        return _refused(exc)
    return {}


# ---------------------------------------------------------------------------
# GET /api/state: full current snapshot (debugging / late joiners)
# ---------------------------------------------------------------------------

@router.get("/state")
def state(session: str):
    match = session_manager.get(session)
    if match is None:
        return _err(404, SESSION_NOT_FOUND, f"Session '{session}' not found.")
    with match.lock:
        return match_snapshot(match)


# ---------------------------------------------------------------------------
# GET /api/update: server-sent events, backlog first, ends with the winner
# ---------------------------------------------------------------------------

@router.get("/update")
async def update(session: str, nick: str):
    match = session_manager.get(session)
    if match is None:
        return _err(404, SESSION_NOT_FOUND, f"Session '{session}' not found.")
    if match.seat_of(nick) is None:
        return _err(403, NOT_A_PLAYER, f"{nick} is not playing in this game.")

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[dict] = asyncio.Queue()

    def listener(message: dict) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, message)

    token = session_manager.subscribe(session, listener)

    async def events():
        try:
            while True:
                message = await queue.get()
                yield f"data: {json.dumps(message)}\n\n"
                if "winner" in message:
                    break
        finally:
            session_manager.unsubscribe(session, token)

    return StreamingResponse(events(), media_type="text/event-stream")
