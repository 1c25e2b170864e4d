from __future__ import annotations

import asyncio
import itertools
import random
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from tab import errors
from tab.board import BLACK, GOLD, validate_cols
from tab.errors import IllegalActionError
from tab.game import FORCED_PASS, SELECT_DESTINATION, SELECT_ORIGIN, TurnStateMachine
from tab.protocol import UpdateMessage

from .serializer import diff_payload, match_snapshot, roll_to_wire

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SESSION_TTL      = 2 * 60 * 60   # 2 hours of inactivity
CLEANUP_INTERVAL = 10 * 60       # run cleanup every 10 minutes
DEFAULT_GROUP    = 99

SESSION_NOT_FOUND  = "SESSION_NOT_FOUND"
INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
NOT_A_PLAYER       = "NOT_A_PLAYER"
WAITING_FOR_OPPONENT = "WAITING_FOR_OPPONENT"

Listener = Callable[[Dict[str, Any]], None]


# ---------------------------------------------------------------------------
# Match dataclass
# ---------------------------------------------------------------------------

@dataclass
class Seat:
    identity: str
    credential: str = field(repr=False)


@dataclass
class Match:
    """One pairing on the server: two seats, the engine, and its update feed.

    The first seat is the initial player: Gold, home row 0, moves first.
    """

    session_id: str
    group: int
    cols: int
    seats: List[Seat]
    game: Optional[TurnStateMachine] = None
    finished: bool = False
    winner: Optional[str] = None            # identity, None = no winner
    last_touched_cell: Optional[int] = None
    sent: Dict[str, Any] = field(default_factory=dict)
    backlog: List[Dict[str, Any]] = field(default_factory=list)
    listeners: Dict[int, Listener] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    created_at: float       = field(default_factory=time.time)
    last_accessed: float    = field(default_factory=time.time)

    @property
    def started(self) -> bool:
        return self.game is not None

    def identity_of(self, color: str) -> Optional[str]:
        index = 0 if color == GOLD else 1
        return self.seats[index].identity if index < len(self.seats) else None

    def color_of(self, identity: str) -> Optional[str]:
        for index, seat in enumerate(self.seats):
            if seat.identity == identity:
                return GOLD if index == 0 else BLACK
        return None

    def color_map(self) -> Dict[str, str]:
        return {seat.identity: self.color_of(seat.identity) for seat in self.seats}

    def seat_of(self, identity: str) -> Optional[Seat]:
        return next((s for s in self.seats if s.identity == identity), None)


# ---------------------------------------------------------------------------
# SessionManager
# ---------------------------------------------------------------------------

class SessionManager:
    """In-memory authority: pairs players, runs their games, publishes updates."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._sessions: dict[str, Match] = {}
        self._lock = threading.Lock()
        self._rng = rng if rng is not None else random.Random()
        self._tokens = itertools.count(1)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> Optional[Match]:
        match = self._sessions.get(session_id)
        if match is not None:
            match.last_accessed = time.time()
        return match

    def require(self, session_id: str) -> Match:
        match = self.get(session_id)
        if match is None:
            raise IllegalActionError(SESSION_NOT_FOUND, f"Session '{session_id}' not found.")
        return match

    def active_count(self) -> int:
        return len(self._sessions)

    def _authorize(self, match: Match, identity: str, credential: str) -> str:
        seat = match.seat_of(identity)
        if seat is None:
            raise IllegalActionError(NOT_A_PLAYER, f"{identity} is not playing in this game.")
        if seat.credential != credential:
            raise IllegalActionError(INVALID_CREDENTIAL, "Credential does not match this player.")
        return match.color_of(identity)

    # ------------------------------------------------------------------
    # Pairing
    # ------------------------------------------------------------------

    def join(self, group: int, identity: str, credential: str, cols: int) -> Match:
        validate_cols(cols)
        with self._lock:
            for match in self._sessions.values():
                if match.finished or match.group != group or match.cols != cols:
                    continue
                seat = match.seat_of(identity)
                if seat is not None:
                    if seat.credential != credential:
                        raise IllegalActionError(INVALID_CREDENTIAL, "Credential does not match this player.")
                    return match
                if not match.started:
                    match.seats.append(Seat(identity, credential))
                    self._start(match)
                    return match

            match = Match(
                session_id=uuid.uuid4().hex,
                group=group,
                cols=cols,
                seats=[Seat(identity, credential)],
            )
            self._sessions[match.session_id] = match
            logger.info("{} waiting in group {} ({} cols), session {}", identity, group, cols, match.session_id)
            with match.lock:
                self._publish(match)
            return match

    def _start(self, match: Match) -> None:
        with match.lock:
            match.game = TurnStateMachine(
                cols=match.cols,
                first_player=GOLD,
                rng=random.Random(self._rng.getrandbits(64)),
            )
            logger.info(
                "session {} started: {} (Gold) vs {} (Black)",
                match.session_id, match.seats[0].identity, match.seats[1].identity,
            )
            self._publish(match)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _require_turn(self, match: Match, color: str) -> TurnStateMachine:
        game = match.game
        if match.finished or (game is not None and game.done):
            raise IllegalActionError(errors.GAME_ALREADY_OVER, "The game has already ended.")
        if game is None:
            raise IllegalActionError(WAITING_FOR_OPPONENT, "Waiting for an opponent to join.")
        if game.active_player != color:
            raise IllegalActionError(errors.NOT_YOUR_TURN, "Not your turn to play.")
        return game

    def roll(self, session_id: str, identity: str, credential: str) -> None:
        match = self.require(session_id)
        with match.lock:
            color = self._authorize(match, identity, credential)
            game = self._require_turn(match, color)
            roll = game.roll_sticks()
            if game.current_roll is None:
                # Thrown roll was discarded (no move, extra roll): show it once.
                self._publish(match, {"roll": roll_to_wire(roll)})
            self._publish(match)

    def notify(self, session_id: str, identity: str, credential: str, cell: int) -> None:
        match = self.require(session_id)
        with match.lock:
            color = self._authorize(match, identity, credential)
            game = self._require_turn(match, color)
            if game.phase == SELECT_ORIGIN:
                game.select_origin(cell)
            elif game.phase == SELECT_DESTINATION:
                game.select_destination(cell)
            elif game.phase == FORCED_PASS:
                raise IllegalActionError(errors.WRONG_PHASE, "No available moves. You must skip turn.")
            else:
                raise IllegalActionError(errors.WRONG_PHASE, "Roll the sticks first!")
            match.last_touched_cell = cell
            self._finish_if_over(match)
            self._publish(match)

    def pass_turn(self, session_id: str, identity: str, credential: str) -> None:
        match = self.require(session_id)
        with match.lock:
            color = self._authorize(match, identity, credential)
            game = self._require_turn(match, color)
            game.pass_turn()
            match.last_touched_cell = None
            self._publish(match)

    def leave(self, session_id: str, identity: str, credential: str) -> None:
        match = self.require(session_id)
        with match.lock:
            color = self._authorize(match, identity, credential)
            if match.finished:
                return
            if match.game is not None and not match.game.done:
                match.game.forfeit(color)
                logger.info("{} left session {}, forfeiting", identity, session_id)
            self._finish_if_over(match)
            if not match.finished:
                match.finished = True
                match.winner = None
                logger.info("{} left session {} before it ended", identity, session_id)
            self._publish(match)

    def _finish_if_over(self, match: Match) -> None:
        if match.game is not None and match.game.done and not match.finished:
            match.finished = True
            match.winner = match.identity_of(match.game.winner)

    # ------------------------------------------------------------------
    # Update feed
    # ------------------------------------------------------------------

    def subscribe(self, session_id: str, listener: Listener) -> int:
        """Register *listener*; it first receives the backlog, in order."""
        match = self.require(session_id)
        with match.lock:
            token = next(self._tokens)
            for message in match.backlog:
                listener(dict(message))
            match.listeners[token] = listener
            return token

    def unsubscribe(self, session_id: str, token: int) -> None:
        match = self._sessions.get(session_id)
        if match is not None:
            with match.lock:
                match.listeners.pop(token, None)

    def _publish(self, match: Match, forced: Optional[Dict[str, Any]] = None) -> None:
        """Send what changed since the last message (or *forced* fields as-is)."""
        if forced is not None:
            message = dict(forced)
        else:
            message = diff_payload(match.sent, match_snapshot(match))
            if not message:
                return

        # Never emit something a client would reject as malformed.
        message = UpdateMessage.model_validate(message).to_wire()
        match.sent.update(message)
        match.backlog.append(message)

        for token, listener in list(match.listeners.items()):
            try:
                listener(dict(message))
            except Exception as exc:
                logger.warning("dropping listener {} of {}: {}", token, match.session_id, exc)
                match.listeners.pop(token, None)

    # ------------------------------------------------------------------
    # TTL cleanup
    # ------------------------------------------------------------------

    def cleanup_stale(self) -> int:
        cutoff = time.time() - SESSION_TTL
        with self._lock:
            stale = [sid for sid, m in self._sessions.items() if m.last_accessed < cutoff]
            for sid in stale:
                del self._sessions[sid]
        return len(stale)

    async def cleanup_loop(self) -> None:
        """Background coroutine: purge stale sessions every CLEANUP_INTERVAL seconds."""
        while True:
            await asyncio.sleep(CLEANUP_INTERVAL)
            removed = self.cleanup_stale()
            if removed:
                logger.info("[SessionManager] Removed {} stale session(s).", removed)


# ---------------------------------------------------------------------------
# Module-level singleton (imported by routes)
# ---------------------------------------------------------------------------

session_manager = SessionManager()
