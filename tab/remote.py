"""
Client-side controller for online Tâb.

The remote authority decides every rule.  This module only keeps a mirror
of what the authority has pushed, answers read-only questions about it for
the presentation layer, and forwards commands.  Nothing here changes an
authoritative field except a received update.

Updates may arrive from any thread.  They are queued and applied one at a
time, in arrival order, by whichever caller is currently draining the
queue; a delivery made while another drain is running only enqueues.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Protocol, Tuple, Union

from loguru import logger
from pydantic import ValidationError

from tab import errors
from tab.board import BLACK, DEFAULT_COLS, FINAL, GOLD, INITIAL, MOVED, Board, Piece, num_cells
from tab.coords import to_grid, to_index
from tab.errors import IllegalActionError, RemoteServiceError
from tab.moves import can_move, legal_destinations
from tab.protocol import DESTINATION_STEPS, RemotePiece, RollPayload, UpdateMessage

COMMAND_KINDS: Tuple[str, ...] = ("roll", "selectCell", "pass", "leave")


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------

class UpdateSubscription(Protocol):
    def close(self) -> None: ...


class RemoteGameService(Protocol):
    """Request/response commands and the push stream of the remote authority.

    Every command raises :class:`RemoteServiceError` when refused.
    """

    def join(self, group_id: int, identity: str, credential: str, cols: int) -> str: ...

    def roll(self, identity: str, credential: str, session: str) -> None: ...

    def select_cell(self, identity: str, credential: str, session: str, cell: int) -> None: ...

    def pass_turn(self, identity: str, credential: str, session: str) -> None: ...

    def leave(self, identity: str, credential: str, session: str) -> None: ...

    def subscribe(
        self,
        session: str,
        identity: str,
        on_message: Callable[[Mapping[str, Any]], None],
        on_error: Callable[[Exception], None],
    ) -> UpdateSubscription: ...


class Notifier(Protocol):
    def notify(self, message: str) -> None: ...


class LogNotifier:
    """Default notifier: writes user-facing messages to the log."""

    def notify(self, message: str) -> None:
        logger.info("[online] {}", message)


# ---------------------------------------------------------------------------
# Mirror
# ---------------------------------------------------------------------------

@dataclass
class RemoteMirror:
    session: Optional[str] = None
    initial_player: Optional[str] = None
    active_player: Optional[str] = None
    step: Optional[str] = None
    roll: Optional[RollPayload] = None
    forced_pass_target: Optional[str] = None
    pieces: List[Optional[RemotePiece]] = field(default_factory=list)
    selectable_cells: List[int] = field(default_factory=list)
    last_touched_cell: Optional[int] = None
    player_color_map: Dict[str, str] = field(default_factory=dict)
    winner: Optional[str] = None
    ended: bool = False


# Fields copied verbatim from a message when present.
_PATCH_FIELDS: Tuple[str, ...] = (
    "initial_player",
    "active_player",
    "step",
    "roll",
    "forced_pass_target",
    "last_touched_cell",
    "winner",
)


@dataclass(frozen=True)
class CommandOutcome:
    """Result of :meth:`RemoteSyncController.submit_command`.

    ``accepted`` only means the authority acknowledged the command; its
    effect, if any, arrives later as an update.
    """

    accepted: bool
    code: Optional[str] = None
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.accepted


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class RemoteSyncController:
    def __init__(
        self,
        service: RemoteGameService,
        identity: str,
        credential: str,
        cols: int = DEFAULT_COLS,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.service = service
        self.identity = identity
        self.credential = credential
        self.cols = cols
        self.notifier: Notifier = notifier if notifier is not None else LogNotifier()
        self.mirror = RemoteMirror()
        self.closed = False

        self._subscription: Optional[UpdateSubscription] = None
        self._mirror_lock = threading.RLock()
        self._queue_lock = threading.Lock()
        # (origin session, message) pairs; origin None means "current session".
        self._pending: Deque[Tuple[Optional[str], Any]] = deque()
        self._draining = False

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def join(self, group_id: int) -> str:
        """Join a game on the remote service and start listening to it."""
        if self.mirror.session is not None and not self.closed:
            self.leave()

        try:
            session = self.service.join(group_id, self.identity, self.credential, self.cols)
        except RemoteServiceError as exc:
            self.notifier.notify(f"Online: could not join ({exc.message})")
            raise

        with self._mirror_lock:
            self.mirror = RemoteMirror(session=session)
            self.closed = False
        with self._queue_lock:
            self._pending.clear()

        logger.info("{} joined session {} (group {}, {} cols)", self.identity, session, group_id, self.cols)
        self.notifier.notify(f"Online: joined game {session}. Waiting for opponent / updates...")
        self._subscription = self.service.subscribe(
            session, self.identity, lambda message, origin=session: self.deliver(message, origin),
            self.on_transport_error,
        )
        return session

    def leave(self) -> None:
        """Abandon the session: stop listening first, then tell the service."""
        session = self.mirror.session
        if session is None:
            return

        self._shutdown("left")
        try:
            self.service.leave(self.identity, self.credential, session)
        except RemoteServiceError as exc:
            logger.warning("leave for {} refused: {}", session, exc.message)
            self.notifier.notify(exc.message)

    def _shutdown(self, reason: str) -> None:
        with self._mirror_lock:
            self.closed = True
        with self._queue_lock:
            self._pending.clear()
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.close()
            logger.debug("update stream for {} closed ({})", self.mirror.session, reason)

    def on_transport_error(self, exc: Exception) -> None:
        logger.warning("update stream error for {}: {}", self.mirror.session, exc)
        self.notifier.notify("Online: connection error (update stream).")

    # ------------------------------------------------------------------
    # Update intake
    # ------------------------------------------------------------------

    def deliver(
        self,
        message: Union[Mapping[str, Any], UpdateMessage],
        origin: Optional[str] = None,
    ) -> None:
        """Queue *message* and drain the queue unless a drain is already running.

        *origin* is the session whose stream produced the message; the
        subscription made by :meth:`join` always passes it.
        """
        with self._queue_lock:
            self._pending.append((origin, message))
            if self._draining:
                return
            self._draining = True

        while True:
            with self._queue_lock:
                if not self._pending:
                    self._draining = False
                    return
                origin, message = self._pending.popleft()
            try:
                self.apply_update(message, origin)
            except Exception:
                with self._queue_lock:
                    self._draining = False
                raise

    def apply_update(
        self,
        message: Union[Mapping[str, Any], UpdateMessage],
        origin: Optional[str] = None,
    ) -> bool:
        """Patch the mirror with the fields *message* carries.

        Returns False when the message was ignored (closed controller,
        malformed payload, error notice, or another session's update).
        """
        with self._mirror_lock:
            if self.closed or self.mirror.session is None:
                logger.debug("discarding update, no live session")
                return False
            if origin is not None and origin != self.mirror.session:
                logger.debug("discarding late update from abandoned session {}", origin)
                return False

            try:
                msg = message if isinstance(message, UpdateMessage) else UpdateMessage.model_validate(message)
            except ValidationError as exc:
                logger.warning("ignoring malformed update: {}", exc.errors())
                return False

            fields = msg.present()
            if "error" in fields:
                self.notifier.notify(f"Server: {msg.error}")
                return False
            if "session" in fields and msg.session != self.mirror.session:
                logger.warning("ignoring update for session {} (current {})", msg.session, self.mirror.session)
                return False

            m = self.mirror
            prev_active = m.active_player

            for name in _PATCH_FIELDS:
                if name in fields:
                    setattr(m, name, getattr(msg, name))
            if "pieces" in fields:
                m.pieces = list(msg.pieces or [])
            if "selectable_cells" in fields:
                m.selectable_cells = list(msg.selectable_cells or [])
            if "player_color_map" in fields:
                m.player_color_map = dict(msg.player_color_map or {})

            if "active_player" in fields and prev_active is not None and m.active_player != prev_active:
                # New turn: highlights of the previous player are stale.
                if "selectable_cells" not in fields:
                    m.selectable_cells = []
                if "last_touched_cell" not in fields:
                    m.last_touched_cell = None

            logger.debug("applied update fields {}", sorted(fields))

            ended = "winner" in fields
            if ended:
                m.ended = True
                self.closed = True

        if ended:
            if self.mirror.winner is not None:
                self.notifier.notify(f"Game ended. Winner: {self.mirror.winner}")
            else:
                self.notifier.notify("Game ended.")
            self._shutdown("game over")
        return True

    # ------------------------------------------------------------------
    # Derived queries
    # ------------------------------------------------------------------

    @property
    def view_rotated(self) -> bool:
        """The non-initial player sees the board turned around."""
        initial = self.mirror.initial_player
        return initial is not None and initial != self.identity

    @property
    def selected_origin(self) -> Optional[int]:
        if self.mirror.step in DESTINATION_STEPS:
            return self.mirror.last_touched_cell
        return None

    def is_my_turn(self) -> bool:
        return not self.mirror.ended and self.mirror.active_player == self.identity

    def can_roll_now(self) -> bool:
        return (
            not self.closed
            and self.is_my_turn()
            and self.mirror.roll is None
            and self.mirror.step not in DESTINATION_STEPS
        )

    def can_pass_now(self) -> bool:
        return not self.closed and self.mirror.forced_pass_target == self.identity

    def legal_looking_targets(self) -> List[Tuple[int, int]]:
        """Grid positions of the cells the authority marked selectable."""
        rotated = self.view_rotated
        return [
            to_grid(cell, self.cols, rotated)
            for cell in self.mirror.selectable_cells
            if 0 <= cell < num_cells(self.cols)
        ]

    def cell_at(self, row: int, col: int) -> int:
        """Cell index under a click on grid position (*row*, *col*)."""
        return to_index(row, col, self.cols, self.view_rotated)

    def local_color(self, identity: Optional[str] = None) -> Optional[str]:
        """Gold for the initial player, Black for the other one."""
        identity = identity if identity is not None else self.identity
        initial = self.mirror.initial_player
        if initial is None or identity is None:
            return None
        return GOLD if identity == initial else BLACK

    def board_view(self) -> Optional[Board]:
        """The mirrored pieces as a local board, or None if incomplete."""
        pieces = self.mirror.pieces
        if self.mirror.initial_player is None or len(pieces) != num_cells(self.cols):
            return None
        board: Board = []
        for remote in pieces:
            if remote is None:
                board.append(None)
                continue
            if remote.reached_final_row:
                state = FINAL
            elif remote.in_motion:
                state = MOVED
            else:
                state = INITIAL
            board.append(Piece(self.local_color(remote.owner), state))
        return board

    def advise_selection(self, cell: int) -> Optional[str]:
        """A friendly reason why clicking *cell* will probably be refused.

        Advisory only: a None answer does not mean the authority will
        accept the click, and a message does not stop the command.
        """
        m = self.mirror
        if not self.is_my_turn():
            return "Not your turn."
        if m.step in DESTINATION_STEPS:
            if cell != m.last_touched_cell and cell not in m.selectable_cells:
                return "Choose one of the valid squares."
            return None
        if m.roll is None:
            return "Roll the sticks first!"

        board = self.board_view()
        if board is None or not 0 <= cell < len(board):
            return None
        piece = board[cell]
        me = self.local_color()
        if piece is None:
            return "That cell is empty."
        if piece.owner != me:
            return "That piece is not yours."
        if not can_move(piece, m.roll.value):
            return f"Cannot move initial pieces with roll = {m.roll.value}."
        if not legal_destinations(board, me, cell, m.roll.value, self.cols):
            return f"No valid moves with {m.roll.value}."
        return None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _reject(self, code: str, message: str) -> CommandOutcome:
        logger.warning("command refused locally ({}): {}", code, message)
        self.notifier.notify(message)
        return CommandOutcome(False, code, message)

    def submit_command(self, kind: str, payload: Optional[Mapping[str, Any]] = None) -> CommandOutcome:
        """Forward a command to the remote service.

        ``selectCell`` takes ``{"cell": idx}`` or a grid click
        ``{"row": r, "col": c}``.  No mirror field changes here.
        """
        if kind not in COMMAND_KINDS:
            raise IllegalActionError(errors.UNKNOWN_COMMAND, f"Unknown command {kind!r}.")
        if kind == "leave":
            self.leave()
            return CommandOutcome(True)

        session = self.mirror.session
        if session is None:
            return self._reject(errors.NO_SESSION, "Not in an online game.")
        if self.closed:
            return self._reject(errors.SESSION_CLOSED, "The game has already ended.")
        if not self.is_my_turn():
            return self._reject(errors.NOT_YOUR_TURN, "Wait for opponents play")

        hint: Optional[str] = None
        extra: Tuple[int, ...] = ()
        if kind == "roll":
            if self.mirror.step in DESTINATION_STEPS:
                return self._reject(errors.WRONG_PHASE, "Choose where the selected piece goes first.")
            command = self.service.roll
        elif kind == "pass":
            if not self.can_pass_now():
                return self._reject(errors.NO_FORCED_PASS, "You can only pass when no move is possible.")
            command = self.service.pass_turn
        else:
            cell = self._cell_from_payload(payload or {})
            if cell is None:
                return self._reject(errors.CELL_OUT_OF_RANGE, "Pick a cell on the board.")
            hint = self.advise_selection(cell)
            if self.mirror.step in DESTINATION_STEPS and hint is not None:
                return self._reject(errors.NOT_A_TARGET, hint)
            command = self.service.select_cell
            extra = (cell,)

        try:
            command(self.identity, self.credential, session, *extra)
        except RemoteServiceError as exc:
            message = hint or exc.message
            logger.warning("{} refused by remote: {}", kind, exc.message)
            self.notifier.notify(f"Invalid move: {message}" if kind == "selectCell" else message)
            return CommandOutcome(False, exc.code or "REMOTE_REJECTED", exc.message)
        return CommandOutcome(True)

    def _cell_from_payload(self, payload: Mapping[str, Any]) -> Optional[int]:
        try:
            if "cell" in payload:
                cell = int(payload["cell"])
            else:
                cell = self.cell_at(int(payload["row"]), int(payload["col"]))
        except (KeyError, TypeError, ValueError):
            return None
        if not 0 <= cell < num_cells(self.cols):
            return None
        return cell
