"""In-process RemoteGameService backed directly by a SessionManager."""
from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from loguru import logger

from tab.errors import IllegalActionError, RemoteServiceError

from .session import SessionManager, session_manager


class _Subscription:
    def __init__(self, manager: SessionManager, session_id: str, token: int) -> None:
        self._manager = manager
        self._session_id = session_id
        self._token: Optional[int] = token

    def close(self) -> None:
        if self._token is not None:
            self._manager.unsubscribe(self._session_id, self._token)
            self._token = None


class InProcessGameService:
    """Speaks the RemoteGameService contract without a network in between.

    Refusals from the authority surface as :class:`RemoteServiceError`,
    exactly as a transport adapter would report an error response.
    """

    def __init__(self, manager: Optional[SessionManager] = None) -> None:
        self.manager = manager if manager is not None else session_manager

    def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except IllegalActionError as exc:
            raise RemoteServiceError(exc.message, exc.code) from exc

    def join(self, group_id: int, identity: str, credential: str, cols: int) -> str:
        try:
            match = self._call(self.manager.join, group_id, identity, credential, cols)
        except ValueError as exc:  # unsupported board size
            raise RemoteServiceError(str(exc), "INVALID_SIZE") from exc
        return match.session_id

    def roll(self, identity: str, credential: str, session: str) -> None:
        self._call(self.manager.roll, session, identity, credential)

    def select_cell(self, identity: str, credential: str, session: str, cell: int) -> None:
        self._call(self.manager.notify, session, identity, credential, cell)

    def pass_turn(self, identity: str, credential: str, session: str) -> None:
        self._call(self.manager.pass_turn, session, identity, credential)

    def leave(self, identity: str, credential: str, session: str) -> None:
        self._call(self.manager.leave, session, identity, credential)

    def subscribe(
        self,
        session: str,
        identity: str,
        on_message: Callable[[Mapping[str, Any]], None],
        on_error: Callable[[Exception], None],
    ) -> _Subscription:
        def listener(message: Mapping[str, Any]) -> None:
            try:
                on_message(message)
            except Exception as exc:
                logger.warning("update delivery to {} failed: {}", identity, exc)
                on_error(exc)
                raise

        token = self._call(self.manager.subscribe, session, listener)
        return _Subscription(self.manager, session, token)
