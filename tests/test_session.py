"""
Tests for the game server services: pairing, authorization, the update
feed, cleanup, and a full online match played through two
RemoteSyncControllers over the in-process gateway.
"""

from __future__ import annotations

import random
from unittest.mock import patch

import pytest

from tab import errors
from tab.board import BLACK, GOLD, MOVED, Piece
from tab.errors import IllegalActionError, RemoteServiceError
from tab.remote import RemoteSyncController
from web.backend.app.services.gateway import InProcessGameService
from web.backend.app.services.session import (
    INVALID_CREDENTIAL,
    NOT_A_PLAYER,
    SESSION_NOT_FOUND,
    WAITING_FOR_OPPONENT,
    SessionManager,
)

COLS = 9


def _sticks(value):
    if value == 6:
        return (False,) * 4
    return (True,) * value + (False,) * (4 - value)


def _scripted(*values):
    return patch("tab.game.throw_sticks", side_effect=[_sticks(v) for v in values])


class Notes:
    def __init__(self):
        self.messages = []

    def notify(self, message):
        self.messages.append(message)


@pytest.fixture
def manager():
    return SessionManager(rng=random.Random(0))


@pytest.fixture
def paired(manager):
    match = manager.join(99, "alice", "a", COLS)
    manager.join(99, "bob", "b", COLS)
    return match


# ===================================================================
# Pairing
# ===================================================================

class TestJoin:

    def test_first_player_waits(self, manager):
        match = manager.join(99, "alice", "a", COLS)
        assert not match.started
        assert match.color_of("alice") == GOLD

    def test_second_player_starts_the_game(self, manager, paired):
        assert paired.started
        assert paired.color_map() == {"alice": GOLD, "bob": BLACK}
        assert paired.game.active_player == GOLD
        assert paired.game.cols == COLS

    def test_groups_and_sizes_pair_separately(self, manager):
        a = manager.join(1, "alice", "a", COLS)
        b = manager.join(2, "bob", "b", COLS)
        c = manager.join(1, "carol", "c", 7)
        assert len({a.session_id, b.session_id, c.session_id}) == 3
        assert manager.active_count() == 3

    def test_rejoin_returns_same_match(self, manager, paired):
        assert manager.join(99, "alice", "a", COLS) is paired

    def test_rejoin_with_wrong_credential(self, manager, paired):
        with pytest.raises(IllegalActionError) as exc:
            manager.join(99, "alice", "nope", COLS)
        assert exc.value.code == INVALID_CREDENTIAL

    def test_third_player_gets_new_match(self, manager, paired):
        assert manager.join(99, "carol", "c", COLS) is not paired

    def test_bad_size(self, manager):
        with pytest.raises(ValueError):
            manager.join(99, "alice", "a", 3)


# ===================================================================
# Commands
# ===================================================================

class TestCommands:

    def test_unknown_session(self, manager):
        with pytest.raises(IllegalActionError) as exc:
            manager.roll("nope", "alice", "a")
        assert exc.value.code == SESSION_NOT_FOUND

    def test_waiting_for_opponent(self, manager):
        match = manager.join(99, "alice", "a", COLS)
        with pytest.raises(IllegalActionError) as exc:
            manager.roll(match.session_id, "alice", "a")
        assert exc.value.code == WAITING_FOR_OPPONENT

    def test_authorization(self, manager, paired):
        sid = paired.session_id
        with pytest.raises(IllegalActionError) as exc:
            manager.roll(sid, "mallory", "m")
        assert exc.value.code == NOT_A_PLAYER
        with pytest.raises(IllegalActionError) as exc:
            manager.roll(sid, "alice", "b")
        assert exc.value.code == INVALID_CREDENTIAL

    def test_turn_order(self, manager, paired):
        with pytest.raises(IllegalActionError) as exc:
            manager.roll(paired.session_id, "bob", "b")
        assert exc.value.code == errors.NOT_YOUR_TURN

    def test_select_before_roll(self, manager, paired):
        with pytest.raises(IllegalActionError) as exc:
            manager.notify(paired.session_id, "alice", "a", 0)
        assert exc.value.code == errors.WRONG_PHASE

    def test_select_during_forced_pass(self, manager, paired):
        with _scripted(2):
            manager.roll(paired.session_id, "alice", "a")
        with pytest.raises(IllegalActionError) as exc:
            manager.notify(paired.session_id, "alice", "a", 0)
        assert exc.value.message == "No available moves. You must skip turn."

    def test_move_and_pass(self, manager, paired):
        sid = paired.session_id
        with _scripted(1, 3):
            manager.roll(sid, "alice", "a")
            manager.notify(sid, "alice", "a", 0)
            manager.notify(sid, "alice", "a", 9)
            assert paired.last_touched_cell == 9
            manager.roll(sid, "alice", "a")
        manager.notify(sid, "alice", "a", 9)
        manager.notify(sid, "alice", "a", 12)
        assert paired.game.active_player == BLACK
        assert paired.last_touched_cell == 12

    def test_leave_running_game_forfeits(self, manager, paired):
        manager.leave(paired.session_id, "alice", "a")
        assert paired.finished
        assert paired.winner == "bob"
        with pytest.raises(IllegalActionError) as exc:
            manager.roll(paired.session_id, "bob", "b")
        assert exc.value.code == errors.GAME_ALREADY_OVER

    def test_leave_while_waiting(self, manager):
        match = manager.join(99, "alice", "a", COLS)
        manager.leave(match.session_id, "alice", "a")
        assert match.finished
        assert match.winner is None
        assert match.backlog[-1] == {"winner": None}

    def test_finished_match_is_not_rejoined(self, manager, paired):
        manager.leave(paired.session_id, "bob", "b")
        assert manager.join(99, "alice", "a", COLS) is not paired


# ===================================================================
# Update feed
# ===================================================================

class TestFeed:

    def test_backlog_replayed_to_late_subscriber(self, manager, paired):
        received = []
        manager.subscribe(paired.session_id, received.append)
        assert received[0]["session"] == paired.session_id
        assert received[0]["playerColorMap"] == {"alice": GOLD}
        start = received[1]
        assert start["initialPlayer"] == "alice"
        assert start["activePlayer"] == "alice"
        assert start["step"] == "selectOrigin"
        assert start["roll"] is None
        assert len(start["pieces"]) == 4 * COLS
        assert start["pieces"][0] == {"owner": "alice", "inMotion": False, "reachedFinalRow": False}

    def test_only_changes_are_sent(self, manager, paired):
        received = []
        manager.subscribe(paired.session_id, received.append)
        received.clear()
        with _scripted(1):
            manager.roll(paired.session_id, "alice", "a")
        assert received == [{
            "roll": {"value": 1, "grantsExtraRoll": True},
            "selectableCells": [0],
        }]

    def test_discarded_roll_is_still_shown(self, manager, paired):
        received = []
        manager.subscribe(paired.session_id, received.append)
        received.clear()
        with _scripted(4):
            manager.roll(paired.session_id, "alice", "a")
        assert received == [
            {"roll": {"value": 4, "grantsExtraRoll": True}},
            {"roll": None},
        ]

    def test_capture_choice_step(self, manager, paired):
        game = paired.game
        game.board = [None] * len(game.board)
        game.board[9] = Piece(GOLD, MOVED)
        game.board[11] = Piece(BLACK, MOVED)
        game.board[35] = Piece(BLACK)
        with _scripted(2):
            manager.roll(paired.session_id, "alice", "a")
        manager.notify(paired.session_id, "alice", "a", 9)
        assert paired.sent["step"] == "captureChoice"
        assert paired.sent["selectableCells"] == [11]

    def test_unsubscribe(self, manager, paired):
        received = []
        token = manager.subscribe(paired.session_id, received.append)
        manager.unsubscribe(paired.session_id, token)
        received.clear()
        with _scripted(2):
            manager.roll(paired.session_id, "alice", "a")
        assert received == []

    def test_failing_listener_is_dropped(self, manager, paired):
        def broken(message):
            raise RuntimeError("gone")

        token = manager.subscribe(paired.session_id, lambda m: None)
        paired.listeners[999] = broken
        with _scripted(2):
            manager.roll(paired.session_id, "alice", "a")
        assert 999 not in paired.listeners
        assert token in paired.listeners


# ===================================================================
# Cleanup
# ===================================================================

class TestCleanup:

    def test_stale_sessions_removed(self, manager, paired):
        fresh = manager.join(5, "carol", "c", COLS)
        paired.last_accessed = 0
        assert manager.cleanup_stale() == 1
        assert manager._sessions.get(paired.session_id) is None
        assert manager._sessions.get(fresh.session_id) is fresh


# ===================================================================
# Full online match through the sync controller
# ===================================================================

class TestOnlineMatch:

    @pytest.fixture
    def players(self, manager):
        service = InProcessGameService(manager)
        alice = RemoteSyncController(service, "alice", "a", cols=COLS, notifier=Notes())
        bob = RemoteSyncController(service, "bob", "b", cols=COLS, notifier=Notes())
        alice.join(99)
        bob.join(99)
        return alice, bob

    def test_both_mirrors_start_in_sync(self, players):
        alice, bob = players
        assert alice.mirror.session == bob.mirror.session
        for ctl in (alice, bob):
            assert ctl.mirror.initial_player == "alice"
            assert ctl.mirror.active_player == "alice"
            assert ctl.mirror.player_color_map == {"alice": GOLD, "bob": BLACK}
            assert len(ctl.mirror.pieces) == 4 * COLS
        assert not alice.view_rotated
        assert bob.view_rotated
        assert alice.can_roll_now()
        assert not bob.can_roll_now()

    def test_scripted_match(self, players):
        alice, bob = players
        with _scripted(1, 2, 2):
            assert alice.submit_command("roll")
            assert alice.mirror.roll.value == 1
            assert alice.mirror.selectable_cells == [0]

            assert alice.submit_command("selectCell", {"cell": 0})
            assert alice.mirror.step == "selectDestination"
            assert alice.selected_origin == 0
            assert alice.mirror.selectable_cells == [9]

            assert alice.submit_command("selectCell", {"cell": 9})
            assert alice.mirror.roll is None
            assert alice.mirror.active_player == "alice"
            assert bob.mirror.pieces[9].owner == "alice"
            assert bob.mirror.pieces[9].in_motion
            assert bob.mirror.pieces[0] is None

            assert alice.submit_command("roll")
            assert alice.submit_command("selectCell", {"cell": 9})
            assert alice.submit_command("selectCell", {"cell": 11})
            assert bob.is_my_turn()
            assert bob.mirror.last_touched_cell == 11
            assert bob.mirror.selectable_cells == []

            assert not alice.submit_command("roll")
            assert bob.submit_command("roll")

        assert bob.mirror.forced_pass_target == "bob"
        assert bob.can_pass_now()
        assert not alice.can_pass_now()
        assert bob.submit_command("pass")
        assert alice.is_my_turn()
        assert alice.mirror.roll is None
        assert alice.mirror.forced_pass_target is None

    def test_refused_command_is_reported(self, players):
        alice, _ = players
        with _scripted(1):
            alice.submit_command("roll")
        outcome = alice.submit_command("selectCell", {"cell": 8})
        assert not outcome
        assert outcome.code == errors.NO_LEGAL_DESTINATIONS
        assert alice.notifier.messages[-1].startswith("Invalid move")

    def test_leaving_ends_game_for_opponent(self, players):
        alice, bob = players
        alice.submit_command("leave")
        assert alice.closed
        assert bob.mirror.ended
        assert bob.mirror.winner == "bob"
        assert bob.closed
        assert bob.notifier.messages[-1] == "Game ended. Winner: bob"

    def test_gateway_maps_refusals(self, manager):
        service = InProcessGameService(manager)
        with pytest.raises(RemoteServiceError) as exc:
            service.roll("alice", "a", "missing")
        assert exc.value.code == SESSION_NOT_FOUND
        with pytest.raises(RemoteServiceError) as exc:
            service.join(99, "alice", "a", 40)
        assert exc.value.code == "INVALID_SIZE"
