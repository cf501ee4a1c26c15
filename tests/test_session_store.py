"""
tests/test_session_store.py

Session rotation, point accumulation, closed-session queue and history.
"""

import pytest

from config import config
from tapminer.database.store import MemoryStore
from tapminer.exceptions import ValidationError
from tapminer.mining.session_store import SessionStore, mask_wallet

from conftest import WALLET_A, WALLET_B, WALLET_C, WALLET_D


class TestSessionLifecycle:

    def test_first_access_creates_session(self, sessions, clock):
        session = sessions.get_session()

        assert session.id == clock.now
        assert session.start_time == clock.now
        assert session.end_time == clock.now + 120_000
        assert session.distributed is False
        assert session.miners == {}

    def test_same_session_until_end_time(self, sessions, clock):
        first = sessions.get_session()
        clock.advance(119.999)

        assert sessions.get_session().id == first.id
        assert sessions.time_remaining(sessions.get_session()) == 0

    def test_rotation_snapshots_miners(self, sessions, clock):
        sessions.submit_points(WALLET_A, 10)
        first = sessions.get_session()
        clock.advance(120)

        current = sessions.get_session()
        closed = sessions.get_latest_closed_session()

        assert current.id > first.id
        assert current.start_time == clock.now
        assert current.miners == {}
        assert closed.id == first.id
        assert closed.miners[WALLET_A].points == 10

    def test_session_ids_strictly_increase(self, store, clock):
        # zero-length sessions rotate on every access within the same millisecond
        sessions = SessionStore(store, session_duration=0, clock=clock)
        ids = [sessions.get_session().id for _ in range(3)]

        assert ids == [clock.now, clock.now + 1, clock.now + 2]

    def test_time_remaining_in_whole_seconds(self, sessions, clock):
        session = sessions.get_session()
        clock.advance(30.5)

        assert sessions.time_remaining(session) == 89


class TestMining:

    def test_join_is_idempotent(self, sessions):
        sessions.join_session(WALLET_A)
        sessions.submit_points(WALLET_A, 5)
        sessions.join_session(WALLET_A)

        assert sessions.get_wallet_points(WALLET_A) == 5
        assert sessions.get_miner_count() == 1

    def test_join_adds_zero_point_entry(self, sessions):
        session = sessions.join_session(WALLET_A)

        assert session.miners[WALLET_A].points == 0
        assert session.miners[WALLET_A].joined_at is not None

    def test_points_accumulate(self, sessions):
        sessions.submit_points(WALLET_A, 5)
        sessions.submit_points(WALLET_A, 3)

        assert sessions.get_wallet_points(WALLET_A) == 8
        assert sessions.get_total_points() == 8

    def test_submit_without_join_creates_entry(self, sessions):
        session = sessions.submit_points(WALLET_B, 4)
        assert session.miners[WALLET_B].points == 4

    @pytest.mark.parametrize("points", [0, -1, True, 1.5, "5", None])
    def test_rejects_invalid_points(self, sessions, points):
        with pytest.raises(ValidationError):
            sessions.submit_points(WALLET_A, points)
        assert sessions.get_total_points() == 0

    def test_late_points_go_to_new_session(self, sessions, clock):
        sessions.submit_points(WALLET_A, 5)
        first_id = sessions.get_session().id
        clock.advance(121)

        session = sessions.submit_points(WALLET_A, 3)

        assert session.id != first_id
        assert session.miners[WALLET_A].points == 3
        assert sessions.get_session_by_id(first_id).miners[WALLET_A].points == 5

    def test_leaderboard_sorted_and_masked(self, store, clock):
        sessions = SessionStore(store, clock=clock, leaderboard_size=2)
        sessions.submit_points(WALLET_A, 10)
        sessions.submit_points(WALLET_B, 30)
        sessions.submit_points(WALLET_C, 30)

        board = sessions.get_leaderboard()

        # ties broken by wallet
        expected = sorted([WALLET_B, WALLET_C])
        assert [row['fullWallet'] for row in board] == expected
        assert board[0]['wallet'] == mask_wallet(expected[0])
        assert board[0]['points'] == 30

    def test_mask_wallet(self):
        assert mask_wallet(WALLET_A) == "So11...1112"


class TestClosedSessionQueue:

    def _close_with(self, sessions, clock, wallet, points):
        sessions.submit_points(wallet, points)
        session_id = sessions.get_session().id
        clock.advance(121)
        return session_id

    def test_open_session_returned_when_nothing_pending(self, sessions):
        current = sessions.get_session()
        assert sessions.get_session_for_distribution().id == current.id

    def test_oldest_undistributed_first(self, sessions, clock):
        first = self._close_with(sessions, clock, WALLET_A, 1)
        second = self._close_with(sessions, clock, WALLET_B, 2)

        assert sessions.get_session_for_distribution().id == first

        sessions.mark_session_distributed(first)
        pending = sessions.get_session_for_distribution()
        assert pending.id == second
        assert pending.miners[WALLET_B].points == 2

    def test_excluded_sessions_skipped(self, sessions, clock):
        first = self._close_with(sessions, clock, WALLET_A, 1)
        second = self._close_with(sessions, clock, WALLET_B, 2)

        assert sessions.get_session_for_distribution(exclude={first}).id == second

        fallback = sessions.get_session_for_distribution(exclude={first, second})
        assert fallback.id == sessions.get_session().id
        assert sessions.get_session_by_id(first).distributed is False

    def test_previous_session_is_most_recent(self, sessions, clock):
        self._close_with(sessions, clock, WALLET_A, 1)
        second = self._close_with(sessions, clock, WALLET_B, 2)

        assert sessions.get_latest_closed_session().id == second

    def test_mark_distributed_updates_all_copies(self, sessions, store, clock):
        session_id = self._close_with(sessions, clock, WALLET_A, 1)

        sessions.mark_session_distributed(session_id)
        data = store.get()

        assert data['previousSession']['distributed'] is True
        assert data['closedSessions'][0]['distributed'] is True
        assert sessions.get_session_by_id(session_id).distributed is True

    def test_queue_evicts_oldest(self, store, clock):
        sessions = SessionStore(store, clock=clock, max_closed_sessions=2)
        ids = [self._close_with(sessions, clock, wallet, 1) for wallet in (WALLET_A, WALLET_B, WALLET_C)]
        sessions.get_session()

        closed_ids = [s['id'] for s in store.get()['closedSessions']]
        assert closed_ids == ids[1:]
        assert sessions.get_session_by_id(ids[0]) is None

    def test_unknown_session_id(self, sessions):
        assert sessions.get_session_by_id(42) is None

    def test_closed_miner_map_removed_from_active_map(self, sessions, store, clock):
        session_id = self._close_with(sessions, clock, WALLET_A, 1)
        sessions.get_session()

        assert str(session_id) not in store.get()['miners']


class TestDefaults:

    def test_limits_follow_config(self, store):
        sessions = SessionStore(store)

        assert sessions.session_duration_ms == config.SESSION_DURATION_SECONDS * 1000
        assert sessions.max_closed_sessions == config.MAX_CLOSED_SESSIONS
        assert sessions.history_limit == config.DISTRIBUTION_HISTORY_LIMIT
        assert sessions.leaderboard_size == config.LEADERBOARD_SIZE


class TestDistributionHistory:

    def test_newest_first(self, sessions):
        sessions.add_distribution(1, [{'wallet': WALLET_A, 'amount': 10, 'signature': 'sig1'}])
        sessions.add_distribution(2, [{'wallet': WALLET_B, 'amount': 20, 'error': 'boom'}])

        history = sessions.get_distributions()

        assert [h['sessionId'] for h in history] == [2, 1]
        assert history[0]['success'] is False
        assert history[0]['error'] == 'boom'
        assert history[1]['success'] is True
        assert history[1]['signature'] == 'sig1'

    def test_capped(self, clock):
        sessions = SessionStore(MemoryStore(), clock=clock, history_limit=3)
        sessions.add_distribution(1, [{'wallet': WALLET_A, 'amount': 1, 'signature': 'a'},
                                      {'wallet': WALLET_B, 'amount': 1, 'signature': 'b'}])
        sessions.add_distribution(2, [{'wallet': WALLET_C, 'amount': 1, 'signature': 'c'},
                                      {'wallet': WALLET_D, 'amount': 1, 'signature': 'd'}])

        history = sessions.get_distributions()

        assert len(history) == 3
        assert [h['wallet'] for h in history] == [WALLET_C, WALLET_D, WALLET_A]

    def test_records_timestamp(self, sessions, clock):
        sessions.add_distribution(7, [{'wallet': WALLET_A, 'amount': 5, 'signature': 's'}])
        assert sessions.get_distributions()[0]['timestamp'] == clock.now
