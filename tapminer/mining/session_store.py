# tapminer/mining/session_store.py
import time
import logging
from typing import List, Optional

from config import config
from tapminer.database.models import Session, DistributionRecord
from tapminer.exceptions import ValidationError

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def mask_wallet(wallet: str) -> str:
    return f"{wallet[:4]}...{wallet[-4:]}"


class SessionStore:
    """
    Owns session identity, rotation and per-wallet point accumulation.

    Every read or write goes through the persistence collaborator. The
    current session is rotated lazily: any access after its endTime snapshots
    the miner map into the closed-session queue and opens a fresh session
    starting at the time of that access.
    """

    def __init__(self, store, session_duration=config.SESSION_DURATION_SECONDS,
                 max_closed_sessions=config.MAX_CLOSED_SESSIONS,
                 history_limit=config.DISTRIBUTION_HISTORY_LIMIT,
                 leaderboard_size=config.LEADERBOARD_SIZE, clock=None):
        self._store = store
        self.session_duration_ms = int(session_duration * 1000)
        self.max_closed_sessions = max(1, max_closed_sessions)
        self.history_limit = history_limit
        self.leaderboard_size = leaderboard_size
        self.clock = clock or now_ms

    @classmethod
    def from_config(cls, store, settings, clock=None):
        return cls(
            store,
            session_duration=settings.SESSION_DURATION_SECONDS,
            max_closed_sessions=settings.MAX_CLOSED_SESSIONS,
            history_limit=settings.DISTRIBUTION_HISTORY_LIMIT,
            leaderboard_size=settings.LEADERBOARD_SIZE,
            clock=clock
        )

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    def _new_session(self, data, now):
        last_id = max(
            [s['id'] for s in data['closedSessions']] +
            ([data['currentSession']['id']] if data['currentSession'] else []),
            default=0
        )
        session_id = max(now, last_id + 1)
        return {
            'id': session_id,
            'startTime': now,
            'endTime': now + self.session_duration_ms,
            'distributed': False
        }

    def _needs_rotation(self, data, now) -> bool:
        current = data['currentSession']
        return current is None or now >= current['endTime']

    def _rotate(self, data, now) -> bool:
        """Rotate in place. Returns True if the document was modified."""
        current = data['currentSession']
        miners = data['miners']

        if current is None:
            current = self._new_session(data, now)
            data['currentSession'] = current
            miners.setdefault(str(current['id']), {})
            logger.info(f"Created session {current['id']}")
            return True

        if now < current['endTime']:
            return False

        # Preserve closed session data for later distribution
        closed_miners = miners.pop(str(current['id']), {})
        snapshot = dict(current, miners=dict(closed_miners))
        data['previousSession'] = dict(snapshot, miners=dict(closed_miners))

        closed = data['closedSessions']
        closed.append(snapshot)
        while len(closed) > self.max_closed_sessions:
            evicted = closed.pop(0)
            if not evicted.get('distributed') and evicted.get('miners'):
                logger.warning(
                    f"Dropped undistributed session {evicted['id']} "
                    f"({len(evicted['miners'])} miners) from full closed-session queue"
                )

        new_session = self._new_session(data, now)
        data['currentSession'] = new_session
        miners[str(new_session['id'])] = {}

        logger.info(
            f"Session {current['id']} closed with {len(closed_miners)} miners; "
            f"opened session {new_session['id']}"
        )
        return True

    def _load(self):
        data = self._store.get()
        if self._needs_rotation(data, self.clock()):
            data = self._store.update(self._rotate_callback)
        return data

    def _rotate_callback(self, data):
        self._rotate(data, self.clock())
        return data

    def _current(self, data) -> Session:
        current = data['currentSession']
        return Session(current, data['miners'].get(str(current['id']), {}))

    # ------------------------------------------------------------------
    # Session reads
    # ------------------------------------------------------------------

    def get_session(self) -> Session:
        """Current session, rotating first if it has expired"""
        return self._current(self._load())

    def get_session_for_distribution(self, exclude=()) -> Session:
        """
        Oldest closed session that has not been distributed yet.

        Sessions whose ids are in `exclude` are skipped. Falls back to the
        current (open) session when nothing is pending; callers treat that
        as "nothing to distribute yet".
        """
        data = self._load()
        for closed in data['closedSessions']:
            if not closed.get('distributed') and closed['id'] not in exclude:
                return Session(closed)
        return self._current(data)

    def get_latest_closed_session(self) -> Optional[Session]:
        data = self._load()
        previous = data['previousSession']
        return Session(previous) if previous else None

    def get_session_by_id(self, session_id) -> Optional[Session]:
        data = self._load()
        current = data['currentSession']
        if current and current['id'] == session_id:
            return self._current(data)
        for closed in data['closedSessions']:
            if closed['id'] == session_id:
                return Session(closed)
        previous = data['previousSession']
        if previous and previous['id'] == session_id:
            return Session(previous)
        return None

    def time_remaining(self, session: Session) -> int:
        return session.time_remaining(self.clock())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mark_session_distributed(self, session_id):
        def callback(data):
            self._rotate(data, self.clock())
            for candidate in [data['currentSession'], data['previousSession']] + data['closedSessions']:
                if candidate and candidate['id'] == session_id:
                    candidate['distributed'] = True
            return data

        self._store.update(callback)
        logger.info(f"Session {session_id} marked as distributed")

    def join_session(self, wallet: str) -> Session:
        def callback(data):
            self._rotate(data, self.clock())
            session_miners = data['miners'].setdefault(str(data['currentSession']['id']), {})
            if wallet not in session_miners:
                session_miners[wallet] = {'points': 0, 'joinedAt': self.clock()}
                logger.info(f"Wallet {mask_wallet(wallet)} joined session {data['currentSession']['id']}")
            return data

        return self._current(self._store.update(callback))

    def submit_points(self, wallet: str, points: int) -> Session:
        """
        Credit points to the wallet in the current session.

        Rotation runs first, so points arriving after the session's endTime
        land in the newly opened session.
        """
        if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
            raise ValidationError("Points must be a positive integer", field='points')

        def callback(data):
            self._rotate(data, self.clock())
            session_miners = data['miners'].setdefault(str(data['currentSession']['id']), {})
            entry = session_miners.get(wallet)
            if entry:
                entry['points'] += points
            else:
                session_miners[wallet] = {'points': points, 'joinedAt': self.clock()}
            return data

        return self._current(self._store.update(callback))

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def get_wallet_points(self, wallet: str) -> int:
        entry = self.get_session().miners.get(wallet)
        return entry.points if entry else 0

    def get_leaderboard(self) -> List[dict]:
        session = self.get_session()
        # ties broken by wallet string order
        ranked = sorted(session.miners.values(), key=lambda m: (-m.points, m.wallet))
        return [
            {
                'wallet': mask_wallet(entry.wallet),
                'fullWallet': entry.wallet,
                'points': entry.points
            }
            for entry in ranked[:self.leaderboard_size]
        ]

    def get_total_points(self) -> int:
        return self.get_session().total_points

    def get_miner_count(self) -> int:
        return self.get_session().miner_count

    # ------------------------------------------------------------------
    # Distribution history
    # ------------------------------------------------------------------

    def add_distribution(self, session_id, transfers):
        timestamp = self.clock()
        new_records = [
            DistributionRecord(dict(tx, sessionId=session_id, timestamp=timestamp)).to_dict()
            for tx in transfers
        ]

        def callback(data):
            # Keep the most recent payouts, newest first
            data['distributions'] = (new_records + data['distributions'])[:self.history_limit]
            return data

        self._store.update(callback)

    def get_distributions(self) -> List[dict]:
        return list(self._store.get()['distributions'])
