# tapminer/mining/distribution.py
import threading
import logging
from functools import partial
from enum import Enum
from typing import Callable, List, Optional

from config import config
from tapminer.exceptions import ConfigurationError, RewardComputationError
from tapminer.integrations.solana import PaymentGateway, create_payment_gateway
from .reward_engine import RewardEngine, calculate_available_balance, lamports_to_sol
from .session_store import SessionStore

logger = logging.getLogger(__name__)

MAX_TRACKED_SESSIONS = 1000


class DistributionStatus(Enum):
    COMPLETED = "completed"
    ALREADY_DISTRIBUTED = "already_distributed"
    IN_PROGRESS = "in_progress"
    NOTHING_TO_DISTRIBUTE = "nothing_to_distribute"
    FAILED = "failed"


class DistributionOutcome:
    def __init__(self, status: DistributionStatus, message: str, session_id=None,
                 results: Optional[List[dict]] = None, details: Optional[dict] = None):
        self.status = status
        self.message = message
        self.session_id = session_id
        self.results = results or []
        self.details = details or {}

    @property
    def success(self) -> bool:
        return self.status == DistributionStatus.COMPLETED

    @property
    def http_status(self) -> int:
        return 500 if self.status == DistributionStatus.FAILED else 200

    @property
    def total_distributed(self) -> int:
        return sum(r['amount'] for r in self.results if r.get('signature'))

    def to_dict(self):
        data = {
            'status': self.status.value,
            'success': self.success,
            'message': self.message,
            'sessionId': self.session_id
        }
        if self.status == DistributionStatus.COMPLETED:
            data.update({
                'totalDistributed': f"{lamports_to_sol(self.total_distributed):.6f}",
                'totalDistributedLamports': self.total_distributed,
                'minerCount': len(self.results),
                'results': [
                    {
                        'wallet': r['wallet'][:8] + '...',
                        'sol': f"{lamports_to_sol(r['amount']):.6f}",
                        'success': bool(r.get('signature')),
                        **({'signature': r['signature']} if r.get('signature') else {'error': r.get('error')})
                    }
                    for r in self.results
                ]
            })
        if self.details:
            data.update(self.details)
        return data

    def __repr__(self):
        return f"DistributionOutcome({self.status.value}, session={self.session_id}, message={self.message!r})"


class DistributionOrchestrator:
    """
    Runs the end-of-session payout at most once per session per process.

    Guards, in order:
    1. a session already processed (in memory or flagged in the store) is
       reported as ALREADY_DISTRIBUTED
    2. a trigger while another run holds the lock is reported as IN_PROGRESS
       instead of waiting

    Sessions attempted by this instance, failed runs included, are not tried
    again and are skipped when picking the next pending session, so one bad
    session cannot hold up the ones closed after it. That memory lives in this
    instance only: a crash mid-run leaves no record of the attempt, so a
    restarted process could pay the same session again. Multi-instance
    deployments need a durable lock keyed by session id.
    """

    def __init__(self, sessions: SessionStore, engine: RewardEngine,
                 gateway_factory: Callable[[], PaymentGateway],
                 base_reserve: int = config.BASE_RESERVE_LAMPORTS,
                 per_miner_reserve: int = config.PER_MINER_RESERVE_LAMPORTS):
        self.sessions = sessions
        self.engine = engine
        self.gateway_factory = gateway_factory
        self.base_reserve = base_reserve
        self.per_miner_reserve = per_miner_reserve
        self.last_session_id = None
        self._attempted = set()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, sessions: SessionStore, settings, gateway_factory=None):
        if gateway_factory is None:
            gateway_factory = partial(create_payment_gateway, settings)
        return cls(
            sessions,
            RewardEngine(dust_threshold=settings.DUST_THRESHOLD_LAMPORTS),
            gateway_factory,
            base_reserve=settings.BASE_RESERVE_LAMPORTS,
            per_miner_reserve=settings.PER_MINER_RESERVE_LAMPORTS
        )

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def _already(self, session_id):
        return DistributionOutcome(
            DistributionStatus.ALREADY_DISTRIBUTED,
            'Already distributed for this session',
            session_id=session_id
        )

    def _resolve(self, session_id):
        """Return the session to pay out, or an outcome explaining why there is none"""
        if session_id is not None:
            session = self.sessions.get_session_by_id(session_id)
            if session is None:
                return DistributionOutcome(DistributionStatus.NOTHING_TO_DISTRIBUTE,
                                           'Unknown session', session_id=session_id)
        else:
            session = self.sessions.get_session_for_distribution(exclude=self._attempted)

        if not session.is_closed(self.sessions.clock()):
            latest = self.sessions.get_latest_closed_session()
            if session_id is None and latest and (latest.distributed or latest.id in self._attempted):
                return self._already(latest.id)
            return DistributionOutcome(
                DistributionStatus.NOTHING_TO_DISTRIBUTE,
                'Session still active',
                session_id=session.id,
                details={'timeRemaining': self.sessions.time_remaining(session)}
            )
        return session

    def attempt(self, session_id=None) -> DistributionOutcome:
        """
        Try to distribute the pool for a closed session.

        Never raises: every failure becomes a FAILED outcome.
        """
        try:
            session = self._resolve(session_id)
        except Exception as e:
            logger.exception(f"Distribution Error: could not load session: {e}")
            return DistributionOutcome(DistributionStatus.FAILED, 'Distribution failed',
                                       session_id=session_id, details={'error': str(e)})
        if isinstance(session, DistributionOutcome):
            return session

        if session.id in self._attempted or session.distributed:
            return self._already(session.id)

        if not self._lock.acquire(blocking=False):
            return DistributionOutcome(DistributionStatus.IN_PROGRESS, 'Distribution in progress',
                                       session_id=session.id)

        try:
            # a run for this session may have finished while we were checking
            if session.id in self._attempted:
                return self._already(session.id)
            return self._run(session)
        except RewardComputationError as e:
            logger.error(f"Reward computation error for session {session.id}: {e}")
            return DistributionOutcome(
                DistributionStatus.FAILED, 'Reward computation error', session_id=session.id,
                details={'error': str(e), 'totalLamports': e.total, 'availableLamports': e.available}
            )
        except ConfigurationError as e:
            logger.error(f"Missing server configuration: {e}")
            return DistributionOutcome(DistributionStatus.FAILED, 'Server not configured',
                                       session_id=session.id, details={'error': str(e)})
        except Exception as e:
            logger.exception(f"Distribution Error for session {session.id}: {e}")
            return DistributionOutcome(DistributionStatus.FAILED, 'Distribution failed',
                                       session_id=session.id, details={'error': str(e)})
        finally:
            self._remember(session.id)
            self._lock.release()

    def _remember(self, session_id):
        self.last_session_id = session_id
        self._attempted.add(session_id)
        # ids only grow; the oldest ones have long left the closed-session queue
        while len(self._attempted) > MAX_TRACKED_SESSIONS:
            self._attempted.discard(min(self._attempted))

    def _nothing(self, session, message):
        # nothing to pay: flag the session so the closed-session queue advances
        self.sessions.mark_session_distributed(session.id)
        logger.info(f"Session {session.id}: {message}")
        return DistributionOutcome(DistributionStatus.NOTHING_TO_DISTRIBUTE, message, session_id=session.id)

    def _run(self, session) -> DistributionOutcome:
        logger.info(f"Distribution triggered. Session: {session.id}, Miners: {session.miner_count}")

        miners = {wallet: entry.points for wallet, entry in session.miners.items() if entry.points > 0}
        if not miners:
            return self._nothing(session, 'No miners to reward')

        gateway = self.gateway_factory()
        balance = gateway.get_balance()
        available = calculate_available_balance(balance, len(miners), self.base_reserve, self.per_miner_reserve)
        logger.info(f"Reward pool balance: {balance} lamports, available after reserve: {available}")

        if available <= 0:
            return self._nothing(session, 'Insufficient reward pool')

        rewards = self.engine.compute_rewards(miners, available)
        if not rewards:
            return self._nothing(session, 'Rewards too small')

        results = []
        for reward in rewards:
            try:
                signature = gateway.transfer(reward.wallet, reward.lamports)
                results.append({'wallet': reward.wallet, 'amount': reward.lamports, 'signature': signature})
                logger.info(f"Sent {reward.sol} SOL to {reward.wallet[:8]}...")
            except Exception as e:
                logger.error(f"Failed to send to {reward.wallet}: {e}")
                results.append({'wallet': reward.wallet, 'amount': reward.lamports, 'error': str(e)})

        self.sessions.mark_session_distributed(session.id)
        self.sessions.add_distribution(session.id, results)

        outcome = DistributionOutcome(DistributionStatus.COMPLETED, 'Distribution complete',
                                      session_id=session.id, results=results)
        succeeded = sum(1 for r in results if r.get('signature'))
        logger.info(
            f"Session {session.id} distributed: {succeeded}/{len(results)} transfers, "
            f"{outcome.total_distributed} lamports"
        )
        return outcome
