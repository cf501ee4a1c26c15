"""Shared fixtures: a controllable clock, an in-memory store and a fake reward wallet."""

import threading

import pytest

from config import Config
from tapminer.database.store import MemoryStore
from tapminer.exceptions import TransferError
from tapminer.mining.distribution import DistributionOrchestrator
from tapminer.mining.reward_engine import RewardEngine
from tapminer.mining.session_store import SessionStore

# Well-known program ids: valid base58 ed25519 public keys
WALLET_A = "So11111111111111111111111111111111111111112"
WALLET_B = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
WALLET_C = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
WALLET_D = "Vote111111111111111111111111111111111111111"
POOL_WALLET = "SysvarRent111111111111111111111111111111111"

# base reserve + per-miner reserve for two miners
RESERVE_FOR_TWO = 10_000_000 + 2 * 5_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += int(seconds * 1000)


class FakeGateway:
    """Records transfers instead of sending them."""

    def __init__(self, balance=0, fail_for=(), block=False):
        self.balance = balance
        self.fail_for = set(fail_for)
        self.transfers = []
        self.started = threading.Event()
        self.release = threading.Event()
        if not block:
            self.release.set()

    @property
    def address(self):
        return POOL_WALLET

    def get_balance(self):
        return self.balance

    def transfer(self, to_wallet, lamports):
        self.started.set()
        self.release.wait(5)
        if to_wallet in self.fail_for:
            raise TransferError(f"Transfer to {to_wallet} rejected")
        self.transfers.append((to_wallet, lamports))
        return f"sig{len(self.transfers)}"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sessions(store, clock):
    return SessionStore(store, session_duration=120, clock=clock)


@pytest.fixture
def gateway():
    return FakeGateway(balance=RESERVE_FOR_TWO + 1_000_000_000)


@pytest.fixture
def orchestrator(sessions, gateway):
    return DistributionOrchestrator(sessions, RewardEngine(), lambda: gateway)


@pytest.fixture
def closed_session(sessions, clock):
    """A session where A tapped 70 points and B 30, then time ran out."""
    sessions.submit_points(WALLET_A, 70)
    sessions.submit_points(WALLET_B, 30)
    session_id = sessions.get_session().id
    clock.advance(121)
    return session_id


@pytest.fixture
def test_config(tmp_path):
    cfg = Config()
    cfg.ENV = 'testing'
    cfg.STORE_BACKEND = 'memory'
    cfg.DATA_FILE = str(tmp_path / 'db.json')
    cfg.SOLANA_RPC_URL = 'http://localhost:8899'
    cfg.REWARD_WALLET_PRIVATE_KEY = None
    cfg.IP_RATE_LIMIT = 1000
    cfg.IP_RATE_WINDOW = 60
    cfg.WALLET_CLICK_LIMIT = 25
    cfg.WALLET_CLICK_WINDOW = 60
    cfg.MAX_POINTS_PER_SUBMIT = 1000
    cfg.MAX_CONTENT_LENGTH = 4096
    return cfg
