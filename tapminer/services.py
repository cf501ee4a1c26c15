import logging
from functools import partial

from tapminer.database.store import create_store
from tapminer.integrations.solana import create_payment_gateway
from tapminer.mining.distribution import DistributionOrchestrator
from tapminer.mining.session_store import SessionStore
from tapminer.utils.rate_limiter import SlidingWindowLimiter

logger = logging.getLogger(__name__)


class Services:
    """Process-wide collaborators shared by the web layer, scheduler and scripts"""

    def __init__(self, config, store, sessions, orchestrator, gateway_factory,
                 ip_limiter, click_limiter):
        self.config = config
        self.store = store
        self.sessions = sessions
        self.orchestrator = orchestrator
        self.gateway_factory = gateway_factory
        self.ip_limiter = ip_limiter
        self.click_limiter = click_limiter


def build_services(config, store=None, gateway_factory=None, clock=None) -> Services:
    """Wire the store, session store, orchestrator and limiters from config"""
    store = store or create_store(config)
    gateway_factory = gateway_factory or partial(create_payment_gateway, config)
    sessions = SessionStore.from_config(store, config, clock=clock)
    orchestrator = DistributionOrchestrator.from_config(sessions, config, gateway_factory=gateway_factory)

    services = Services(
        config=config,
        store=store,
        sessions=sessions,
        orchestrator=orchestrator,
        gateway_factory=gateway_factory,
        ip_limiter=SlidingWindowLimiter(config.IP_RATE_LIMIT, config.IP_RATE_WINDOW),
        click_limiter=SlidingWindowLimiter(config.WALLET_CLICK_LIMIT, config.WALLET_CLICK_WINDOW)
    )
    logger.info(f"Services initialized with {type(store).__name__}")
    return services
