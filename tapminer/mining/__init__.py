from .session_store import SessionStore, mask_wallet
from .reward_engine import (
    Reward,
    RewardEngine,
    calculate_available_balance,
    lamports_to_sol
)
from .distribution import (
    DistributionOrchestrator,
    DistributionOutcome,
    DistributionStatus
)
