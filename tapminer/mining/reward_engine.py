# tapminer/mining/reward_engine.py
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN
from typing import Dict, Iterable, List, Tuple, Union

from config import LAMPORTS_PER_SOL, config
from tapminer.exceptions import RewardComputationError

logger = logging.getLogger(__name__)


def lamports_to_sol(lamports: int) -> Decimal:
    return (Decimal(lamports) / Decimal(LAMPORTS_PER_SOL)).quantize(Decimal('0.000000001'))


@dataclass
class Reward:
    wallet: str
    points: int
    lamports: int
    total_points: int
    share: Decimal = field(init=False)

    def __post_init__(self):
        # percentage of the pool by points, for display only
        self.share = (Decimal(self.points) * 100 / Decimal(self.total_points)).quantize(
            Decimal('0.01'), rounding=ROUND_DOWN)

    @property
    def sol(self) -> Decimal:
        return lamports_to_sol(self.lamports)

    def to_dict(self):
        return {
            'wallet': self.wallet,
            'points': self.points,
            'lamports': self.lamports,
            'sol': f"{self.sol:.6f}",
            'share': f"{self.share:.2f}"
        }


def calculate_available_balance(balance: int, miner_count: int,
                                base_reserve: int, per_miner_reserve: int) -> int:
    """Spendable pool after holding back a fee reserve for each transfer"""
    reserve = base_reserve + per_miner_reserve * max(0, miner_count)
    return max(0, balance - reserve)


def _normalize_miners(miners) -> List[Tuple[str, int]]:
    if isinstance(miners, dict):
        items = miners.items()
    else:
        items = ((m['wallet'], m['points']) if isinstance(m, dict) else (m.wallet, m.points)
                 for m in miners)
    return [(wallet, int(points)) for wallet, points in items]


class RewardEngine:
    """
    Proportional split of a fixed pool snapshot.

    All arithmetic is integer lamports with floor division, so the sum of
    payouts never exceeds the balance handed in.
    """

    def __init__(self, dust_threshold: int = config.DUST_THRESHOLD_LAMPORTS):
        self.dust_threshold = dust_threshold

    def allocate(self, points: int, available_balance: int, total_points: int) -> int:
        """Lamports owed to one miner before the dust filter"""
        return points * available_balance // total_points

    def compute_rewards(self, miners: Union[Dict[str, int], Iterable], available_balance: int) -> List[Reward]:
        """
        Args:
            miners: mapping of wallet -> points, or sequence of {wallet, points}
            available_balance: lamports, with the fee reserve already removed

        Returns:
            Rewards in miner iteration order, dust entries dropped

        Raises:
            RewardComputationError: if the scaled total still exceeds the balance
        """
        eligible = [(wallet, points) for wallet, points in _normalize_miners(miners) if points > 0]
        available_balance = int(available_balance)

        total_points = sum(points for _, points in eligible)
        if total_points == 0 or available_balance <= 0:
            return []

        rewards = [
            Reward(wallet, points, self.allocate(points, available_balance, total_points), total_points)
            for wallet, points in eligible
        ]
        rewards = [r for r in rewards if r.lamports >= self.dust_threshold]

        total = sum(r.lamports for r in rewards)
        # floor allocation never overshoots; only overridden allocators reach this
        if total > available_balance:
            logger.warning(f"Rewards total {total} exceeds available {available_balance}, scaling down")
            for reward in rewards:
                reward.lamports = reward.lamports * available_balance // total
            total = sum(r.lamports for r in rewards)

        if total > available_balance:
            raise RewardComputationError(
                f"Computed rewards ({total} lamports) exceed available balance ({available_balance} lamports)",
                total=total,
                available=available_balance
            )

        logger.info(
            f"Computed {len(rewards)} rewards from {len(eligible)} miners: "
            f"{total}/{available_balance} lamports, {total_points} points"
        )
        return rewards
