# tapminer/database/models.py
from typing import Dict, Optional


class MinerEntry:
    def __init__(self, wallet: str, data: dict):
        self.wallet = wallet
        self.points = int(data.get('points', 0))
        self.joined_at = data.get('joinedAt')

    def to_dict(self):
        return {
            'points': self.points,
            'joinedAt': self.joined_at
        }


class Session:
    """A fixed-duration mining window. Times are epoch milliseconds."""

    def __init__(self, data: dict, miners: Optional[dict] = None):
        self.id = data.get('id')
        self.start_time = data.get('startTime')
        self.end_time = data.get('endTime')
        self.distributed = bool(data.get('distributed', False))
        if miners is None:
            miners = data.get('miners') or {}
        # insertion order of the stored mapping is the iteration order
        self.miners: Dict[str, MinerEntry] = {
            wallet: MinerEntry(wallet, entry) for wallet, entry in miners.items()
        }

    def is_closed(self, now_ms) -> bool:
        return now_ms >= self.end_time

    def time_remaining(self, now_ms) -> int:
        """Whole seconds left before the session closes"""
        return max(0, int((self.end_time - now_ms) // 1000))

    @property
    def total_points(self) -> int:
        return sum(entry.points for entry in self.miners.values())

    @property
    def miner_count(self) -> int:
        return len(self.miners)

    def to_dict(self, include_miners=False):
        data = {
            'id': self.id,
            'startTime': self.start_time,
            'endTime': self.end_time,
            'distributed': self.distributed
        }
        if include_miners:
            data['miners'] = {wallet: entry.to_dict() for wallet, entry in self.miners.items()}
        return data


class DistributionRecord:
    def __init__(self, data: dict):
        self.wallet = data.get('wallet')
        self.amount = int(data.get('amount', 0))
        self.signature = data.get('signature')
        self.error = data.get('error')
        self.session_id = data.get('sessionId')
        self.timestamp = data.get('timestamp')

    @property
    def success(self) -> bool:
        return self.signature is not None and self.error is None

    def to_dict(self):
        data = {
            'wallet': self.wallet,
            'amount': self.amount,
            'sessionId': self.session_id,
            'timestamp': self.timestamp,
            'success': self.success
        }
        if self.signature is not None:
            data['signature'] = self.signature
        if self.error is not None:
            data['error'] = self.error
        return data
