class TapMinerError(Exception):
    """Base exception for the tap miner service"""
    pass


class ConfigurationError(TapMinerError):
    """Required external credentials or endpoints are missing or malformed"""
    pass


class ValidationError(TapMinerError):
    """Client input was rejected before any state was touched"""

    def __init__(self, message, field=None):
        super().__init__(message)
        self.field = field


class RewardComputationError(TapMinerError):
    """Computed rewards exceed the available balance after all safeguards"""

    def __init__(self, message, total, available):
        super().__init__(message)
        self.total = total
        self.available = available


class TransferError(TapMinerError):
    """A single payout transfer was rejected or could not be confirmed"""
    pass


class StoreError(TapMinerError):
    """Persisted state could not be written"""
    pass
