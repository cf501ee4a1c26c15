# config.py
import os
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000

# Load environment variables
load_dotenv()


def _env_bool(name, default):
    return os.getenv(name, default).lower() == 'true'


class Config:

    def __init__(self):
        # Core configuration
        self.ENV = os.getenv('ENV', 'production')
        self.PORT = int(os.getenv('PORT', 10000))
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
        self.LOG_FILE = os.getenv('LOG_FILE', 'logs/app.log')
        self.CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*')

        # Session lifecycle
        self.SESSION_DURATION_SECONDS = int(os.getenv('SESSION_DURATION_SECONDS', 120))
        self.MAX_CLOSED_SESSIONS = int(os.getenv('MAX_CLOSED_SESSIONS', 10))
        self.DISTRIBUTION_HISTORY_LIMIT = int(os.getenv('DISTRIBUTION_HISTORY_LIMIT', 100))
        self.LEADERBOARD_SIZE = int(os.getenv('LEADERBOARD_SIZE', 50))

        # Persistence
        self.STORE_BACKEND = os.getenv('STORE_BACKEND', 'json').lower()
        self.DATA_FILE = os.getenv('DATA_FILE', os.path.join('data', 'db.json'))
        self.MONGO_URI = os.getenv('MONGO_URI')
        self.MONGO_DB_NAME = os.getenv('MONGO_DB_NAME', 'tapminer')

        # Solana reward wallet
        self.SOLANA_RPC_URL = os.getenv('SOLANA_RPC_URL') or os.getenv('HELIUS_RPC_URL')
        self.REWARD_WALLET_PRIVATE_KEY = os.getenv('REWARD_WALLET_PRIVATE_KEY')
        self.SOLANA_COMMITMENT = os.getenv('SOLANA_COMMITMENT', 'confirmed')
        self.SOLANA_CONFIRM_TIMEOUT = float(os.getenv('SOLANA_CONFIRM_TIMEOUT', 60))
        self.RPC_TIMEOUT = float(os.getenv('RPC_TIMEOUT', 10))

        # Reward economics (all in lamports)
        self.BASE_RESERVE_LAMPORTS = int(os.getenv('BASE_RESERVE_LAMPORTS', 10_000_000))  # 0.01 SOL
        self.PER_MINER_RESERVE_LAMPORTS = int(os.getenv('PER_MINER_RESERVE_LAMPORTS', 5_000))
        self.DUST_THRESHOLD_LAMPORTS = int(os.getenv('DUST_THRESHOLD_LAMPORTS', 5_000))
        self.POINTS_PER_SOL_ESTIMATE = int(os.getenv('POINTS_PER_SOL_ESTIMATE', 10_000))

        # Input limits
        self.MAX_POINTS_PER_SUBMIT = int(os.getenv('MAX_POINTS_PER_SUBMIT', 1_000))
        self.MIN_WALLET_LENGTH = 32
        self.MAX_WALLET_LENGTH = 44
        self.MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', 4096))

        # Rate limiting
        self.IP_RATE_LIMIT = int(os.getenv('IP_RATE_LIMIT', 1000))
        self.IP_RATE_WINDOW = float(os.getenv('IP_RATE_WINDOW', 60))
        self.WALLET_CLICK_LIMIT = int(os.getenv('WALLET_CLICK_LIMIT', 25))
        self.WALLET_CLICK_WINDOW = float(os.getenv('WALLET_CLICK_WINDOW', 1))

        # Background distribution
        self.AUTO_DISTRIBUTE = _env_bool('AUTO_DISTRIBUTE', 'false')
        self.AUTO_DISTRIBUTE_INTERVAL = int(os.getenv('AUTO_DISTRIBUTE_INTERVAL', 15))

        # Log configuration status
        self.log_config_summary()

    @property
    def distribution_configured(self):
        return bool(self.SOLANA_RPC_URL and self.REWARD_WALLET_PRIVATE_KEY)

    def log_config_summary(self):
        """Log a secure summary of the configuration"""
        logger.info("Configuration Summary:")
        logger.info(f"Environment: {self.ENV}")
        logger.info(f"Session duration: {self.SESSION_DURATION_SECONDS}s")
        logger.info(f"Store backend: {self.STORE_BACKEND}")
        logger.info(f"Dust threshold: {self.DUST_THRESHOLD_LAMPORTS} lamports, "
                    f"base reserve: {self.BASE_RESERVE_LAMPORTS} lamports")
        logger.info(f"Auto distribution: {self.AUTO_DISTRIBUTE} (every {self.AUTO_DISTRIBUTE_INTERVAL}s)")

        if self.SOLANA_RPC_URL:
            logger.info(f"Solana RPC: {self.secure_mask(self.SOLANA_RPC_URL, show_first=12)}")
        else:
            logger.warning("SOLANA_RPC_URL not set - distribution disabled")

        if not self.REWARD_WALLET_PRIVATE_KEY:
            logger.warning("REWARD_WALLET_PRIVATE_KEY not set - distribution disabled")

    def secure_mask(self, value, show_first=6, show_last=4):
        """Mask sensitive information for logging"""
        if not value or len(value) < (show_first + show_last):
            return "[REDACTED]"
        return f"{value[:show_first]}...{value[-show_last:]}"

# Create singleton instance
config = Config()
