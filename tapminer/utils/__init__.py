from .logger import setup_logging
from .rate_limiter import SlidingWindowLimiter, get_client_ip, with_rate_limit, with_wallet_click_limit
