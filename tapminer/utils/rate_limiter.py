import math
import time
import threading
import logging
from collections import deque
from functools import wraps
from flask import request, jsonify, make_response

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """
    In-process sliding window admission control.

    allow(key) records the hit when it is admitted. Expired keys are
    dropped every `cleanup_every` calls.
    """

    def __init__(self, max_requests, window_seconds, clock=None, cleanup_every=1000):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock or time.monotonic
        self.cleanup_every = cleanup_every
        self._hits = {}
        self._calls = 0
        self._lock = threading.Lock()

    def _prune(self, hits, now):
        window_start = now - self.window_seconds
        while hits and hits[0] <= window_start:
            hits.popleft()

    def _cleanup(self, now):
        for key in list(self._hits):
            self._prune(self._hits[key], now)
            if not self._hits[key]:
                del self._hits[key]

    def allow(self, key) -> bool:
        with self._lock:
            now = self.clock()
            self._calls += 1
            if self._calls % self.cleanup_every == 0:
                self._cleanup(now)

            hits = self._hits.setdefault(key, deque())
            self._prune(hits, now)
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def remaining(self, key) -> int:
        with self._lock:
            hits = self._hits.get(key)
            if not hits:
                return self.max_requests
            self._prune(hits, self.clock())
            return max(0, self.max_requests - len(hits))

    @property
    def retry_after(self) -> int:
        return max(1, math.ceil(self.window_seconds))


def get_client_ip():
    """Client IP from proxy headers, falling back to the socket address"""
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        # leftmost entry is the originating client
        return forwarded.split(',')[0].strip()

    real_ip = request.headers.get('X-Real-IP') or request.headers.get('X-Client-IP')
    if real_ip:
        return real_ip

    return request.remote_addr or '127.0.0.1'


def _too_many(message, limiter):
    response = jsonify({'error': message, 'retryAfter': limiter.retry_after})
    response.status_code = 429
    response.headers['Retry-After'] = str(limiter.retry_after)
    response.headers['X-RateLimit-Limit'] = str(limiter.max_requests)
    response.headers['X-RateLimit-Remaining'] = '0'
    return response


def with_rate_limit(limiter):
    """Per-IP request limit for a Flask view"""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            ip = get_client_ip()
            if not limiter.allow(ip):
                logger.warning(f"IP rate limit exceeded for {ip}")
                return _too_many('Too many requests from this IP', limiter)

            response = make_response(f(*args, **kwargs))
            response.headers['X-RateLimit-Limit'] = str(limiter.max_requests)
            response.headers['X-RateLimit-Remaining'] = str(limiter.remaining(ip))
            return response
        return wrapper
    return decorator


def with_wallet_click_limit(limiter):
    """Per-wallet submit limit, keyed by the `wallet` field of the JSON body"""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            data = request.get_json(silent=True)
            wallet = data.get('wallet') if isinstance(data, dict) else None
            if isinstance(wallet, str) and wallet and not limiter.allow(wallet):
                logger.warning(f"Click rate limit exceeded for {wallet[:8]}...")
                return _too_many('Too many clicks from this wallet', limiter)
            return f(*args, **kwargs)
        return wrapper
    return decorator
