"""Fixed-window request counters keyed by client identifier.

In-process only: good for a single worker. Expired windows are swept at most
once per ``sweep_interval`` seconds so idle clients do not accumulate.
Multi-worker deployments need a shared backend behind the same ``check``
interface.
"""

import functools
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from flask import current_app, request

from pixeltrivia.errors import RateLimitError

EXTENSION_KEY = 'pixeltrivia.rate_limiter'

# bucket name -> config key holding (max_requests, window_seconds)
BUCKETS = {
    'room-creation': 'RATE_LIMIT_ROOM_CREATION',
    'standard': 'RATE_LIMIT_STANDARD',
}


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float
    retry_after: int = 0


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval=60):
        self.clock = clock
        self.sweep_interval = sweep_interval
        self._entries: Dict[Tuple[str, str], Tuple[int, float]] = {}
        self._next_sweep = 0.0
        self._lock = threading.Lock()

    def check(self, bucket: str, identifier: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        now = self.clock()
        key = (bucket, identifier)
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            count, reset_at = self._entries.get(key, (0, 0.0))
            if reset_at <= now:
                count, reset_at = 0, now + window_seconds
            count += 1
            self._entries[key] = (count, reset_at)
        if count > max_requests:
            return RateLimitResult(False, 0, reset_at, max(1, int(reset_at - now + 0.999)))
        return RateLimitResult(True, max_requests - count, reset_at)

    def __len__(self):
        return len(self._entries)

    def _sweep(self, now):
        # Caller holds the lock
        stale = [k for k, (_, reset_at) in self._entries.items() if reset_at <= now]
        for k in stale:
            del self._entries[k]
        self._next_sweep = now + self.sweep_interval
        return len(stale)


def client_identifier():
    for header in ('CF-Connecting-IP', 'X-Real-IP'):
        value = request.headers.get(header)
        if value:
            return value.strip()
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.remote_addr or 'unknown'


def get_rate_limiter(app=None):
    app = app or current_app
    return app.extensions[EXTENSION_KEY]


def rate_limited(bucket: str):
    """Route decorator: raise RateLimitError once the caller's window is spent."""
    def decorator(view):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            cfg = current_app.config
            if cfg.get('RATE_LIMIT_ENABLED', True):
                max_requests, window = cfg[BUCKETS[bucket]]
                identifier = client_identifier()
                result = get_rate_limiter().check(bucket, identifier, max_requests, window)
                if not result.allowed:
                    current_app.logger.warning(f"[rate-limit] bucket={bucket} client={identifier}")
                    raise RateLimitError(result.retry_after)
            return view(*args, **kwargs)
        return wrapper
    return decorator
