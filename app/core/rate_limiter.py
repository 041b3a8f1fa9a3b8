"""
In-memory sliding-window rate limiter for the credential endpoints.

Login is limited per client IP; password reset requests per IP and per email.
State is per process, so every worker enforces its own window.
"""

import time
import logging
from collections import defaultdict
from typing import Dict, List, Tuple
from dataclasses import dataclass
from threading import Lock

from app.core.config import get_settings
from app.core.exceptions import RateLimited

logger = logging.getLogger(__name__)
settings = get_settings()

# Expired keys of other identifiers are swept at most this often
SWEEP_INTERVAL_SECONDS = 60


@dataclass
class RateLimitConfig:
    max_requests: int
    window_seconds: int


class RateLimiter:
    """Thread-safe in-memory rate limiter using a sliding window."""

    def __init__(self):
        # Request timestamps per "<limit_type>:<identifier>"
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._lock = Lock()
        self._last_sweep = time.time()

        self.configs = {
            "login": RateLimitConfig(
                max_requests=settings.login_rate_limit_attempts,
                window_seconds=settings.login_rate_limit_window_seconds,
            ),
            # Password reset: 5 requests per 15 minutes per IP
            "password_reset_ip": RateLimitConfig(max_requests=5, window_seconds=900),
            # Password reset: 3 requests per hour per email
            "password_reset_email": RateLimitConfig(max_requests=3, window_seconds=3600),
        }

    def _cleanup_old_requests(self, key: str, window_seconds: int) -> None:
        """Remove timestamps outside the current window, dropping the key once empty."""
        cutoff = time.time() - window_seconds
        timestamps = [ts for ts in self._requests.get(key, ()) if ts > cutoff]
        if timestamps:
            self._requests[key] = timestamps
        else:
            self._requests.pop(key, None)

    def is_allowed(self, limit_type: str, identifier: str) -> Tuple[bool, int]:
        """
        Record an attempt and report whether it fits in the window.

        Every call counts, whatever the outcome of the guarded operation.

        Returns:
            Tuple of (is_allowed, retry_after_seconds)
        """
        if limit_type not in self.configs:
            logger.warning(f"Unknown rate limit type: {limit_type}")
            return True, 0

        config = self.configs[limit_type]
        key = f"{limit_type}:{identifier}"

        with self._lock:
            now = time.time()
            if now - self._last_sweep >= SWEEP_INTERVAL_SECONDS:
                self._sweep(now)
            self._cleanup_old_requests(key, config.window_seconds)

            if len(self._requests[key]) >= config.max_requests:
                oldest_request = min(self._requests[key])
                retry_after = int(oldest_request + config.window_seconds - now) + 1
                return False, max(retry_after, 1)

            self._requests[key].append(now)
            return True, 0

    def check(self, limit_type: str, identifier: str) -> None:
        """Raise ``RateLimited`` when the attempt exceeds the window."""
        allowed, retry_after = self.is_allowed(limit_type, identifier)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {limit_type}: {identifier[:20]}...")
            raise RateLimited(
                retry_after,
                detail=f"Too many requests. Please try again in {retry_after} seconds.",
            )

    def reset(self, limit_type: str, identifier: str) -> None:
        key = f"{limit_type}:{identifier}"
        with self._lock:
            self._requests.pop(key, None)

    def reset_all(self) -> None:
        with self._lock:
            self._requests.clear()

    def cleanup_all(self) -> int:
        """Remove every key whose window has fully expired. Returns the number of keys removed."""
        with self._lock:
            return self._sweep(time.time())

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._requests)

    def _sweep(self, now: float) -> int:
        """Caller holds the lock."""
        self._last_sweep = now
        keys_to_remove = []

        for key, timestamps in self._requests.items():
            limit_type = key.split(":", 1)[0]
            config = self.configs.get(limit_type)
            if config is None:
                keys_to_remove.append(key)
                continue
            cutoff = now - config.window_seconds
            fresh = [ts for ts in timestamps if ts > cutoff]
            if fresh:
                self._requests[key] = fresh
            else:
                keys_to_remove.append(key)

        for key in keys_to_remove:
            del self._requests[key]

        if keys_to_remove:
            logger.debug(f"Rate limiter swept {len(keys_to_remove)} expired keys")
        return len(keys_to_remove)


# Global rate limiter instance
rate_limiter = RateLimiter()


def get_client_ip(request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First entry is the originating client
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"
