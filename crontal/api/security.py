"""
Security Middleware — Rate Limiting + CORS + Headers
=====================================================

Rate Limiting:
- In-memory token bucket per IP address
- "heavy" tier on every route that calls the model (cost + latency bound)
- 429 response when exceeded; DISABLE_RATE_LIMIT=true turns it off

CORS:
- The buyer/supplier demo frontends may be served from another origin,
  so every response is open (no credentials are involved)
"""

import os
import time
import logging
import functools
from collections import defaultdict
from threading import Lock

from flask import request

from crontal.core.errors import RateLimited

log = logging.getLogger("crontal.security")

# ═══════════════════════════════════════════════════════════════════════════════
# Rate Limiting
# ═══════════════════════════════════════════════════════════════════════════════

class RateLimiter:
    """Simple in-memory rate limiter using token bucket algorithm."""

    def __init__(self):
        self._buckets = defaultdict(lambda: {"tokens": None, "last_refill": time.time()})
        self._lock = Lock()

    def check(self, key: str, max_tokens: int = 60, refill_rate: float = 1.0) -> bool:
        """Check if request is allowed. Returns True if allowed, False if rate limited.

        Args:
            key: Unique key for the bucket (usually IP + endpoint group)
            max_tokens: Maximum burst capacity
            refill_rate: Tokens added per second
        """
        with self._lock:
            bucket = self._buckets[key]
            now = time.time()
            if bucket["tokens"] is None:
                bucket["tokens"] = max_tokens
            elapsed = now - bucket["last_refill"]

            bucket["tokens"] = min(max_tokens, bucket["tokens"] + elapsed * refill_rate)
            bucket["last_refill"] = now

            if bucket["tokens"] >= 1:
                bucket["tokens"] -= 1
                return True
            return False

    def __len__(self):
        with self._lock:
            return len(self._buckets)

    def cleanup(self, max_age: int = 3600):
        """Remove stale buckets older than max_age seconds."""
        now = time.time()
        with self._lock:
            stale = [k for k, v in self._buckets.items() if now - v["last_refill"] > max_age]
            for k in stale:
                del self._buckets[k]


_limiter = RateLimiter()

RATE_LIMITS = {
    "default": {"max_tokens": 60, "refill_rate": 2.0},   # 120/min
    "heavy":   {"max_tokens": 10, "refill_rate": 0.2},   # 12/min (model calls)
}

# Stale buckets are pruned once the map grows past this many client keys
MAX_BUCKETS = 10000


def rate_limit(tier: str = "default"):
    """Decorator to apply rate limiting to a route."""
    def decorator(f):
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            if os.environ.get("DISABLE_RATE_LIMIT", "").lower() == "true":
                return f(*args, **kwargs)

            ip = request.remote_addr or "unknown"
            if len(_limiter) > MAX_BUCKETS:
                _limiter.cleanup()
            limits = RATE_LIMITS.get(tier, RATE_LIMITS["default"])
            if not _limiter.check(f"{ip}:{tier}", **limits):
                log.warning("Rate limit exceeded: %s tier=%s", ip, tier)
                raise RateLimited("Rate limit exceeded. Please try again shortly.")
            return f(*args, **kwargs)
        return wrapper
    return decorator


# ═══════════════════════════════════════════════════════════════════════════════
# Response headers
# ═══════════════════════════════════════════════════════════════════════════════

def add_response_headers(response):
    """CORS + security headers on every response."""
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "SAMEORIGIN"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


def init_security(app):
    """Initialize security middleware on the Flask app."""
    app.after_request(add_response_headers)
    log.info("Security middleware initialized: rate limiting, CORS, security headers")
