"""
Request throttling and response headers for the portal API.

Each client IP gets one token bucket per tier. Tiers are named on the route:

    @bp.route("/api/auth/login", methods=["POST"])
    @rate_limit("auth")
    def login(): ...

An empty bucket answers 429. DISABLE_RATE_LIMIT=true turns throttling off
(tests and local development).
"""

import os
import time
import logging
import functools
from dataclasses import dataclass, field
from threading import Lock

from flask import request, jsonify

log = logging.getLogger("lava.security")

# tier → burst size and refill per second
RATE_LIMITS = {
    "default": {"max_tokens": 120, "refill_rate": 2.0},
    "auth":    {"max_tokens": 10,  "refill_rate": 0.1},
    "upload":  {"max_tokens": 60,  "refill_rate": 1.0},
    "ai":      {"max_tokens": 20,  "refill_rate": 0.2},
}

HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


@dataclass
class _Bucket:
    tokens: float
    stamp: float = field(default_factory=time.monotonic)


class RateLimiter:
    """Token buckets keyed by arbitrary strings (we use "ip:tier")."""

    def __init__(self):
        self._buckets: dict[str, _Bucket] = {}
        self._lock = Lock()

    def check(self, key: str, max_tokens: int = 60, refill_rate: float = 1.0) -> bool:
        """Spend one token from ``key``'s bucket. False means throttle."""
        now = time.monotonic()
        with self._lock:
            bucket = self._buckets.setdefault(key, _Bucket(tokens=max_tokens, stamp=now))
            refilled = bucket.tokens + (now - bucket.stamp) * refill_rate
            bucket.tokens = min(float(max_tokens), refilled)
            bucket.stamp = now
            if bucket.tokens < 1:
                return False
            bucket.tokens -= 1
            return True

    def reset(self):
        with self._lock:
            self._buckets = {}


_limiter = RateLimiter()


def _throttling_disabled() -> bool:
    return os.environ.get("DISABLE_RATE_LIMIT", "").strip().lower() == "true"


def rate_limit(tier: str = "default"):
    """Route decorator: throttle callers per IP within ``tier``."""
    def decorator(view):
        @functools.wraps(view)
        def throttled(*args, **kwargs):
            if not _throttling_disabled():
                caller = request.remote_addr or "unknown"
                limits = RATE_LIMITS.get(tier) or RATE_LIMITS["default"]
                if not _limiter.check(f"{caller}:{tier}", **limits):
                    log.warning("Throttled %s on %s (tier=%s)", caller, request.path, tier)
                    return jsonify({"ok": False,
                                    "error": "Too many requests, try again in a moment"}), 429
            return view(*args, **kwargs)
        return throttled
    return decorator


def add_security_headers(response):
    for name, value in HEADERS.items():
        response.headers[name] = value
    response.headers.setdefault("Cache-Control", "no-store")
    return response


def init_security(app):
    app.after_request(add_security_headers)
    log.info("Security headers on; rate limiting %s",
             "disabled" if _throttling_disabled() else "enabled")
