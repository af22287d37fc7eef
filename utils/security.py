"""Security helpers for headers, password policy, and attempt throttling."""
import time
from collections import defaultdict, deque

from flask import request


def apply_security_headers(response, force_https: bool = False):
    """Apply security headers; the API serves JSON and evidence files only."""
    csp = "default-src 'none'; img-src 'self'; frame-ancestors 'none'"
    response.headers.setdefault("Content-Security-Policy", csp)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(self), microphone=(), camera=()")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    return response


def password_meets_policy(password: str) -> tuple[bool, str | None]:
    """Enforce a sane password baseline for production."""
    if len(password) < 12:
        return False, "Password must be at least 12 characters long."
    if password.lower() == password or password.upper() == password:
        return False, "Use a mix of upper and lower case characters."
    if not any(c.isdigit() for c in password):
        return False, "Include at least one digit."
    if not any(c in "!@#$%^&*()-_=+[]{}|;:,.<>?/" for c in password):
        return False, "Include at least one symbol."
    return True, None


# Per-process sliding window; move to a shared store when running several workers.
_attempts = defaultdict(deque)


def track_attempt(key: str, limit: int = 10, window_seconds: int = 900, now: float | None = None) -> bool:
    """Record an attempt for ``key``; False once ``limit`` is exceeded inside the window."""
    moment = time.monotonic() if now is None else now
    bucket = _attempts[key]
    while bucket and moment - bucket[0] > window_seconds:
        bucket.popleft()
    bucket.append(moment)
    return len(bucket) <= limit


def reset_attempts(key: str | None = None) -> None:
    if key is None:
        _attempts.clear()
    else:
        _attempts.pop(key, None)
