"""
Per-client rate limiting and request screening for the HTTP API.

Each (client IP, route prefix) pair owns a token bucket refilled
continuously over one minute. Draining a bucket blocks the IP for the
route's block duration. Requests whose URL, body or proxy headers match
known attack patterns block the IP for the suspicious-content duration
and are rejected with 403.

Usage:
    limiter = RateLimiter()
    app.add_middleware(RateLimiterMiddleware, limiter=limiter)
"""

import json
import logging
import re
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi.responses import JSONResponse

from vetchat.config import RateLimitConfig, settings

logger = logging.getLogger(__name__)

REFILL_INTERVAL_SEC = 60.0
MAX_PROXY_HEADER_LENGTH = 200
MAX_SECURITY_EVENTS = 1000

SUSPICIOUS_PATTERNS = [
    re.compile(r"(<script|javascript:|onerror=|onclick=)", re.IGNORECASE),  # XSS
    re.compile(r"(union.*select|drop.*table|insert.*into)", re.IGNORECASE),  # SQL injection
    re.compile(r"(\.\./|\.\.\\|%2e%2e)", re.IGNORECASE),  # path traversal
    re.compile(r"(\$\{|`|\\x|\\u0)", re.IGNORECASE),  # code injection
]

NULL_BYTE_MARKERS = ("\\x00", "%00", "\x00")
PROXY_HEADERS = (b"x-forwarded-for", b"x-real-ip", b"referer")

SECURITY_HEADERS = [
    (b"x-xss-protection", b"1; mode=block"),
    (b"x-frame-options", b"DENY"),
    (b"x-content-type-options", b"nosniff"),
    (b"referrer-policy", b"strict-origin-when-cross-origin"),
    (b"content-security-policy", b"default-src 'self'"),
]


@dataclass(frozen=True)
class RouteBudget:
    requests_per_minute: int
    block_sec: float


@dataclass
class TokenBucket:
    tokens: float
    last_refill: float


@dataclass
class Verdict:
    """Outcome of screening one request."""

    allowed: bool
    status: int = 200
    error: str = ""
    message: str = ""
    retry_after: Optional[int] = None


class RateLimiter:
    """Token buckets, IP blocks and the security event log."""

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or settings.rate_limits
        self._clock = clock
        self._budgets: dict[str, RouteBudget] = {
            "/api/chat": RouteBudget(self._config.chat_per_minute, self._config.chat_block_sec),
            "/api/appointments": RouteBudget(
                self._config.appointments_per_minute, self._config.appointments_block_sec
            ),
            "/api/health": RouteBudget(self._config.health_per_minute, self._config.health_block_sec),
        }
        self._default = RouteBudget(self._config.default_per_minute, self._config.default_block_sec)
        self._buckets: dict[tuple[str, str], TokenBucket] = {}
        self._blocked: dict[str, float] = {}
        self._events: deque[dict[str, Any]] = deque(maxlen=MAX_SECURITY_EVENTS)
        self._lock = threading.Lock()

    def route_key(self, path: str) -> str:
        for prefix in self._budgets:
            if path.startswith(prefix):
                return prefix
        return "default"

    def budget_for(self, route: str) -> RouteBudget:
        return self._budgets.get(route, self._default)

    # --- Blocking ---

    def block(self, ip: str, duration_sec: float) -> None:
        with self._lock:
            self._blocked[ip] = self._clock() + duration_sec
        logger.warning("Blocked %s for %.0fs", ip, duration_sec)

    def blocked_for(self, ip: str) -> float:
        """Seconds left on the IP's block, 0 when not blocked."""
        with self._lock:
            until = self._blocked.get(ip)
            if until is None:
                return 0.0
            remaining = until - self._clock()
            if remaining <= 0:
                del self._blocked[ip]
                return 0.0
            return remaining

    # --- Token buckets ---

    def consume(self, ip: str, route: str) -> bool:
        """Take one token from the bucket for ``ip`` on ``route``."""
        budget = self.budget_for(route)
        now = self._clock()
        key = (ip, route)
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucket(tokens=float(budget.requests_per_minute), last_refill=now)
                self._buckets[key] = bucket
            elapsed = now - bucket.last_refill
            refill = elapsed / REFILL_INTERVAL_SEC * budget.requests_per_minute
            bucket.tokens = min(float(budget.requests_per_minute), bucket.tokens + refill)
            bucket.last_refill = now
            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return True
            return False

    # --- Screening ---

    def is_suspicious(
        self, url: str, body: bytes = b"", headers: Optional[dict[bytes, bytes]] = None
    ) -> bool:
        if any(p.search(url) for p in SUSPICIOUS_PATTERNS):
            return True

        if body:
            text = body.decode("utf-8", errors="replace")
            payload: Any = None
            try:
                payload = json.loads(text)
                text = json.dumps(payload, ensure_ascii=False)
            except ValueError:
                pass
            if any(p.search(text) for p in SUSPICIOUS_PATTERNS):
                return True
            if any(marker in text for marker in NULL_BYTE_MARKERS):
                return True
            if isinstance(payload, dict):
                message = payload.get("message")
                if isinstance(message, str) and len(message) > self._config.max_message_length:
                    return True

        for name in PROXY_HEADERS:
            value = (headers or {}).get(name)
            if value is not None and len(value) > MAX_PROXY_HEADER_LENGTH:
                return True
        return False

    def check(
        self,
        ip: str,
        path: str,
        url: str,
        body: bytes = b"",
        headers: Optional[dict[bytes, bytes]] = None,
        method: str = "GET",
    ) -> Verdict:
        """Decide whether a request may reach the application."""
        remaining = self.blocked_for(ip)
        if remaining > 0:
            seconds = int(remaining + 0.999)
            return Verdict(
                allowed=False,
                status=429,
                error="Too many requests",
                message=f"You have been temporarily blocked. Try again in {seconds} seconds.",
                retry_after=seconds,
            )

        if self.is_suspicious(url, body, headers):
            self._record_event(ip, "suspicious_content", path, method, body)
            self.block(ip, self._config.suspicious_block_sec)
            return Verdict(
                allowed=False,
                status=403,
                error="Forbidden",
                message="Your request contains invalid characters.",
            )

        route = self.route_key(path)
        if not self.consume(ip, route):
            budget = self.budget_for(route)
            self.block(ip, budget.block_sec)
            return Verdict(
                allowed=False,
                status=429,
                error="Rate limit exceeded",
                message="Too many requests. Please slow down.",
                retry_after=int(budget.block_sec),
            )
        return Verdict(allowed=True)

    def _record_event(self, ip: str, kind: str, path: str, method: str, body: bytes) -> None:
        event = {
            "timestamp": time.time(),
            "ip": ip,
            "type": kind,
            "path": path,
            "method": method,
            "body": body[:200].decode("utf-8", errors="replace") if body else None,
        }
        with self._lock:
            self._events.append(event)
        logger.warning("Security event %s from %s on %s %s", kind, ip, method, path)

    # --- Housekeeping ---

    def sweep(self) -> int:
        """Drop idle buckets and lapsed blocks. Returns the number of buckets removed."""
        now = self._clock()
        idle_cutoff = now - self._config.bucket_idle_sec
        with self._lock:
            idle = [key for key, bucket in self._buckets.items() if bucket.last_refill < idle_cutoff]
            for key in idle:
                del self._buckets[key]
            for ip in [ip for ip, until in self._blocked.items() if until <= now]:
                del self._blocked[ip]
        if idle:
            logger.debug("Rate limiter dropped %d idle buckets", len(idle))
        return len(idle)

    def get_statistics(self) -> dict[str, int]:
        with self._lock:
            return {
                "active_buckets": len(self._buckets),
                "blocked_ips": len(self._blocked),
                "security_events": len(self._events),
            }


def client_ip(scope: dict[str, Any]) -> str:
    """First x-forwarded-for hop, then x-real-ip, then the socket peer."""
    headers = dict(scope.get("headers") or [])
    forwarded = headers.get(b"x-forwarded-for")
    if forwarded:
        return forwarded.decode("latin-1").split(",")[0].strip()
    real_ip = headers.get(b"x-real-ip")
    if real_ip:
        return real_ip.decode("latin-1").strip()
    client = scope.get("client")
    return client[0] if client else "127.0.0.1"


class RateLimiterMiddleware:
    """ASGI middleware applying a RateLimiter to every HTTP request."""

    def __init__(self, app, limiter: Optional[RateLimiter] = None):
        self.app = app
        self.limiter = limiter or RateLimiter()

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        body = b""
        if scope.get("method") in ("POST", "PUT", "PATCH"):
            body = await self._read_body(receive)
            receive = self._replay(body, receive)

        path = scope.get("path", "")
        query = scope.get("query_string", b"").decode("latin-1")
        url = f"{path}?{query}" if query else path
        verdict = self.limiter.check(
            ip=client_ip(scope),
            path=path,
            url=url,
            body=body,
            headers=dict(scope.get("headers") or []),
            method=scope.get("method", "GET"),
        )

        if not verdict.allowed:
            content: dict[str, Any] = {"error": verdict.error, "message": verdict.message}
            headers = {}
            if verdict.retry_after is not None:
                content["retryAfter"] = verdict.retry_after
                headers["Retry-After"] = str(verdict.retry_after)
            response = JSONResponse(content, status_code=verdict.status, headers=headers)
            await response(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message = dict(message)
                message["headers"] = list(message.get("headers", [])) + SECURITY_HEADERS
            await send(message)

        await self.app(scope, receive, send_with_headers)

    @staticmethod
    async def _read_body(receive) -> bytes:
        chunks = []
        while True:
            message = await receive()
            if message["type"] != "http.request":
                break
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break
        return b"".join(chunks)

    @staticmethod
    def _replay(body: bytes, receive):
        sent = False

        async def replay():
            nonlocal sent
            if not sent:
                sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        return replay
