"""
Rate limiting middleware using Redis sliding window counter.

Applies to POST /api/conversations/{id}/messages only:
- Per IP: 100 requests / 15 minutes
- Per account (X-User-ID): 200 requests / 15 minutes
- Abuse detection: same message body >10 times/minute from one client
  (logged and counted, not blocked)

Fails open: when Redis is unavailable or errors, requests are allowed.
"""
import hashlib
import re
import time
from typing import Dict, List, Optional, Set, Tuple
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from app.core.redis_client import get_redis_client
from app.core.logging import get_logger
from app.core.metrics import record_rate_limit_hit, record_abuse_detection

logger = get_logger(__name__)

MESSAGES_ENDPOINT = "/api/conversations/messages"

RATE_LIMITS = {
    MESSAGES_ENDPOINT: {
        "ip": {"limit": 100, "window": 900},
        "account": {"limit": 200, "window": 900},
    },
}

ABUSE_THRESHOLDS = {
    "same_message": 10,  # Same message >10 times/minute
}

ABUSE_WINDOW_SECONDS = 60

_MESSAGES_PATH_RE = re.compile(r"^/api/conversations/[^/]+/messages/?$")


def get_client_ip(request: Request) -> str:
    """Extract client IP from request headers."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First entry is the original client
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def get_account_id(request: Request) -> Optional[str]:
    account_id = request.headers.get("X-User-ID")
    return account_id.strip() if account_id and account_id.strip() else None


def hash_message(body: bytes) -> str:
    """Generate hash for a message body."""
    return hashlib.md5(body).hexdigest()


def limited_endpoint(request: Request) -> Optional[str]:
    """Map a request to its rate-limit bucket, or None when unlimited."""
    if request.method == "POST" and _MESSAGES_PATH_RE.match(request.url.path):
        return MESSAGES_ENDPOINT
    return None


def _mask(identifier: str) -> str:
    return identifier[:10] + "..." if len(identifier) > 10 else identifier


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting middleware using Redis sliding window counter.

    Implements:
    - Per-IP and per-account rate limiting
    - Abuse detection (same message repeated)
    - Whitelist/blacklist support
    """

    def __init__(self, app, redis_client=None):
        super().__init__(app)
        self.redis_client = redis_client
        self.whitelist: Set[str] = set()
        self.blacklist: Set[str] = set()
        self._message_history: Dict[str, List[Tuple[float, str]]] = {}
        self._last_prune = 0.0

    def _redis(self):
        # Redis is connected on startup, after the middleware stack is built
        return self.redis_client or get_redis_client()

    async def dispatch(self, request: Request, call_next):
        endpoint = limited_endpoint(request)
        if endpoint is None:
            return await call_next(request)

        client_ip = get_client_ip(request)
        account_id = get_account_id(request)

        if client_ip in self.blacklist or (account_id and account_id in self.blacklist):
            logger.warning(
                "rate_limit_blacklisted",
                ip=client_ip,
                account_id=account_id,
                endpoint=endpoint,
            )
            return JSONResponse(
                status_code=status.HTTP_403_FORBIDDEN,
                content={"detail": "Access denied"},
            )

        if client_ip in self.whitelist or (account_id and account_id in self.whitelist):
            return await call_next(request)

        config = RATE_LIMITS[endpoint]
        checks = [("ip", client_ip)]
        if account_id:
            checks.append(("account", account_id))

        headers_config = config["ip"]
        remaining = headers_config["limit"]
        reset_time = time.time() + headers_config["window"]
        for limit_type, identifier in checks:
            limit_config = config[limit_type]
            allowed, left, reset = await self._check_rate_limit(
                identifier=identifier,
                limit=limit_config["limit"],
                window=limit_config["window"],
                endpoint=f"{endpoint}:{limit_type}",
            )
            if not allowed:
                record_rate_limit_hit(endpoint, limit_type)
                logger.warning(
                    "rate_limit_exceeded",
                    identifier=_mask(identifier),
                    limit_type=limit_type,
                    endpoint=endpoint,
                )
                retry_after = max(1, int(reset - time.time()))
                response = JSONResponse(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    content={
                        "detail": "Rate limit exceeded",
                        "retry_after": retry_after,
                    },
                )
                response.headers["Retry-After"] = str(retry_after)
                response.headers["X-RateLimit-Limit"] = str(limit_config["limit"])
                response.headers["X-RateLimit-Remaining"] = "0"
                response.headers["X-RateLimit-Reset"] = str(int(reset))
                return response
            if limit_type == "ip":
                remaining, reset_time = left, reset

        body = await request.body()
        self._detect_abuse(client_ip=account_id or client_ip, body=body)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(headers_config["limit"])
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(int(reset_time))
        return response

    async def _check_rate_limit(
        self,
        identifier: str,
        limit: int,
        window: int,
        endpoint: str,
    ) -> Tuple[bool, int, float]:
        """
        Check rate limit using Redis sliding window counter.

        Returns:
            (allowed, remaining, reset_time)
        """
        redis_client = self._redis()
        if not redis_client:
            return True, limit, time.time() + window

        try:
            now = time.time()
            window_start = now - window
            key = f"ratelimit:{endpoint}:{identifier}"

            # Sorted set of request timestamps
            await redis_client.zadd(key, {str(now): now})
            await redis_client.zremrangebyscore(key, 0, window_start)
            count = await redis_client.zcard(key)
            await redis_client.expire(key, window)

            remaining = max(0, limit - count)
            return count <= limit, remaining, now + window

        except Exception as e:
            logger.warning(
                "rate_limit_check_failed",
                identifier=_mask(identifier),
                error=str(e),
                error_type=type(e).__name__,
            )
            return True, limit, time.time() + window

    def _detect_abuse(self, client_ip: str, body: bytes) -> bool:
        """
        Track message bodies per client over the last minute.

        Returns:
            True if the same body was sent more than the threshold
        """
        if not body:
            return False

        message_hash = hash_message(body)
        now = time.time()
        self._prune_message_history(now)
        history = [
            (ts, mh) for ts, mh in self._message_history.get(client_ip, [])
            if now - ts < ABUSE_WINDOW_SECONDS
        ]
        history.append((now, message_hash))
        self._message_history[client_ip] = history

        same_count = sum(1 for _, mh in history if mh == message_hash)
        if same_count > ABUSE_THRESHOLDS["same_message"]:
            record_abuse_detection("same_message")
            logger.warning(
                "abuse_detected_same_message",
                client=_mask(client_ip),
                message_hash=message_hash,
                count=same_count,
            )
            return True
        return False

    def _prune_message_history(self, now: float) -> None:
        """Drop clients with no message inside the abuse window (at most once per window)."""
        if now - self._last_prune < ABUSE_WINDOW_SECONDS:
            return
        self._last_prune = now
        idle = [
            client for client, history in self._message_history.items()
            if not history or now - history[-1][0] >= ABUSE_WINDOW_SECONDS
        ]
        for client in idle:
            del self._message_history[client]

    def add_to_whitelist(self, identifier: str) -> None:
        self.whitelist.add(identifier)
        logger.info("rate_limit_whitelist_added", identifier=_mask(identifier))

    def add_to_blacklist(self, identifier: str) -> None:
        self.blacklist.add(identifier)
        logger.info("rate_limit_blacklist_added", identifier=_mask(identifier))
