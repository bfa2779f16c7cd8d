"""
Unit tests for rate limiting on the chat message endpoint.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from starlette.datastructures import Headers
from app.core.rate_limit import (
    ABUSE_THRESHOLDS,
    ABUSE_WINDOW_SECONDS,
    MESSAGES_ENDPOINT,
    RATE_LIMITS,
    RateLimitMiddleware,
    get_account_id,
    get_client_ip,
    limited_endpoint,
)


def _request(path="/api/conversations/c1/messages", method="POST", headers=None, host="192.168.1.1", body=b'{"content": "hello"}'):
    request = MagicMock()
    request.method = method
    request.url.path = path
    request.headers = Headers(headers or {})
    request.client = MagicMock()
    request.client.host = host
    request.body = AsyncMock(return_value=body)
    return request


def _redis(count):
    mock_redis = AsyncMock()
    mock_redis.zadd = AsyncMock(return_value=1)
    mock_redis.zremrangebyscore = AsyncMock(return_value=0)
    mock_redis.zcard = AsyncMock(return_value=count)
    mock_redis.expire = AsyncMock(return_value=True)
    return mock_redis


async def _ok(req):
    response = MagicMock()
    response.status_code = 200
    response.headers = {}
    return response


def test_rate_limit_configuration():
    assert RATE_LIMITS[MESSAGES_ENDPOINT]["ip"] == {"limit": 100, "window": 900}
    assert RATE_LIMITS[MESSAGES_ENDPOINT]["account"] == {"limit": 200, "window": 900}
    assert ABUSE_THRESHOLDS["same_message"] == 10


def test_get_client_ip_from_forwarded_for():
    """Test extracting IP from X-Forwarded-For header."""
    request = MagicMock()
    request.headers = Headers({"X-Forwarded-For": "192.168.1.1, 10.0.0.1"})
    request.client = None

    assert get_client_ip(request) == "192.168.1.1"


def test_get_client_ip_from_real_ip():
    request = MagicMock()
    request.headers = Headers({"X-Real-IP": "192.168.1.2"})
    request.client = None

    assert get_client_ip(request) == "192.168.1.2"


def test_get_client_ip_from_client():
    request = _request(headers={}, host="192.168.1.3")

    assert get_client_ip(request) == "192.168.1.3"


def test_get_account_id():
    assert get_account_id(_request(headers={"X-User-ID": " acct-1 "})) == "acct-1"
    assert get_account_id(_request(headers={"X-User-ID": "  "})) is None
    assert get_account_id(_request(headers={})) is None


@pytest.mark.parametrize(
    "method,path,expected",
    [
        ("POST", "/api/conversations/abc/messages", MESSAGES_ENDPOINT),
        ("POST", "/api/conversations/abc/messages/", MESSAGES_ENDPOINT),
        ("GET", "/api/conversations/abc/messages", None),
        ("POST", "/api/conversations", None),
        ("POST", "/api/content/craft", None),
    ],
)
def test_limited_endpoint(method, path, expected):
    assert limited_endpoint(_request(path=path, method=method)) == expected


@pytest.mark.asyncio
async def test_unlimited_endpoint_bypasses_checks():
    mock_redis = _redis(1000)
    middleware = RateLimitMiddleware(MagicMock(), redis_client=mock_redis)

    response = await middleware.dispatch(_request(path="/health/", method="GET"), _ok)

    assert response.status_code == 200
    mock_redis.zadd.assert_not_called()


@pytest.mark.asyncio
async def test_rate_limit_middleware_whitelist():
    """Whitelisted clients bypass rate limiting."""
    mock_redis = _redis(1000)
    middleware = RateLimitMiddleware(MagicMock(), redis_client=mock_redis)
    middleware.add_to_whitelist("192.168.1.1")

    response = await middleware.dispatch(_request(), _ok)

    assert response.status_code == 200
    mock_redis.zadd.assert_not_called()


@pytest.mark.asyncio
async def test_rate_limit_middleware_blacklist():
    """Blacklisted accounts get 403."""
    middleware = RateLimitMiddleware(MagicMock(), redis_client=None)
    middleware.add_to_blacklist("acct-bad")

    response = await middleware.dispatch(_request(headers={"X-User-ID": "acct-bad"}), _ok)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_rate_limit_check_with_redis():
    """Test rate limit check using Redis."""
    middleware = RateLimitMiddleware(MagicMock(), redis_client=_redis(5))

    allowed, remaining, reset_time = await middleware._check_rate_limit(
        identifier="test_ip",
        limit=100,
        window=900,
        endpoint=MESSAGES_ENDPOINT,
    )

    assert allowed is True
    assert remaining == 95


@pytest.mark.asyncio
async def test_rate_limit_allows_request_at_limit():
    middleware = RateLimitMiddleware(MagicMock(), redis_client=_redis(100))

    allowed, remaining, _ = await middleware._check_rate_limit("test_ip", 100, 900, MESSAGES_ENDPOINT)

    assert allowed is True
    assert remaining == 0


@pytest.mark.asyncio
async def test_rate_limit_exceeded():
    middleware = RateLimitMiddleware(MagicMock(), redis_client=_redis(150))

    allowed, remaining, _ = await middleware._check_rate_limit("test_ip", 100, 900, MESSAGES_ENDPOINT)

    assert allowed is False
    assert remaining == 0


@pytest.mark.asyncio
async def test_rate_limit_fails_open_without_redis(monkeypatch):
    monkeypatch.setattr("app.core.rate_limit.get_redis_client", lambda: None)
    middleware = RateLimitMiddleware(MagicMock(), redis_client=None)

    allowed, remaining, _ = await middleware._check_rate_limit("test_ip", 100, 900, MESSAGES_ENDPOINT)

    assert allowed is True
    assert remaining == 100


@pytest.mark.asyncio
async def test_rate_limit_fails_open_on_redis_error():
    mock_redis = _redis(0)
    mock_redis.zadd = AsyncMock(side_effect=ConnectionError("redis down"))
    middleware = RateLimitMiddleware(MagicMock(), redis_client=mock_redis)

    allowed, _, _ = await middleware._check_rate_limit("test_ip", 100, 900, MESSAGES_ENDPOINT)

    assert allowed is True


@pytest.mark.asyncio
async def test_dispatch_returns_429_with_retry_after():
    middleware = RateLimitMiddleware(MagicMock(), redis_client=_redis(101))
    call_next = AsyncMock()

    response = await middleware.dispatch(_request(), call_next)

    assert response.status_code == 429
    assert int(response.headers["Retry-After"]) >= 1
    assert response.headers["X-RateLimit-Limit"] == "100"
    call_next.assert_not_called()


@pytest.mark.asyncio
async def test_dispatch_limits_account_separately():
    mock_redis = _redis(150)
    middleware = RateLimitMiddleware(MagicMock(), redis_client=mock_redis)

    response = await middleware.dispatch(_request(headers={"X-User-ID": "acct-1"}), _ok)

    # 150 is under the account limit but over the IP limit
    assert response.status_code == 429
    assert response.headers["X-RateLimit-Limit"] == "100"


@pytest.mark.asyncio
async def test_dispatch_sets_rate_limit_headers():
    middleware = RateLimitMiddleware(MagicMock(), redis_client=_redis(3))

    response = await middleware.dispatch(_request(), _ok)

    assert response.headers["X-RateLimit-Limit"] == "100"
    assert response.headers["X-RateLimit-Remaining"] == "97"


def test_detect_abuse_same_message():
    middleware = RateLimitMiddleware(MagicMock(), redis_client=None)

    results = [middleware._detect_abuse("client", b'{"content": "spam"}') for _ in range(11)]

    assert results[:10] == [False] * 10
    assert results[10] is True


def test_detect_abuse_ignores_distinct_messages_and_empty_body():
    middleware = RateLimitMiddleware(MagicMock(), redis_client=None)

    assert not any(middleware._detect_abuse("client", f"message {i}".encode()) for i in range(20))
    assert middleware._detect_abuse("client", b"") is False


def test_detect_abuse_evicts_idle_clients(monkeypatch):
    middleware = RateLimitMiddleware(MagicMock(), redis_client=None)
    clock = {"now": 1000.0}
    monkeypatch.setattr("app.core.rate_limit.time.time", lambda: clock["now"])

    middleware._detect_abuse("idle-client", b'{"content": "hello"}')
    clock["now"] += ABUSE_WINDOW_SECONDS + 1
    middleware._detect_abuse("active-client", b'{"content": "hello"}')

    assert set(middleware._message_history) == {"active-client"}
