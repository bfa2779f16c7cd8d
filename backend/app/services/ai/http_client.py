"""
Shared async HTTP transport for provider adapters.

Design constraints:
- Plain HTTP (httpx) against each backend's REST API, no vendor SDKs
- Every call has a timeout and passes through a per-provider circuit breaker
- Every failure surfaces as a ProviderError with a code and HTTP status

Status mapping:
- 429                       -> RATE_LIMIT_EXCEEDED
- 502 / 503 / 504 / 529     -> SERVICE_UNAVAILABLE
- other 5xx                 -> SERVER_ERROR
- 400                       -> BAD_REQUEST
- 401 / 403                 -> AUTH_FAILED
- 404                       -> NOT_FOUND
- other 4xx                 -> CLIENT_ERROR
- timeout                   -> TIMEOUT
- network error, open circuit -> SERVICE_UNAVAILABLE
- non-JSON body             -> MALFORMED_RESPONSE
"""
import time
from typing import Any, Dict, Optional

import httpx

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from app.core.logging import get_logger
from app.core.metrics import record_provider_error, record_provider_request
from app.services.ai.schema import ProviderError, ProviderErrorCode, ProviderKind

logger = get_logger(__name__)

_UNAVAILABLE_STATUSES = {502, 503, 504, 529}


def error_code_for_status(status: int) -> ProviderErrorCode:
    if status == 429:
        return ProviderErrorCode.RATE_LIMIT_EXCEEDED
    if status in _UNAVAILABLE_STATUSES:
        return ProviderErrorCode.SERVICE_UNAVAILABLE
    if status >= 500:
        return ProviderErrorCode.SERVER_ERROR
    if status == 400:
        return ProviderErrorCode.BAD_REQUEST
    if status in (401, 403):
        return ProviderErrorCode.AUTH_FAILED
    if status == 404:
        return ProviderErrorCode.NOT_FOUND
    return ProviderErrorCode.CLIENT_ERROR


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)[:200]
        if error:
            return str(error)[:200]
    return str(body)[:200]


class ProviderHTTPClient:
    """Async JSON POST client for one provider backend."""

    def __init__(
        self,
        provider: ProviderKind,
        api_base: str,
        timeout_seconds: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.provider = provider
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            name=f"provider_{provider.value}",
            failure_threshold=0.5,
            time_window_seconds=60,
            open_duration_seconds=30,
            half_open_test_percentage=0.1,
        )

    def _fail(
        self,
        code: ProviderErrorCode,
        message: str,
        http_status: Optional[int] = None,
    ) -> ProviderError:
        record_provider_error(self.provider.value, code.value)
        return ProviderError(code, message, http_status=http_status, provider=self.provider)

    async def _send(self, path: str, headers: Dict[str, str], payload: Dict[str, Any]) -> httpx.Response:
        """POST helper isolated for the circuit breaker. Raises on 429 and 5xx so they count as failures."""
        url = f"{self.api_base}{path}"
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(url, headers=headers, json=payload)
        if response.status_code == 429 or response.status_code >= 500:
            response.raise_for_status()
        return response

    async def post_json(
        self,
        path: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        POST a JSON payload and return the decoded JSON body.

        Raises:
            ProviderError on any transport, status or decoding failure.
        """
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})

        provider = self.provider.value
        start = time.time()
        success = False
        try:
            try:
                response: httpx.Response = await self.circuit_breaker.call_async(
                    self._send, path, request_headers, payload
                )
            except CircuitBreakerOpenError as exc:
                logger.warning("provider_circuit_open", provider=provider, state=exc.state.value)
                raise self._fail(ProviderErrorCode.SERVICE_UNAVAILABLE, str(exc)) from exc
            except httpx.TimeoutException as exc:
                logger.warning(
                    "provider_timeout",
                    provider=provider,
                    timeout_seconds=self.timeout_seconds,
                    error_type=type(exc).__name__,
                )
                raise self._fail(
                    ProviderErrorCode.TIMEOUT,
                    f"{provider} provider timed out after {self.timeout_seconds}s",
                ) from exc
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                detail = _error_detail(exc.response)
                logger.warning("provider_http_error", provider=provider, status_code=status, detail=detail)
                raise self._fail(
                    error_code_for_status(status),
                    f"{provider} provider error {status}: {detail}",
                    http_status=status,
                ) from exc
            except httpx.HTTPError as exc:
                logger.warning(
                    "provider_network_error",
                    provider=provider,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise self._fail(
                    ProviderErrorCode.SERVICE_UNAVAILABLE,
                    f"{provider} provider unreachable: {exc}",
                ) from exc

            if response.status_code >= 400:
                detail = _error_detail(response)
                logger.warning(
                    "provider_http_error",
                    provider=provider,
                    status_code=response.status_code,
                    detail=detail,
                )
                raise self._fail(
                    error_code_for_status(response.status_code),
                    f"{provider} provider error {response.status_code}: {detail}",
                    http_status=response.status_code,
                )

            try:
                data = response.json()
            except ValueError as exc:
                raise self._fail(
                    ProviderErrorCode.MALFORMED_RESPONSE,
                    f"{provider} provider returned a non-JSON body",
                    http_status=response.status_code,
                ) from exc
            if not isinstance(data, dict):
                raise self._fail(
                    ProviderErrorCode.MALFORMED_RESPONSE,
                    f"{provider} provider returned an unexpected JSON shape",
                    http_status=response.status_code,
                )

            success = True
            return data
        finally:
            record_provider_request(provider, success, time.time() - start)

    def malformed(self, message: str) -> ProviderError:
        """Build a MALFORMED_RESPONSE error for adapter-level shape checks."""
        logger.warning("provider_malformed_response", provider=self.provider.value, detail=message)
        return self._fail(ProviderErrorCode.MALFORMED_RESPONSE, message)
