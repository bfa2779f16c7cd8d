"""
Fallback policy for failed provider calls.

should_fallback(original, error) is true only when the original provider
is not already the fallback provider and the error is one of:
- rate limiting, service unavailability or timeout
- any 5xx status
- 400 / 401 / 403, which signal backend misconfiguration rather than a
  problem with the user's request

A fallback is attempted at most once per turn.
"""
from typing import FrozenSet

from app.services.ai.schema import ProviderError, ProviderErrorCode, ProviderKind

RETRYABLE_CODES: FrozenSet[ProviderErrorCode] = frozenset({
    ProviderErrorCode.RATE_LIMIT_EXCEEDED,
    ProviderErrorCode.SERVICE_UNAVAILABLE,
    ProviderErrorCode.TIMEOUT,
})

MISCONFIGURATION_STATUSES: FrozenSet[int] = frozenset({400, 401, 403})


class FallbackPolicy:
    def __init__(
        self,
        fallback_provider: ProviderKind = ProviderKind.COMPLEX,
        retryable_codes: FrozenSet[ProviderErrorCode] = RETRYABLE_CODES,
        misconfiguration_statuses: FrozenSet[int] = MISCONFIGURATION_STATUSES,
    ):
        self.fallback_provider = fallback_provider
        self.retryable_codes = retryable_codes
        self.misconfiguration_statuses = misconfiguration_statuses

    def should_fallback(self, original_provider: ProviderKind, error: ProviderError) -> bool:
        if original_provider == self.fallback_provider:
            return False
        if error.code in self.retryable_codes:
            return True
        status = error.http_status
        if status is None:
            return False
        return status >= 500 or status in self.misconfiguration_statuses


_fallback_policy = FallbackPolicy()


def get_fallback_policy() -> FallbackPolicy:
    return _fallback_policy
