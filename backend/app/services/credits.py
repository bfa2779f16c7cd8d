"""
Credit ledger collaborator.

A turn reserves one credit before the provider is called. The check and
the decrement happen together under the ledger lock, so two concurrent
turns cannot both spend the last credit. The reservation is committed
once the assistant message is persisted and refunded when the turn fails,
which leaves exactly one credit charged per completed turn and none on
failure. All three operations are idempotent per turn id.

Requests without an account id (no X-User-ID header) are not metered.
"""
import asyncio
import os
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Dict, Optional

from app.core.logging import get_logger
from app.services.ai.schema import InsufficientCreditsError

logger = get_logger(__name__)

# Settled turn ids kept for idempotence; oldest are evicted first
MAX_SETTLED_TURNS = 10_000


class CreditLedger(ABC):
    @abstractmethod
    async def get_balance(self, account_id: str) -> int:
        ...

    @abstractmethod
    async def reserve(self, account_id: str, turn_id: str) -> int:
        """
        Hold one credit for `turn_id`. Returns the remaining balance.

        Raises:
            InsufficientCreditsError: balance is zero and nothing is held yet
        """

    @abstractmethod
    async def commit(self, account_id: str, turn_id: str) -> None:
        """Keep the credit held for `turn_id`."""

    @abstractmethod
    async def refund(self, account_id: str, turn_id: str) -> int:
        """Return the credit held for `turn_id`, if any. Returns the balance."""


class InMemoryCreditLedger(CreditLedger):
    """Process-local balances, each account starting at `default_credits`."""

    def __init__(self, default_credits: int = 10, max_settled_turns: int = MAX_SETTLED_TURNS):
        self.default_credits = default_credits
        self.max_settled_turns = max_settled_turns
        self._balances: Dict[str, int] = {}
        self._pending: Dict[str, str] = {}
        self._settled: "OrderedDict[str, None]" = OrderedDict()
        self._lock = asyncio.Lock()

    async def get_balance(self, account_id: str) -> int:
        return self._balances.get(account_id, self.default_credits)

    async def set_balance(self, account_id: str, balance: int) -> None:
        self._balances[account_id] = balance

    async def reserve(self, account_id: str, turn_id: str) -> int:
        async with self._lock:
            balance = self._balances.get(account_id, self.default_credits)
            if turn_id in self._pending or turn_id in self._settled:
                return balance
            if balance <= 0:
                logger.warning("credits_exhausted", account_id=account_id)
                raise InsufficientCreditsError(account_id)
            balance -= 1
            self._balances[account_id] = balance
            self._pending[turn_id] = account_id
        logger.info("credit_reserved", account_id=account_id, turn_id=turn_id, remaining=balance)
        return balance

    async def commit(self, account_id: str, turn_id: str) -> None:
        async with self._lock:
            if self._pending.pop(turn_id, None) is None:
                return
            self._settle(turn_id)
        logger.info("credit_consumed", account_id=account_id, turn_id=turn_id)

    async def refund(self, account_id: str, turn_id: str) -> int:
        async with self._lock:
            balance = self._balances.get(account_id, self.default_credits)
            if self._pending.pop(turn_id, None) is None:
                return balance
            balance += 1
            self._balances[account_id] = balance
            self._settle(turn_id)
        logger.info("credit_refunded", account_id=account_id, turn_id=turn_id, remaining=balance)
        return balance

    def _settle(self, turn_id: str) -> None:
        self._settled[turn_id] = None
        while len(self._settled) > self.max_settled_turns:
            self._settled.popitem(last=False)


_credit_ledger: Optional[CreditLedger] = None


def get_credit_ledger() -> CreditLedger:
    """Get global credit ledger."""
    global _credit_ledger
    if _credit_ledger is None:
        default_credits = int(os.getenv("DEFAULT_CREDITS", "10") or "10")
        _credit_ledger = InMemoryCreditLedger(default_credits=default_credits)
    return _credit_ledger
