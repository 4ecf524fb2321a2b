"""
Budget Payment Ledger
=====================

In-process PaymentAuthorizer that issues spend tokens against a total
spend limit and a per-call ceiling. Stands in front of a real payment
rail; every authorization is recorded for audit.
"""

from __future__ import annotations

import asyncio
import logging
from uuid import uuid4

from permissionless_oracle.domain.entities import PaymentToken
from permissionless_oracle.ports.payment_authorizer import PaymentAuthorizer, PaymentDenied

logger = logging.getLogger(__name__)


class BudgetPaymentAuthorizer(PaymentAuthorizer):
    """Authorizes spends until the configured limit is used up."""

    def __init__(
        self,
        spend_limit: float | None = None,
        max_per_call: float | None = None,
        *,
        blocked_sources: set[str] | None = None,
    ) -> None:
        """
        Initialize the ledger.

        Args:
            spend_limit: Total amount that may be authorized (None = unlimited).
            max_per_call: Largest single authorization (None = unlimited).
            blocked_sources: Source ids that are always denied.
        """
        self._spend_limit = spend_limit
        self._max_per_call = max_per_call
        self._blocked = set(blocked_sources or ())
        self._spent = 0.0
        self._tokens: list[PaymentToken] = []
        self._lock = asyncio.Lock()

    @property
    def spent(self) -> float:
        return self._spent

    @property
    def remaining(self) -> float | None:
        if self._spend_limit is None:
            return None
        return max(self._spend_limit - self._spent, 0.0)

    @property
    def tokens(self) -> list[PaymentToken]:
        return list(self._tokens)

    def block(self, source_id: str) -> None:
        self._blocked.add(source_id)

    async def authorize(self, source_id: str, amount: float) -> PaymentToken:
        if amount < 0:
            raise PaymentDenied(f"Negative amount {amount} for {source_id}")
        if source_id in self._blocked:
            raise PaymentDenied(f"Source {source_id} is blocked")
        if self._max_per_call is not None and amount > self._max_per_call:
            raise PaymentDenied(
                f"Amount {amount:.4f} for {source_id} exceeds per-call limit {self._max_per_call:.4f}"
            )

        async with self._lock:
            if self._spend_limit is not None and self._spent + amount > self._spend_limit + 1e-9:
                raise PaymentDenied(
                    f"Spend limit reached ({self._spent:.4f} of {self._spend_limit:.4f})"
                )
            self._spent += amount
            token = PaymentToken(token=uuid4().hex, source_id=source_id, amount=amount)
            self._tokens.append(token)

        logger.debug(f"Authorized {amount:.4f} for {source_id} (total {self._spent:.4f})")
        return token
