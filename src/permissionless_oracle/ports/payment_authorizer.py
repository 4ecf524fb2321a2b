"""
PaymentAuthorizer Port
======================

Abstract interface for obtaining a spend authorization before a paid
source query. Denial means "skip this source", never a fatal error.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from permissionless_oracle.domain.entities import PaymentToken


class PaymentAuthorizer(ABC):
    """Port for per-query spend authorization."""

    @abstractmethod
    async def authorize(self, source_id: str, amount: float) -> PaymentToken:
        """
        Authorize spending ``amount`` on one query to ``source_id``.

        Raises:
            PaymentDenied: If the spend is not authorized.
        """
        ...


class PaymentDenied(Exception):
    """Raised when a payment authorization is refused."""

    pass
