"""
TrustModel Port
===============

Abstract interface for weighting a data point in the consensus vote.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from permissionless_oracle.domain.entities import DataPoint


class TrustModel(ABC):
    """
    Port for vote weighting.

    Implementations return a non-negative weight no greater than the
    data point's confidence scale (0.0 - 1.0).
    """

    @abstractmethod
    def weight(self, data_point: DataPoint) -> float:
        """Return the vote weight for ``data_point``."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Name recorded in the proof trail."""
        ...
