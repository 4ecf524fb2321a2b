"""
Trust Models & Weighted Vote
============================

Vote weighting strategies and the weighted consensus over inliers.

Two strategies are provided:
- RawConfidenceTrust: a data point weighs exactly its confidence (default)
- ReputationWeightedTrust: confidence scaled by the source's success rate,
  with a neutral prior for sources that have little history
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import TYPE_CHECKING

from permissionless_oracle.ports.trust_model import TrustModel

if TYPE_CHECKING:
    from permissionless_oracle.domain.entities import DataPoint
    from permissionless_oracle.domain.services.reputation_tracker import ReputationTracker

logger = logging.getLogger(__name__)


class TrustModelName(StrEnum):
    """Configurable trust model identifiers."""

    RAW_CONFIDENCE = auto()
    REPUTATION_WEIGHTED = auto()


class RawConfidenceTrust(TrustModel):
    """Weight each data point by its own confidence."""

    @property
    def model_name(self) -> str:
        return TrustModelName.RAW_CONFIDENCE.value

    def weight(self, data_point: DataPoint) -> float:
        return data_point.confidence


class ReputationWeightedTrust(TrustModel):
    """
    Weight = confidence x smoothed success rate.

    The success rate is shrunk toward ``prior`` with ``prior_weight``
    pseudo-queries, so a brand new source is neither silenced nor
    trusted fully on a single lucky answer.
    """

    def __init__(
        self,
        reputation: ReputationTracker,
        *,
        prior: float = 0.5,
        prior_weight: float = 2.0,
    ) -> None:
        if not 0.0 <= prior <= 1.0:
            raise ValueError("prior must be within [0, 1]")
        self._reputation = reputation
        self._prior = prior
        self._prior_weight = max(prior_weight, 0.0)

    @property
    def model_name(self) -> str:
        return TrustModelName.REPUTATION_WEIGHTED.value

    def weight(self, data_point: DataPoint) -> float:
        record = self._reputation.get(data_point.source_id)
        denominator = record.total_queries + self._prior_weight
        if denominator == 0:
            rate = self._prior
        else:
            rate = (record.correct_count + self._prior * self._prior_weight) / denominator
        return data_point.confidence * rate


@dataclass(frozen=True, slots=True)
class VoteTally:
    """Weighted vote over inlier data points."""

    yes_weight: float
    no_weight: float
    inlier_count: int

    @property
    def total_weight(self) -> float:
        return self.yes_weight + self.no_weight

    @property
    def outcome(self) -> bool:
        # Ties resolve to "no"
        return self.yes_weight > self.no_weight

    @property
    def confidence(self) -> float:
        if self.inlier_count == 0:
            return 0.0
        return min(self.total_weight / self.inlier_count, 1.0)

    @property
    def strength(self) -> float:
        if self.total_weight <= 0:
            return 0.0
        return max(self.yes_weight, self.no_weight) / self.total_weight


def weighted_vote(inliers: Sequence[DataPoint], trust_model: TrustModel) -> VoteTally:
    """Sum trust weights per outcome over ``inliers``."""
    yes = 0.0
    no = 0.0
    for point in inliers:
        w = max(trust_model.weight(point), 0.0)
        if point.outcome:
            yes += w
        else:
            no += w
    return VoteTally(yes_weight=yes, no_weight=no, inlier_count=len(inliers))
