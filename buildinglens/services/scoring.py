"""Confidence scoring for building candidates.

The score is a weighted sum of four components, each in [0, 1]:

* distance - 1.0 up to ``optimal_distance`` meters, exponential decay beyond;
* bearing - how well the candidate lines up with the user's heading, or a
  neutral value when no heading was supplied;
* source - a fixed reliability weight per data provider;
* metadata - a bonus for named and rated records.

The weighted sum is reported as a percentage rounded to two decimals.
"""

import math
from dataclasses import asdict, dataclass, field
from functools import cmp_to_key
from typing import Any, Dict, Iterable, List, Mapping, Optional

from buildinglens.schemas import CandidateSource

DEFAULT_SOURCE_WEIGHTS: Mapping[str, float] = {
    CandidateSource.GOOGLE_PLACES.value: 1.0,
    CandidateSource.GOOGLE_GEOCODING.value: 0.8,
    CandidateSource.NOMINATIM.value: 0.6,
    CandidateSource.CACHE.value: 0.7,
}


@dataclass(frozen=True)
class ScoringWeights:
    distance: float = 0.4
    bearing: float = 0.3
    source: float = 0.2
    metadata: float = 0.1

    optimal_distance: float = 10.0
    decay_rate: float = 0.05

    perfect_alignment: float = 15.0
    max_penalty: float = 90.0
    neutral_bearing: float = 0.5

    name_bonus: float = 0.6
    rating_bonus: float = 0.4

    source_weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_SOURCE_WEIGHTS))

    def source_weight(self, source) -> float:
        key = source.value if isinstance(source, CandidateSource) else str(source)
        return self.source_weights.get(key, 0.0)

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "weights": {
                "distance": data["distance"],
                "bearing": data["bearing"],
                "source": data["source"],
                "metadata": data["metadata"],
            },
            "sourceWeights": dict(data["source_weights"]),
            "distanceParams": {
                "optimalDistance": data["optimal_distance"],
                "decayRate": data["decay_rate"],
            },
            "bearingParams": {
                "perfectAlignment": data["perfect_alignment"],
                "maxPenalty": data["max_penalty"],
                "neutral": data["neutral_bearing"],
            },
            "metadataParams": {
                "nameBonus": data["name_bonus"],
                "ratingBonus": data["rating_bonus"],
            },
        }


DEFAULT_WEIGHTS = ScoringWeights()


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class ConfidenceScorer:
    def __init__(self, weights: ScoringWeights = DEFAULT_WEIGHTS):
        self.weights = weights

    def distance_score(self, distance: float) -> float:
        if distance <= self.weights.optimal_distance:
            return 1.0
        excess = distance - self.weights.optimal_distance
        return _clamp(math.exp(-self.weights.decay_rate * excess))

    def bearing_score(self, bearing_diff: Optional[float]) -> float:
        w = self.weights
        if bearing_diff is None:
            return w.neutral_bearing
        if bearing_diff <= w.perfect_alignment:
            return 1.0
        if bearing_diff >= w.max_penalty:
            return 0.0
        return _clamp(1 - (bearing_diff - w.perfect_alignment) / (w.max_penalty - w.perfect_alignment))

    def metadata_score(self, has_name: bool, has_rating: bool = False) -> float:
        score = 0.0
        if has_name:
            score += self.weights.name_bonus
        if has_rating:
            score += self.weights.rating_bonus
        return min(1.0, score)

    def score(
        self,
        distance: float,
        bearing_diff: Optional[float],
        source,
        has_name: bool,
        has_rating: bool = False,
    ) -> float:
        """Return the confidence for one candidate as a percentage in [0, 100]."""
        w = self.weights
        raw = (
            self.distance_score(distance) * w.distance
            + self.bearing_score(bearing_diff) * w.bearing
            + w.source_weight(source) * w.source
            + self.metadata_score(has_name, has_rating) * w.metadata
        )
        return round(max(0.0, min(100.0, raw * 100)), 2)


_default_scorer = ConfidenceScorer()


def confidence_score(
    distance: float,
    bearing_diff: Optional[float],
    source,
    has_name: bool,
    has_rating: bool = False,
) -> float:
    return _default_scorer.score(distance, bearing_diff, source, has_name, has_rating)


def compare_by_confidence(a, b) -> float:
    """Comparator ordering higher confidence first."""
    return b.confidence - a.confidence


def sort_by_confidence(candidates: Iterable) -> List:
    # sorted() is stable, so equal confidences keep their gathering order.
    return sorted(candidates, key=cmp_to_key(compare_by_confidence))
