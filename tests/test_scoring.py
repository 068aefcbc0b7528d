import math
from types import SimpleNamespace

import pytest

from buildinglens.schemas import CandidateSource
from buildinglens.services import scoring
from buildinglens.services.scoring import ConfidenceScorer, ScoringWeights


def test_ideal_candidate_scores_high():
    score = scoring.confidence_score(5, 5, CandidateSource.GOOGLE_PLACES, has_name=True, has_rating=True)
    assert score == 100.0


def test_exact_weighted_sum():
    # distance 20m -> exp(-0.5); bearing 52.5 -> 0.5; nominatim 0.6; name only 0.6
    expected = round((math.exp(-0.5) * 0.4 + 0.5 * 0.3 + 0.6 * 0.2 + 0.6 * 0.1) * 100, 2)
    assert scoring.confidence_score(20, 52.5, CandidateSource.NOMINATIM, has_name=True) == expected


def test_missing_heading_gives_neutral_bearing():
    score = scoring.confidence_score(10, None, CandidateSource.GOOGLE_PLACES, has_name=False)
    assert score == 75.0


def test_bearing_component_bounds():
    scorer = ConfidenceScorer()
    assert scorer.bearing_score(0) == 1.0
    assert scorer.bearing_score(15) == 1.0
    assert scorer.bearing_score(52.5) == pytest.approx(0.5)
    assert scorer.bearing_score(90) == 0.0
    assert scorer.bearing_score(180) == 0.0


def test_metadata_component():
    scorer = ConfidenceScorer()
    assert scorer.metadata_score(False, False) == 0.0
    assert scorer.metadata_score(True, False) == 0.6
    assert scorer.metadata_score(False, True) == 0.4
    assert scorer.metadata_score(True, True) == 1.0


def test_score_is_deterministic():
    args = (123.4, 33.3, CandidateSource.GOOGLE_GEOCODING, True, False)
    first = scoring.confidence_score(*args)
    assert all(scoring.confidence_score(*args) == first for _ in range(50))


def test_sources_ranked_by_reliability():
    def score(source):
        return scoring.confidence_score(10, 10, source, has_name=True, has_rating=False)

    places = score(CandidateSource.GOOGLE_PLACES)
    geocoding = score(CandidateSource.GOOGLE_GEOCODING)
    nominatim = score(CandidateSource.NOMINATIM)
    cache = score(CandidateSource.CACHE)

    assert places > geocoding > nominatim
    assert cache > nominatim


def test_source_accepts_plain_strings():
    assert scoring.confidence_score(10, 10, "google_places", True) == scoring.confidence_score(
        10, 10, CandidateSource.GOOGLE_PLACES, True
    )


def test_monotonic_in_distance():
    distances = [0, 5, 10, 10.5, 20, 50, 100, 250, 1000, 10000]
    scores = [scoring.confidence_score(d, 30, CandidateSource.GOOGLE_PLACES, True, True) for d in distances]
    assert scores == sorted(scores, reverse=True)


def test_monotonic_in_bearing_diff():
    diffs = [0, 10, 15, 16, 30, 60, 89, 90, 120, 180]
    scores = [scoring.confidence_score(40, d, CandidateSource.CACHE, True, False) for d in diffs]
    assert scores == sorted(scores, reverse=True)


def test_score_stays_in_range():
    for distance in (0, 1e6):
        for diff in (None, 0, 180):
            for source in CandidateSource:
                for has_name in (True, False):
                    score = scoring.confidence_score(distance, diff, source, has_name, has_name)
                    assert 0 <= score <= 100


def test_injected_weights_change_the_score():
    distance_only = ScoringWeights(distance=1.0, bearing=0.0, source=0.0, metadata=0.0)
    scorer = ConfidenceScorer(distance_only)
    assert scorer.score(5, 170, CandidateSource.NOMINATIM, has_name=False) == 100.0
    assert scorer.score(10 + 20, None, CandidateSource.NOMINATIM, has_name=False) == round(math.exp(-1) * 100, 2)


def test_weights_are_immutable():
    with pytest.raises(Exception):
        scoring.DEFAULT_WEIGHTS.distance = 1.0


def test_weights_dump():
    dump = ScoringWeights().as_dict()
    assert dump["weights"] == {"distance": 0.4, "bearing": 0.3, "source": 0.2, "metadata": 0.1}
    assert dump["sourceWeights"]["google_places"] == 1.0
    assert dump["sourceWeights"]["cache"] == 0.7
    assert dump["bearingParams"]["maxPenalty"] == 90.0


def test_sort_by_confidence_is_stable_and_descending():
    items = [
        SimpleNamespace(name="a", confidence=50.0),
        SimpleNamespace(name="b", confidence=80.0),
        SimpleNamespace(name="c", confidence=50.0),
        SimpleNamespace(name="d", confidence=80.0),
        SimpleNamespace(name="e", confidence=10.0),
    ]
    ordered = scoring.sort_by_confidence(items)
    assert [item.name for item in ordered] == ["b", "d", "a", "c", "e"]


def test_compare_by_confidence():
    high = SimpleNamespace(confidence=90.0)
    low = SimpleNamespace(confidence=10.0)
    assert scoring.compare_by_confidence(high, low) < 0
    assert scoring.compare_by_confidence(low, high) > 0
    assert scoring.compare_by_confidence(high, high) == 0
