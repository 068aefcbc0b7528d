from buildinglens import cache
from buildinglens.cache import IdentifyResultCache, TTLCache, identify_cache_key
from buildinglens.schemas import BuildingCandidate, CandidateSource, Coordinate

POINT = Coordinate(latitude=37.7749, longitude=-122.4194)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def time(self):
        return self.now


def test_ttl_cache_expires(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(cache.time, "time", clock.time)

    store = TTLCache(ttl=10)
    store.set("a", 1)
    store.set("b", 2, ttl=100)
    assert store.get("a") == 1

    clock.now += 11
    assert store.get("a") is None
    assert store.get("b") == 2
    assert len(store) == 1


def test_ttl_cache_delete_and_clear():
    store = TTLCache()
    store.set("a", 1)
    store.set("b", 2)
    store.delete("a")
    assert store.get("a") is None
    store.clear()
    assert store.get("b") is None


def test_identify_cache_key_rounding():
    near = Coordinate(latitude=37.774901, longitude=-122.419402)
    assert identify_cache_key(POINT, None, 100) == "identify:37.77490,-122.41940:100"
    assert identify_cache_key(near, None, 100) == identify_cache_key(POINT, None, 100)
    assert identify_cache_key(POINT, 270.4, 100.0) == "identify:37.77490,-122.41940:h270:100"
    assert identify_cache_key(POINT, 360, 100) == identify_cache_key(POINT, 0, 100)
    assert identify_cache_key(POINT, 90, 100) != identify_cache_key(POINT, 270, 100)
    assert identify_cache_key(POINT, None, 250) != identify_cache_key(POINT, None, 100)


def test_identify_result_cache_returns_snapshots():
    results = IdentifyResultCache(ttl=60)
    candidate = BuildingCandidate(
        external_id="p1",
        name="Ferry Building",
        coordinates=POINT,
        distance=12.5,
        bearing=45.0,
        confidence=88.1,
        source=CandidateSource.GOOGLE_PLACES,
        metadata={"rating": 4.6},
    )

    assert results.get(POINT, 90, 100) is None
    results.set(POINT, 90, 100, [candidate])

    # Later mutation of the caller's object must not change the cached entry.
    candidate.confidence = 1.0
    cached = results.get(POINT, 90, 100)
    assert cached[0].confidence == 88.1
    assert cached[0].source is CandidateSource.GOOGLE_PLACES
    assert results.get(POINT, 270, 100) is None
