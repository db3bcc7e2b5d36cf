"""Shared fixtures: an isolated store/cache per test and an in-process upstream."""

import pytest

from qlean.content_resolver import ContentResolver
from qlean.errors import QuranAPIError
from qlean.resolution_cache import ResolutionCache
from qlean.snapshot_store import OfflineSnapshotStore


def make_surah_record(surah_id, verse_count, prefix="text", name=None):
    return {
        "surah_id": surah_id,
        "surah_name": name or f"Surah {surah_id}",
        "verses": [
            {"ayah_number": n, "text": f"{prefix} {surah_id}:{n}"}
            for n in range(1, verse_count + 1)
        ],
    }


class FakeAPI:
    """Stands in for AsyncQuranAPIClient.

    ``verse_counts`` maps surah id -> number of ayahs the upstream returns;
    surahs not listed default to their declared total.
    """

    def __init__(self, surahs=None, error=None, verse_counts=None,
                 missing=None, search_hits=None, search_error=None):
        self.surahs = surahs
        self.error = error
        self.verse_counts = verse_counts or {}
        self.missing = missing or {}
        self.search_hits = search_hits or []
        self.search_error = search_error
        self.calls = []
        self.search_calls = []

    async def fetch_surah(self, surah_id, sources):
        self.calls.append((surah_id, [s.id for s in sources]))
        if self.error is not None:
            raise self.error
        total = self.verse_counts.get(surah_id)
        if total is None:
            total = self.surahs[surah_id - 1].total_ayahs
        canonical = {n: f"arabic {surah_id}:{n}" for n in range(1, total + 1)}
        translated = {}
        for source in sources:
            skip = self.missing.get(source.id, set())
            translated[source.id] = {
                n: f"{source.id} {surah_id}:{n}" for n in range(1, total + 1) if n not in skip
            }
        return canonical, translated

    async def search(self, query, size=20):
        self.search_calls.append(query)
        if self.search_error is not None:
            raise self.search_error
        return self.search_hits[:size]


@pytest.fixture
def cache():
    return ResolutionCache()


@pytest.fixture
def store(tmp_path, cache):
    store = OfflineSnapshotStore(str(tmp_path / "data"), cache=cache)
    store.ensure_layout()
    return store


@pytest.fixture
def make_resolver(store, cache):
    def _make(api=None, **kwargs):
        resolver = ContentResolver(store, api or FakeAPI(), cache=cache, **kwargs)
        if isinstance(resolver.api, FakeAPI) and resolver.api.surahs is None:
            resolver.api.surahs = resolver.list_surahs()
        return resolver
    return _make


@pytest.fixture
def offline_api():
    return FakeAPI(error=QuranAPIError("network down"),
                   search_error=QuranAPIError("network down"))


class FakeResponse:
    """aiohttp-style response; a payload that is an exception is raised by ``json()``."""

    def __init__(self, status, payload=None):
        self.status = status
        self.payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def json(self, content_type=None):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """Routes each GET through ``handler(url, params)``."""

    def __init__(self, handler):
        self.handler = handler
        self.requests = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def get(self, url, params=None):
        self.requests.append((url, dict(params or {})))
        return self.handler(url, params or {})
