"""
Unit Tests for the Content Resolver
"""

import asyncio

import pytest

from qlean.content_resolver import merge_ayahs, normalize_search_text
from qlean.errors import QuranAPIError, SurahNotFoundError
from qlean.quran_api_client import AsyncQuranAPIClient
from qlean.surah_metadata import TOTAL_SURAHS
from qlean.translations import TRANSLATIONS

from conftest import FakeAPI, FakeResponse, FakeSession, make_surah_record

ALL_TRANSLATION_IDS = {source.id for source in TRANSLATIONS}

FATIHAH_ARABIC = [
    "بِسْمِ ٱللَّهِ ٱلرَّحْمَٰنِ ٱلرَّحِيمِ",
    "ٱلْحَمْدُ لِلَّهِ رَبِّ ٱلْعَٰلَمِينَ",
    "ٱلرَّحْمَٰنِ ٱلرَّحِيمِ",
    "مَٰلِكِ يَوْمِ ٱلدِّينِ",
    "إِيَّاكَ نَعْبُدُ وَإِيَّاكَ نَسْتَعِينُ",
    "ٱهْدِنَا ٱلصِّرَٰطَ ٱلْمُسْتَقِيمَ",
    "صِرَٰطَ ٱلَّذِينَ أَنْعَمْتَ عَلَيْهِمْ غَيْرِ ٱلْمَغْضُوبِ عَلَيْهِمْ وَلَا ٱلضَّآلِّينَ",
]


def fatihah_record():
    return {
        "surah_id": 1,
        "surah_name": "Al-Fatihah",
        "verses": [{"ayah_number": n, "text": t} for n, t in enumerate(FATIHAH_ARABIC, start=1)],
    }


class TestMergeAyahs:
    def test_every_translation_id_present(self):
        ayahs = merge_ayahs(2, {1: "a", 2: "b"}, {"sahih": {1: "one"}}, ["sahih", "mujibur"])
        assert [a.translations for a in ayahs] == [
            {"sahih": "one", "mujibur": ""},
            {"sahih": "", "mujibur": ""},
        ]

    def test_extra_ayahs_dropped(self):
        ayahs = merge_ayahs(2, {3: "c", 1: "a", 2: "b"}, {}, [])
        assert [a.number for a in ayahs] == [1, 2]

    def test_translations_without_arabic_ignored(self):
        ayahs = merge_ayahs(3, {1: "a"}, {"sahih": {1: "x", 2: "y"}}, ["sahih"])
        assert len(ayahs) == 1


class TestNormalizeSearchText:
    def test_strips_harakat(self):
        assert normalize_search_text("بِسْمِ") == "بسم"

    def test_casefolds(self):
        assert normalize_search_text("Praise") == normalize_search_text("pRAISE")


class TestSurahMetadata:
    def test_list_has_every_surah(self, make_resolver):
        surahs = make_resolver().list_surahs()
        assert [s.id for s in surahs] == list(range(1, TOTAL_SURAHS + 1))
        assert sum(s.total_ayahs for s in surahs) == 6236

    def test_list_is_stable(self, make_resolver):
        resolver = make_resolver()
        assert resolver.list_surahs() is resolver.list_surahs()

    def test_empty_query_returns_all(self, make_resolver):
        resolver = make_resolver()
        assert resolver.search_surahs("") == resolver.list_surahs()
        assert resolver.search_surahs("   ") == resolver.list_surahs()

    def test_search_is_case_insensitive(self, make_resolver):
        resolver = make_resolver()
        lower = resolver.search_surahs("fatihah")
        assert lower == resolver.search_surahs("Fatihah")
        assert [s.id for s in lower] == [1]

    @pytest.mark.parametrize("query", ["الفاتحة", "the opening", "alfatihah"])
    def test_search_matches_any_name(self, make_resolver, query):
        assert 1 in [s.id for s in make_resolver().search_surahs(query)]

    def test_search_without_match(self, make_resolver):
        assert make_resolver().search_surahs("zzzz") == []

    @pytest.mark.parametrize("surah_id", [0, 115, -1, "abc", True, None, 1.5])
    def test_invalid_ids(self, make_resolver, surah_id):
        with pytest.raises(SurahNotFoundError):
            make_resolver().get_surah_info(surah_id)

    def test_numeric_string_id(self, make_resolver):
        assert make_resolver().get_surah_info("2").transliteration == "Al-Baqarah"


class TestGetSurah:
    def test_every_surah_has_declared_ayah_count(self, make_resolver):
        resolver = make_resolver()

        async def resolve_all():
            return [await resolver.get_surah(n) for n in range(1, TOTAL_SURAHS + 1)]

        for surah in asyncio.run(resolve_all()):
            assert surah.source == "remote"
            assert len(surah.ayahs) == surah.total_ayahs
            assert [a.number for a in surah.ayahs] == list(range(1, surah.total_ayahs + 1))
            assert set(surah.ayahs[0].translations) == ALL_TRANSLATION_IDS

    @pytest.mark.parametrize("surah_id", [0, 115])
    def test_out_of_range_raises(self, make_resolver, surah_id):
        api = FakeAPI()
        resolver = make_resolver(api)
        with pytest.raises(SurahNotFoundError):
            asyncio.run(resolver.get_surah(surah_id))
        assert api.calls == []

    def test_surplus_upstream_ayahs_truncated(self, make_resolver):
        resolver = make_resolver(FakeAPI(verse_counts={1: 9}))
        surah = asyncio.run(resolver.get_surah(1))
        assert len(surah.ayahs) == 7

    def test_missing_translation_is_empty_string(self, make_resolver):
        resolver = make_resolver(FakeAPI(missing={"sahih": {3}}))
        surah = asyncio.run(resolver.get_surah(1))
        assert surah.ayahs[2].translations["sahih"] == ""
        assert surah.ayahs[3].translations["sahih"] == "sahih 1:4"

    def test_cache_hit_skips_upstream(self, make_resolver):
        api = FakeAPI()
        resolver = make_resolver(api)
        first = asyncio.run(resolver.get_surah(1))
        second = asyncio.run(resolver.get_surah("1"))
        assert first is second
        assert len(api.calls) == 1

    def test_all_translations_requested(self, make_resolver):
        api = FakeAPI()
        asyncio.run(make_resolver(api).get_surah(1))
        assert set(api.calls[0][1]) == ALL_TRANSLATION_IDS

    def test_degraded_without_network_or_snapshots(self, make_resolver, offline_api):
        surah = asyncio.run(make_resolver(offline_api).get_surah(1))
        assert surah.degraded
        assert surah.source == "degraded"
        assert surah.ayahs == []
        assert surah.transliteration == "Al-Fatihah"

    def test_empty_upstream_result_falls_back(self, make_resolver):
        surah = asyncio.run(make_resolver(FakeAPI(verse_counts={1: 0})).get_surah(1))
        assert surah.degraded

    def test_offline_fill(self, make_resolver, store, offline_api):
        store.write_snapshot("uthmani", [fatihah_record()])
        store.write_snapshot("sahih", [make_surah_record(1, 7, prefix="sahih")])
        resolver = make_resolver(offline_api)

        surah = asyncio.run(resolver.get_surah(1))

        assert surah.source == "offline"
        assert not surah.degraded
        assert len(surah.ayahs) == 7
        assert surah.ayahs[0].text == FATIHAH_ARABIC[0]
        for ayah in surah.ayahs:
            assert set(ayah.translations) == ALL_TRANSLATION_IDS
            assert ayah.translations["mujibur"] == ""
        assert surah.ayahs[6].translations["sahih"] == "sahih 1:7"

    def test_offline_fill_is_not_cached(self, make_resolver, store):
        store.write_snapshot("uthmani", [fatihah_record()])
        api = FakeAPI(error=QuranAPIError("down"))
        resolver = make_resolver(api)

        assert asyncio.run(resolver.get_surah(1)).source == "offline"
        api.error = None
        assert asyncio.run(resolver.get_surah(1)).source == "remote"
        assert len(api.calls) == 2

    def test_offline_without_arabic_is_degraded(self, make_resolver, store, offline_api):
        store.write_snapshot("sahih", [make_surah_record(1, 7)])
        assert asyncio.run(make_resolver(offline_api).get_surah(1)).degraded

    def test_programming_errors_in_api_client_propagate(self, make_resolver):
        # Only bugs get here: AsyncQuranAPIClient wraps every upstream failure
        # in QuranAPIError, which falls back to offline or degraded data.
        with pytest.raises(RuntimeError):
            asyncio.run(make_resolver(FakeAPI(error=RuntimeError("bug"))).get_surah(1))


class TestOfflineTranslations:
    def test_lookup(self, make_resolver, store):
        store.write_snapshot("sahih", [make_surah_record(1, 7)])
        resolver = make_resolver()
        assert resolver.get_offline_translation("sahih", 1)[7] == "text 1:7"
        assert resolver.get_offline_translation("sahih", 2) is None
        assert resolver.get_offline_translation("hilali", 1) is None

    def test_new_snapshot_replaces_cached_lookup(self, make_resolver, store):
        store.write_snapshot("sahih", [make_surah_record(1, 7, prefix="old")])
        resolver = make_resolver()
        assert resolver.get_offline_translation("sahih", 1)[1] == "old 1:1"

        store.write_snapshot("sahih", [make_surah_record(1, 7, prefix="new")])

        assert resolver.get_offline_translation("sahih", 1)[1] == "new 1:1"

    def test_translation_status(self, make_resolver, store):
        store.write_snapshot("sahih", [make_surah_record(1, 7)])
        store.update_translation_metadata("sahih", surahCount=1)

        status = {entry["id"]: entry for entry in make_resolver().translation_status()}

        assert set(status) == ALL_TRANSLATION_IDS
        assert status["sahih"]["offline"]
        assert status["sahih"]["default"]
        assert status["sahih"]["lastUpdated"]
        assert not status["mujibur"]["offline"]
        assert status["mujibur"]["lastUpdated"] is None

    def test_translation_status_with_malformed_metadata(self, make_resolver, store):
        store.write_snapshot("sahih", [make_surah_record(1, 7)])
        with open(store.metadata_path, "w", encoding="utf-8") as f:
            f.write('{"translations": []}')
        store.clear_cache()

        status = {entry["id"]: entry for entry in make_resolver().translation_status()}

        assert status["sahih"]["offline"]
        assert status["sahih"]["lastUpdated"] is None


class TestSearchAyahs:
    def test_blank_query(self, make_resolver):
        api = FakeAPI()
        assert asyncio.run(make_resolver(api).search_ayahs("  ")) == []
        assert api.search_calls == []

    def test_offline_match_without_harakat(self, make_resolver, store):
        store.write_snapshot("uthmani", [fatihah_record()])
        api = FakeAPI()

        matches = asyncio.run(make_resolver(api).search_ayahs("بسم"))

        assert [(m.surah_id, m.ayah_number) for m in matches] == [(1, 1)]
        assert matches[0].source == "offline"
        assert matches[0].surah_name == "Al-Fatihah"
        assert api.search_calls == []

    def test_offline_results_capped(self, make_resolver, store):
        store.write_snapshot("uthmani", [fatihah_record()])
        matches = asyncio.run(make_resolver(search_limit=2).search_ayahs("ي"))
        assert len(matches) == 2

    def test_remote_only_when_offline_finds_nothing(self, make_resolver, store):
        store.write_snapshot("uthmani", [fatihah_record()])
        api = FakeAPI(search_hits=[
            {"surah_id": 2, "ayah_number": 255, "text": "ٱللَّهُ لَآ إِلَٰهَ إِلَّا هُوَ"},
            {"surah_id": 500, "ayah_number": 1, "text": "ignored"},
        ])

        matches = asyncio.run(make_resolver(api).search_ayahs("الكرسي"))

        assert api.search_calls == ["الكرسي"]
        assert len(matches) == 1
        assert matches[0].source == "remote"
        assert matches[0].surah_name == "Al-Baqarah"
        assert matches[0].ayah_number == 255

    def test_remote_without_snapshots(self, make_resolver):
        api = FakeAPI(search_hits=[{"surah_id": 1, "ayah_number": 1, "text": "x"}])
        matches = asyncio.run(make_resolver(api).search_ayahs("x"))
        assert [m.source for m in matches] == ["remote"]

    def test_remote_failure_returns_empty(self, make_resolver, offline_api):
        assert asyncio.run(make_resolver(offline_api).search_ayahs("بسم")) == []

    @pytest.mark.parametrize("payload", [
        [1, 2],
        {"search": {"results": ["bad"]}},
        {"search": "bad"},
    ])
    def test_malformed_remote_search_body(self, make_resolver, payload):
        session = FakeSession(lambda url, params: FakeResponse(200, payload))
        api = AsyncQuranAPIClient(base_url="https://example.test/api/v4", session_factory=lambda: session)

        assert asyncio.run(make_resolver(api).search_ayahs("x")) == []
        assert len(session.requests) == 1
