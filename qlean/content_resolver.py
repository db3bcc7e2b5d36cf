# qlean/content_resolver.py
import re
import logging
import unicodedata
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import QuranAPIError, SurahNotFoundError
from .models import Ayah, AyahMatch, OfflineSnapshot, Surah, SurahInfo, TranslationSource
from .resolution_cache import ResolutionCache, snapshot_key, surah_key, translation_key
from .snapshot_store import OfflineSnapshotStore
from .surah_metadata import TOTAL_SURAHS, load_surah_metadata
from .translations import CANONICAL_SOURCE_ID, TRANSLATIONS, validate_translations

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[\W_]+")


def merge_ayahs(total_ayahs: int, canonical: Dict[int, str],
                translated: Dict[str, Dict[int, str]],
                translation_ids: Sequence[str]) -> List[Ayah]:
    """Join Arabic text and translations on ayah number.

    Every id in ``translation_ids`` appears in every ayah; a source without
    that ayah contributes "". Ayahs beyond ``total_ayahs`` are dropped.
    """
    ayahs = []
    for number in sorted(canonical):
        if not 1 <= number <= total_ayahs:
            logger.warning("Dropping ayah %d outside 1..%d", number, total_ayahs)
            continue
        ayahs.append(Ayah(
            number=number,
            text=canonical[number] or "",
            translations={tid: (translated.get(tid) or {}).get(number) or "" for tid in translation_ids},
        ))
    return ayahs


def normalize_search_text(text: str) -> str:
    """Casefold and strip combining marks (harakat) so bare-letter queries match."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


def _compact(text: str) -> str:
    return _NON_WORD.sub("", (text or "").casefold())


class ContentResolver:
    """Decides, per request, between the resolution cache, offline snapshots
    and the remote API, and merges translation variants.

    ``api`` must provide ``async fetch_surah(surah_id, sources)`` and
    ``async search(query, size)`` (see AsyncQuranAPIClient).
    """

    def __init__(self, store: OfflineSnapshotStore, api,
                 cache: Optional[ResolutionCache] = None,
                 translations: Optional[Iterable[TranslationSource]] = None,
                 surahs: Optional[Sequence[SurahInfo]] = None,
                 search_limit: int = 50):
        self.store = store
        self.api = api
        self.cache = cache if cache is not None else ResolutionCache()
        self.translations = validate_translations(TRANSLATIONS if translations is None else translations)
        self.search_limit = search_limit
        self._reference = surahs
        self._surah_list: Optional[List[SurahInfo]] = None

    @property
    def translation_ids(self) -> List[str]:
        return [source.id for source in self.translations]

    # --- Surah metadata ---

    def list_surahs(self) -> List[SurahInfo]:
        """All surahs, metadata only. Built once, then returned by reference."""
        if self._surah_list is None:
            self._surah_list = list(self._reference) if self._reference is not None else load_surah_metadata()
        return self._surah_list

    def get_surah_info(self, surah_id) -> SurahInfo:
        number = self._validate_id(surah_id)
        return self.list_surahs()[number - 1]

    @staticmethod
    def _validate_id(surah_id) -> int:
        if isinstance(surah_id, str) and surah_id.strip().isdigit():
            surah_id = int(surah_id)
        if isinstance(surah_id, bool) or not isinstance(surah_id, int):
            raise SurahNotFoundError(surah_id)
        if not 1 <= surah_id <= TOTAL_SURAHS:
            raise SurahNotFoundError(surah_id)
        return surah_id

    def search_surahs(self, query: str) -> List[SurahInfo]:
        """Case-insensitive substring match on every display name."""
        surahs = self.list_surahs()
        q = (query or "").strip()
        if not q:
            return list(surahs)

        needle = q.casefold()
        compact = _compact(q)
        return [
            surah for surah in surahs
            if needle in surah.name.casefold()
            or needle in surah.transliteration.casefold()
            or needle in surah.translation.casefold()
            or (compact and compact in _compact(surah.transliteration))
        ]

    # --- Surah content ---

    async def get_surah(self, surah_id) -> Surah:
        """Resolve a surah with its ayahs.

        Raises SurahNotFoundError for ids outside 1..114. For a valid id this
        always returns a Surah: remote data when the upstream answers, offline
        snapshot data when it doesn't, and a degraded Surah (no ayahs)
        otherwise.
        """
        info = self.get_surah_info(surah_id)
        key = surah_key(info.id)

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            canonical, translated = await self.api.fetch_surah(info.id, self.translations)
            ayahs = merge_ayahs(info.total_ayahs, canonical, translated, self.translation_ids)
            if not ayahs:
                raise QuranAPIError(f"Upstream returned no ayahs for surah {info.id}")
        except QuranAPIError as e:
            logger.warning("Error fetching surah %d: %s", info.id, e)
            return self._offline_surah(info) or self._degraded_surah(info)

        if len(ayahs) < info.total_ayahs:
            logger.warning("Surah %d resolved with %d of %d ayahs", info.id, len(ayahs), info.total_ayahs)

        surah = Surah(**info.model_dump(), ayahs=ayahs, source="remote")
        self.cache.put(key, surah)
        return surah

    def _offline_surah(self, info: SurahInfo) -> Optional[Surah]:
        canonical = self.get_offline_translation(CANONICAL_SOURCE_ID, info.id)
        if not canonical:
            return None

        translated = {}
        for translation_id in self.translation_ids:
            verses = self.get_offline_translation(translation_id, info.id)
            if verses:
                translated[translation_id] = verses

        ayahs = merge_ayahs(info.total_ayahs, canonical, translated, self.translation_ids)
        logger.info("Serving surah %d from offline snapshots", info.id)
        return Surah(**info.model_dump(), ayahs=ayahs, source="offline")

    @staticmethod
    def _degraded_surah(info: SurahInfo) -> Surah:
        logger.warning("Returning surah %d without ayahs", info.id)
        return Surah(**info.model_dump(), ayahs=[], source="degraded", degraded=True)

    # --- Offline snapshots ---

    def _load_snapshot(self, translation_id: str) -> Optional[OfflineSnapshot]:
        key = snapshot_key(translation_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        if translation_id not in self.store.list_available_translation_ids():
            return None
        snapshot = self.store.read_snapshot(translation_id)
        if snapshot is not None:
            self.cache.put(key, snapshot)
        return snapshot

    def get_offline_translation(self, translation_id: str, surah_id: int) -> Optional[Dict[int, str]]:
        """ayah number -> text for one translation of one surah, from its snapshot."""
        key = translation_key(translation_id, surah_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        snapshot = self._load_snapshot(translation_id)
        verses = snapshot.verse_map(surah_id) if snapshot else None
        if verses is not None:
            self.cache.put(key, verses)
        return verses

    # --- Ayah search ---

    async def search_ayahs(self, query: str) -> List[AyahMatch]:
        """Find ayahs whose Arabic text contains ``query``.

        Offline snapshots are searched first; the remote search is only used
        when they produce no match.
        """
        q = (query or "").strip()
        if not q:
            return []

        matches = self._search_offline(q)
        if matches:
            return matches

        try:
            hits = await self.api.search(q, self.search_limit)
        except QuranAPIError as e:
            logger.warning("Remote search for %r failed: %s", q, e)
            return []

        results = []
        for hit in hits[:self.search_limit]:
            if not 1 <= hit["surah_id"] <= TOTAL_SURAHS:
                continue
            info = self.list_surahs()[hit["surah_id"] - 1]
            results.append(AyahMatch(
                surah_id=info.id,
                surah_name=info.transliteration,
                ayah_number=hit["ayah_number"],
                text=hit["text"],
                source="remote",
            ))
        return results

    def _search_offline(self, query: str) -> List[AyahMatch]:
        snapshot = self._load_snapshot(CANONICAL_SOURCE_ID)
        if snapshot is None:
            return []

        needle = normalize_search_text(query)
        surahs = self.list_surahs()
        matches = []
        for surah_id in sorted(snapshot.surahs):
            for verse in snapshot.surahs[surah_id].verses:
                if needle in normalize_search_text(verse.text):
                    matches.append(AyahMatch(
                        surah_id=surah_id,
                        surah_name=surahs[surah_id - 1].transliteration,
                        ayah_number=verse.ayah_number,
                        text=verse.text,
                        source="offline",
                    ))
                    if len(matches) >= self.search_limit:
                        return matches
        return matches

    # --- Status ---

    def translation_status(self) -> List[dict]:
        """Offline availability and last update per configured translation (informational)."""
        available = self.store.list_available_translation_ids()
        metadata = self.store.read_metadata().get("translations", {})
        return [
            {
                "id": source.id,
                "label": source.label,
                "language": source.language,
                "default": source.default,
                "offline": source.id in available,
                "lastUpdated": (metadata.get(source.id) or {}).get("lastUpdated"),
            }
            for source in self.translations
        ]

    def clear_cache(self) -> None:
        self.cache.clear()
        self._surah_list = None
