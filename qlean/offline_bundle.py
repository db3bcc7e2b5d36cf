# qlean/offline_bundle.py
import logging
import concurrent.futures
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

import tqdm
from colorama import Fore
from pydantic import BaseModel

from .errors import QuranAPIError
from .models import OfflineSurah, OfflineVerse, TranslationSource
from .quran_api_client import QuranAPIClient
from .snapshot_store import OfflineSnapshotStore
from .surah_metadata import TOTAL_SURAHS, load_surah_metadata
from .translations import CANONICAL_SOURCE_ID, TRANSLATIONS

logger = logging.getLogger(__name__)

VerseFetcher = Callable[[int], Dict[int, str]]


class BundleResult(BaseModel):
    source_id: str
    downloaded: List[int] = []
    failed: List[int] = []
    total_surahs: int = 0      # surahs in the snapshot after the write


class OfflineBundleBuilder:
    """Downloads translations from the upstream API into offline snapshots.

    Runs as a batch job; nothing here is called while serving requests.
    """

    def __init__(self, client: QuranAPIClient, store: OfflineSnapshotStore,
                 translations: Iterable[TranslationSource] = TRANSLATIONS,
                 max_workers: int = 3, show_progress: bool = True):
        self.client = client
        self.store = store
        self.translations = list(translations)
        self.max_workers = max_workers
        self.show_progress = show_progress
        self._names: Optional[Dict[int, str]] = None

    def surah_names(self) -> Dict[int, str]:
        """Upstream chapter names, falling back to the bundled reference data."""
        if self._names is None:
            try:
                chapters = self.client.fetch_chapters()
                self._names = {c["id"]: c.get("name_simple") or c.get("name_arabic", "")
                               for c in chapters if "id" in c}
            except QuranAPIError as e:
                logger.warning("Failed to fetch surah metadata, using bundled names: %s", e)
                self._names = {s.id: s.transliteration for s in load_surah_metadata()}
        return self._names

    def _fetch_one(self, fetch: VerseFetcher, surah_id: int) -> Optional[OfflineSurah]:
        verses = fetch(surah_id)
        if not verses:
            return None
        return OfflineSurah(
            surah_id=surah_id,
            surah_name=self.surah_names().get(surah_id, ""),
            verses=[OfflineVerse(ayah_number=n, text=t) for n, t in sorted(verses.items())],
        )

    def _try_fetch(self, fetch: VerseFetcher, surah_id: int) -> Optional[OfflineSurah]:
        try:
            return self._fetch_one(fetch, surah_id)
        except (QuranAPIError, ValueError) as e:
            logger.debug("Surah %d failed: %s", surah_id, e)
            return None

    def _download(self, fetch: VerseFetcher, surah_ids: List[int],
                  desc: str) -> Tuple[Dict[int, OfflineSurah], Set[int]]:
        """Download surahs in parallel, then retry the failures once."""
        downloaded: Dict[int, OfflineSurah] = {}
        failed: Set[int] = set()

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self._try_fetch, fetch, num): num for num in surah_ids}
            with tqdm.tqdm(total=len(surah_ids), desc=Fore.RED + desc + Fore.RESET, unit="surah",
                           colour='red', disable=not self.show_progress) as pbar:
                for future in concurrent.futures.as_completed(futures):
                    surah_num = futures[future]
                    surah = future.result()
                    if surah is None:
                        failed.add(surah_num)
                    else:
                        downloaded[surah_num] = surah
                    pbar.update(1)

        # Retry failed downloads
        if failed:
            logger.warning("Retrying %d failed downloads...", len(failed))
            for surah_num in sorted(failed):
                surah = self._try_fetch(fetch, surah_num)
                if surah is not None:
                    downloaded[surah_num] = surah
                    failed.discard(surah_num)
                else:
                    logger.error("Failed to download surah %d", surah_num)

        return downloaded, failed

    def _build(self, source_id: str, fetch: VerseFetcher, surah_ids: Optional[Iterable[int]],
               meta: dict) -> BundleResult:
        ids = sorted(surah_ids) if surah_ids is not None else list(range(1, TOTAL_SURAHS + 1))
        logger.info("Fetching %s (%d surahs)...", source_id, len(ids))
        self.surah_names()  # resolve once before the worker threads need it

        downloaded, failed = self._download(fetch, ids, source_id)
        result = BundleResult(source_id=source_id, downloaded=sorted(downloaded), failed=sorted(failed))
        if not downloaded:
            logger.error("Nothing downloaded for '%s', snapshot left unchanged", source_id)
            return result

        # Merge with what is already on disk so partial runs accumulate
        existing = self.store.read_snapshot(source_id)
        surahs = dict(existing.surahs) if existing else {}
        surahs.update(downloaded)

        self.store.write_snapshot(source_id, surahs)
        self.store.update_translation_metadata(
            source_id, **meta, surahCount=len(surahs), failed=sorted(failed)
        )
        result.total_surahs = len(surahs)
        logger.info("Saved %s.json (%d surahs, %d failed)", source_id, len(downloaded), len(failed))
        return result

    def build_canonical(self, surah_ids: Optional[Iterable[int]] = None) -> BundleResult:
        meta = {"label": "Arabic (Uthmani)", "language": "arabic"}
        return self._build(CANONICAL_SOURCE_ID, self.client.fetch_canonical, surah_ids, meta)

    def build_translation(self, source: TranslationSource,
                          surah_ids: Optional[Iterable[int]] = None) -> BundleResult:
        meta = {"label": source.label, "language": source.language, "apiId": source.api_id}
        return self._build(source.id, lambda sid: self.client.fetch_translation(sid, source), surah_ids, meta)

    def build_all(self, only_missing: bool = True) -> List[BundleResult]:
        """Build the Arabic text and every configured translation.

        With ``only_missing`` only surahs absent from each snapshot are fetched.
        """
        jobs = [(CANONICAL_SOURCE_ID, lambda ids: self.build_canonical(ids))]
        jobs += [(source.id, lambda ids, source=source: self.build_translation(source, ids))
                 for source in self.translations]

        results = []
        for source_id, build in jobs:
            ids = self.store.missing_surahs(source_id) if only_missing else None
            if ids is not None and not ids:
                logger.info("'%s' already complete, skipping", source_id)
                continue
            results.append(build(ids))
        return results
