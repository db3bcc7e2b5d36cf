# qlean/quran_api_client.py
import re
import time
import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import aiohttp
import requests

from .config import API_BASE
from .errors import QuranAPIError, RateLimitedError
from .models import TranslationSource

logger = logging.getLogger(__name__)

USER_AGENT = "QLean/1.0"
PER_PAGE = 50
CANONICAL_FIELD = "text_uthmani"

_FOOTNOTE = re.compile(r"<sup[^>]*>.*?</sup>", re.S)
_TAG = re.compile(r"<[^>]+>")


def backoff_delay(attempt: int, base: float = 2.0) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based): 2, 4, 8..."""
    return base * 2 ** (attempt - 1)


def clean_text(text: Optional[str]) -> str:
    """Drop footnote markers and any remaining markup from upstream text."""
    if not text:
        return ""
    return _TAG.sub("", _FOOTNOTE.sub("", text)).strip()


def _text(value) -> str:
    return value if isinstance(value, str) else ""


def _verses_from_payload(payload) -> List[dict]:
    """Verse objects of one page; entries without an integer verse_number are skipped."""
    verses = payload.get("verses") if isinstance(payload, dict) else None
    if not isinstance(verses, list):
        raise QuranAPIError("Invalid verses response: missing 'verses' list")
    return [v for v in verses if isinstance(v, dict) and isinstance(v.get("verse_number"), int)]


def _next_page(payload: dict, page: int) -> Optional[int]:
    pagination = payload.get("pagination")
    next_page = pagination.get("next_page") if isinstance(pagination, dict) else None
    if isinstance(next_page, int) and next_page > page:
        return next_page
    return None


def canonical_text(verses: Iterable[dict]) -> Dict[int, str]:
    """verse_number -> Arabic text"""
    return {v["verse_number"]: _text(v.get(CANONICAL_FIELD)) for v in verses}


def translation_text(verses: Iterable[dict], api_id: int) -> Dict[int, str]:
    """verse_number -> translated text for one upstream translation id."""
    result = {}
    for verse in verses:
        translations = verse.get("translations")
        translations = [t for t in translations if isinstance(t, dict)] if isinstance(translations, list) else []
        match = next((t for t in translations if t.get("resource_id") == api_id), None)
        if match is None and len(translations) == 1 and "resource_id" not in translations[0]:
            match = translations[0]
        result[verse["verse_number"]] = clean_text(_text(match.get("text"))) if match else ""
    return result


def _chapter_params(api_ids: Sequence[int], page: int) -> dict:
    params = {"fields": CANONICAL_FIELD, "per_page": str(PER_PAGE), "page": str(page)}
    if api_ids:
        params["translations"] = ",".join(str(api_id) for api_id in api_ids)
    return params


class QuranAPIClient:
    """Blocking client used by the offline bundle builder.

    Every failed attempt (HTTP 429, other non-2xx, bad JSON, network error) is
    retried up to ``max_retries`` attempts with a doubling delay.
    """
    TIMEOUT = 30

    def __init__(self, base_url: str = API_BASE, timeout: float = TIMEOUT,
                 max_retries: int = 3, backoff_base: float = 2.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def _handle_response(self, response: requests.Response) -> dict:
        """Handle API response and return JSON data"""
        if response.status_code == 429:
            raise RateLimitedError(f"Rate limited: {response.url}", status=429)
        try:
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            raise QuranAPIError(f"Request failed: {e}", status=response.status_code)
        except ValueError as e:
            raise QuranAPIError(f"Invalid JSON response: {e}")

    def _get_json(self, path: str, params: Optional[dict] = None) -> dict:
        url = f"{self.base_url}/{path.lstrip('/')}"
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
                return self._handle_response(response)
            except requests.exceptions.RequestException as e:
                error = QuranAPIError(f"Request failed: {e}")
            except QuranAPIError as e:
                error = e

            if attempt == self.max_retries:
                raise error
            delay = backoff_delay(attempt, self.backoff_base)
            logger.warning("Attempt %d/%d for %s failed (%s), retrying in %.0fs",
                           attempt, self.max_retries, url, error, delay)
            time.sleep(delay)

    def fetch_chapters(self) -> List[dict]:
        """Chapter reference metadata from upstream."""
        payload = self._get_json("chapters")
        chapters = payload.get("chapters") if isinstance(payload, dict) else None
        if not isinstance(chapters, list):
            raise QuranAPIError("Invalid chapters response: missing 'chapters' list")
        return chapters

    def fetch_chapter_verses(self, surah_id: int, api_ids: Sequence[int] = ()) -> List[dict]:
        """All verses of a surah, following pagination."""
        verses: List[dict] = []
        page = 1
        while page:
            payload = self._get_json(f"verses/by_chapter/{surah_id}", _chapter_params(api_ids, page))
            verses.extend(_verses_from_payload(payload))
            page = _next_page(payload, page)
        return verses

    def fetch_canonical(self, surah_id: int) -> Dict[int, str]:
        return canonical_text(self.fetch_chapter_verses(surah_id))

    def fetch_translation(self, surah_id: int, source: TranslationSource) -> Dict[int, str]:
        verses = self.fetch_chapter_verses(surah_id, [source.api_id])
        return translation_text(verses, source.api_id)


class AsyncQuranAPIClient:
    """Serve-time client. Independent fetches for one surah run concurrently.

    Only HTTP 429 is retried here; any other failure surfaces immediately as
    QuranAPIError so the resolver can fall back without extra waiting.
    """

    def __init__(self, base_url: str = API_BASE, timeout: float = 15.0,
                 max_retries: int = 3, backoff_base: float = 2.0,
                 session_factory=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._session_factory = session_factory or self._default_session

    def _default_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=self.timeout, headers={"User-Agent": USER_AGENT})

    async def _get_json(self, session, path: str, params: Optional[dict] = None) -> dict:
        url = f"{self.base_url}/{path.lstrip('/')}"
        for attempt in range(1, self.max_retries + 1):
            try:
                async with session.get(url, params=params) as resp:
                    if resp.status != 429:
                        if not 200 <= resp.status < 300:
                            raise QuranAPIError(f"HTTP {resp.status} from {url}", status=resp.status)
                        try:
                            return await resp.json(content_type=None)
                        except ValueError as e:
                            raise QuranAPIError(f"Invalid JSON response from {url}: {e}") from e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise QuranAPIError(f"Request to {url} failed: {e!r}") from e

            if attempt == self.max_retries:
                raise RateLimitedError(f"Rate limited by {url} after {attempt} attempts", status=429)
            delay = backoff_delay(attempt, self.backoff_base)
            logger.warning("Rate limited on attempt %d/%d, waiting %.0fs...", attempt, self.max_retries, delay)
            await asyncio.sleep(delay)

    async def _chapter_verses(self, session, surah_id: int, api_ids: Sequence[int] = ()) -> List[dict]:
        verses: List[dict] = []
        page = 1
        while page:
            payload = await self._get_json(session, f"verses/by_chapter/{surah_id}",
                                           _chapter_params(api_ids, page))
            verses.extend(_verses_from_payload(payload))
            page = _next_page(payload, page)
        return verses

    async def _canonical(self, session, surah_id: int) -> Dict[int, str]:
        return canonical_text(await self._chapter_verses(session, surah_id))

    async def _translation(self, session, surah_id: int, source: TranslationSource) -> Dict[int, str]:
        verses = await self._chapter_verses(session, surah_id, [source.api_id])
        return translation_text(verses, source.api_id)

    async def fetch_surah(self, surah_id: int, sources: Sequence[TranslationSource]
                          ) -> Tuple[Dict[int, str], Dict[str, Dict[int, str]]]:
        """Arabic text plus every translation, fetched together.

        Fails as a group: if any single fetch fails, QuranAPIError is raised.
        """
        async with self._session_factory() as session:
            results = await asyncio.gather(
                self._canonical(session, surah_id),
                *(self._translation(session, surah_id, source) for source in sources),
                return_exceptions=True,
            )

        for result in results:
            if isinstance(result, QuranAPIError):
                raise result
            if isinstance(result, Exception):
                raise QuranAPIError(f"Unexpected failure fetching surah {surah_id}: {result!r}") from result
            if isinstance(result, BaseException):
                raise result

        canonical, *translated = results
        return canonical, {source.id: text for source, text in zip(sources, translated)}

    async def search(self, query: str, size: int = 20) -> List[dict]:
        """Remote verse search; returns ``{surah_id, ayah_number, text}`` dicts."""
        async with self._session_factory() as session:
            payload = await self._get_json(session, "search",
                                           {"q": query, "size": str(size), "page": "1"})

        search = payload.get("search") if isinstance(payload, dict) else None
        results = search.get("results") if isinstance(search, dict) else None
        if not isinstance(results, list):
            raise QuranAPIError("Invalid search response: missing 'search.results' list")

        matches = []
        for result in results:
            if not isinstance(result, dict):
                continue
            verse_key = str(result.get("verse_key", ""))
            surah_part, _, ayah_part = verse_key.partition(":")
            if not (surah_part.isdigit() and ayah_part.isdigit()):
                continue
            matches.append({
                "surah_id": int(surah_part),
                "ayah_number": int(ayah_part),
                "text": clean_text(_text(result.get("text"))),
            })
        return matches
