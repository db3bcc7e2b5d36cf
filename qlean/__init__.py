# qlean/__init__.py
from typing import Optional

from .config import Settings
from .content_resolver import ContentResolver
from .errors import (MalformedSnapshotError, QuranAPIError, QuranError,
                     RateLimitedError, SurahNotFoundError)
from .fonts_loader import FontLoader
from .quran_api_client import AsyncQuranAPIClient, QuranAPIClient
from .resolution_cache import ResolutionCache
from .snapshot_store import OfflineSnapshotStore

__version__ = "1.0.0"


def create_resolver(settings: Optional[Settings] = None,
                    cache: Optional[ResolutionCache] = None) -> ContentResolver:
    """Wire one cache, store and API client into a ContentResolver."""
    settings = settings or Settings.from_env()
    cache = cache if cache is not None else ResolutionCache()

    store = OfflineSnapshotStore(settings.data_dir, cache=cache)
    store.ensure_layout()

    api = AsyncQuranAPIClient(
        base_url=settings.api_base,
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        backoff_base=settings.backoff_base,
    )
    return ContentResolver(store, api, cache=cache, search_limit=settings.search_limit)


def create_font_loader(settings: Optional[Settings] = None) -> FontLoader:
    settings = settings or Settings.from_env()
    loader = FontLoader(settings.fonts_dir)
    loader.ensure_layout()
    return loader


__all__ = [
    "AsyncQuranAPIClient", "ContentResolver", "FontLoader", "MalformedSnapshotError",
    "OfflineSnapshotStore", "QuranAPIClient", "QuranAPIError", "QuranError",
    "RateLimitedError", "ResolutionCache", "Settings", "SurahNotFoundError",
    "create_font_loader", "create_resolver",
]
