# qlean/resolution_cache.py
import threading
from typing import Any, Dict, Optional

SURAH_PREFIX = "surah:"
TRANSLATION_PREFIX = "translation:"


def surah_key(surah_id: int) -> str:
    return f"{SURAH_PREFIX}{surah_id}"


def translation_prefix(translation_id: str) -> str:
    # Trailing separator keeps "sahih" from matching "sahih2"
    return f"{TRANSLATION_PREFIX}{translation_id}:"


def translation_key(translation_id: str, surah_id: int) -> str:
    return f"{translation_prefix(translation_id)}{surah_id}"


def snapshot_key(translation_id: str) -> str:
    """Whole parsed snapshot; shares the translation prefix so one invalidate drops both."""
    return f"{translation_prefix(translation_id)}*"


class ResolutionCache:
    """In-process map from a request key to its resolved value.

    No TTL and no eviction: the key space is bounded by 114 surahs times the
    configured translations, and entries only go away through ``invalidate``
    or ``clear``.
    """

    def __init__(self):
        self._entries: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Get a cached value or None if not found"""
        return self._entries.get(key)

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``; returns how many went."""
        with self._lock:
            stale = [key for key in self._entries if key.startswith(prefix)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
