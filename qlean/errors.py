# qlean/errors.py
from typing import Optional


class QuranError(Exception):
    """Base exception for QLean"""


class SurahNotFoundError(QuranError):
    """Requested surah id is outside 1..114"""

    def __init__(self, surah_id):
        self.surah_id = surah_id
        super().__init__(f"Surah {surah_id!r} not found. Must be between 1 and 114.")


class QuranAPIError(QuranError):
    """Upstream content API unavailable, non-2xx, or returned a bad body"""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class RateLimitedError(QuranAPIError):
    """Upstream kept answering HTTP 429 after every retry"""


class MalformedSnapshotError(QuranError):
    """An offline snapshot file could not be parsed"""
