# qlean/models.py
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class SurahInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int                 # 1..114
    name: str               # Arabic name, e.g. "الفاتحة"
    transliteration: str    # e.g. "Al-Fatihah"
    translation: str        # e.g. "The Opening"
    type: str               # "Meccan" or "Medinan"
    total_ayahs: int


class Ayah(BaseModel):
    number: int
    text: str               # Arabic (uthmani) text
    # translation id -> text; every configured id is present, missing text is ""
    translations: Dict[str, str] = {}


class Surah(SurahInfo):
    ayahs: List[Ayah] = []
    source: str = "remote"  # "remote", "offline" or "degraded"
    degraded: bool = False


class TranslationSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    api_id: int
    label: str
    language: str           # "bangla" or "english"
    default: bool = False


class OfflineVerse(BaseModel):
    ayah_number: int
    text: str = ""

    @field_validator("text", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return "" if value is None else value


class OfflineSurah(BaseModel):
    surah_id: int
    surah_name: str = ""
    verses: List[OfflineVerse]

    @field_validator("verses")
    @classmethod
    def _contiguous_ordinals(cls, verses: List[OfflineVerse]) -> List[OfflineVerse]:
        verses = sorted(verses, key=lambda v: v.ayah_number)
        numbers = [v.ayah_number for v in verses]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError("verse ordinals must be contiguous starting at 1")
        return verses

    def verse_map(self) -> Dict[int, str]:
        return {v.ayah_number: v.text for v in self.verses}


class OfflineSnapshot(BaseModel):
    """One translation's offline data, keyed by surah id. May be partial."""
    translation_id: str
    surahs: Dict[int, OfflineSurah] = {}

    def get(self, surah_id: int) -> Optional[OfflineSurah]:
        return self.surahs.get(surah_id)

    def verse_map(self, surah_id: int) -> Optional[Dict[int, str]]:
        surah = self.surahs.get(surah_id)
        return surah.verse_map() if surah else None

    def to_records(self) -> List[dict]:
        """On-disk representation: array ordered by surah id."""
        return [self.surahs[sid].model_dump() for sid in sorted(self.surahs)]


class AyahMatch(BaseModel):
    surah_id: int
    surah_name: str
    ayah_number: int
    text: str
    source: str             # "offline" or "remote"


class FontInfo(BaseModel):
    key: str
    name: str               # CSS font-family stack
    fallback: str
    available: bool
    files: List[str] = []
