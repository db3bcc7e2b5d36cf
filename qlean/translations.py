# qlean/translations.py
from typing import Iterable, List, Optional

from .models import TranslationSource

# Snapshot id reserved for the canonical Arabic text
CANONICAL_SOURCE_ID = "uthmani"

TRANSLATIONS: List[TranslationSource] = [
    TranslationSource(id="mujibur", api_id=163, label="Sheikh Mujibur Rahman", language="bangla"),
    TranslationSource(id="rawai", api_id=213, label="Rawai Al-bayan", language="bangla"),
    TranslationSource(id="taisirul", api_id=161, label="Taisirul Quran", language="bangla"),
    TranslationSource(id="zakaria", api_id=162, label="Dr. Abu Bakr Muhammad Zakaria", language="bangla"),
    TranslationSource(id="sahih", api_id=20, label="Sahih International", language="english", default=True),
    TranslationSource(id="pickthall", api_id=19, label="Pickthall", language="english"),
    TranslationSource(id="yusufali", api_id=22, label="Yusuf Ali", language="english"),
    TranslationSource(id="hilali", api_id=203, label="Al-Hilali & Khan", language="english"),
]


def validate_translations(sources: Iterable[TranslationSource]) -> List[TranslationSource]:
    """Return the sources as a list, raising ValueError on duplicate ids or api ids."""
    sources = list(sources)
    seen_ids, seen_api_ids = set(), set()
    for source in sources:
        if source.id == CANONICAL_SOURCE_ID:
            raise ValueError(f"Translation id '{source.id}' is reserved for the Arabic text")
        if source.id in seen_ids:
            raise ValueError(f"Duplicate translation id '{source.id}'")
        if source.api_id in seen_api_ids:
            raise ValueError(f"Duplicate upstream translation id {source.api_id}")
        seen_ids.add(source.id)
        seen_api_ids.add(source.api_id)
    return sources


def find_translation(translation_id: str,
                     sources: Iterable[TranslationSource] = TRANSLATIONS) -> Optional[TranslationSource]:
    for source in sources:
        if source.id == translation_id:
            return source
    return None


def default_translations(sources: Iterable[TranslationSource] = TRANSLATIONS) -> List[TranslationSource]:
    return [s for s in sources if s.default]


validate_translations(TRANSLATIONS)
