# qlean/surah_metadata.py
import logging
from typing import List

from .models import SurahInfo
from .utils import get_app_path, load_json

logger = logging.getLogger(__name__)

DATABASE_FILENAME = "database/surah_metadata.json"
TOTAL_SURAHS = 114


def load_surah_metadata(db_filename: str = DATABASE_FILENAME) -> List[SurahInfo]:
    """Load the static reference data for all surahs, ordered by id.

    The file ships with the package; a missing or incomplete file is an
    installation error and is raised rather than degraded.
    """
    db_path = get_app_path(db_filename, writable=False)
    data = load_json(db_path)
    chapters = data.get("chapters", [])

    if len(chapters) != TOTAL_SURAHS:
        raise ValueError(
            f"Surah reference data at {db_path} has {len(chapters)} entries, expected {TOTAL_SURAHS}"
        )

    surahs = [SurahInfo(id=index, **chapter) for index, chapter in enumerate(chapters, start=1)]
    logger.debug("Loaded reference data for %d surahs", len(surahs))
    return surahs
