# qlean/snapshot_store.py
import os
import re
import copy
import json
import logging
import threading
from datetime import datetime, timezone
from collections.abc import Iterable, Mapping
from typing import Dict, Optional, Set, Union

from pydantic import BaseModel, ValidationError

from .errors import MalformedSnapshotError
from .models import OfflineSnapshot, OfflineSurah
from .resolution_cache import ResolutionCache, translation_prefix
from .surah_metadata import TOTAL_SURAHS
from .utils import load_json, write_json_atomic

logger = logging.getLogger(__name__)

TRANSLATIONS_DIR_NAME = "translations"
METADATA_FILE_NAME = "metadata.json"

_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")

SnapshotInput = Union[Iterable, Mapping]


def _as_dict(record) -> dict:
    if isinstance(record, BaseModel):
        return record.model_dump()
    if isinstance(record, Mapping):
        return dict(record)
    raise MalformedSnapshotError(f"Unexpected surah record type: {type(record).__name__}")


def parse_snapshot(translation_id: str, raw: SnapshotInput) -> OfflineSnapshot:
    """Normalize either accepted snapshot shape into an OfflineSnapshot.

    Accepted shapes:
      1. a sequence of ``{surah_id, surah_name, verses: [{ayah_number, text}]}``
      2. a mapping of surah id -> the same record (``surah_id`` may be omitted)
    """
    surahs: Dict[int, OfflineSurah] = {}
    try:
        if isinstance(raw, Mapping):
            items = []
            for key, value in raw.items():
                record = _as_dict(value)
                record.setdefault("surah_id", int(key))
                items.append(record)
        elif isinstance(raw, Iterable) and not isinstance(raw, (str, bytes)):
            items = [_as_dict(value) for value in raw]
        else:
            raise MalformedSnapshotError(
                f"Snapshot '{translation_id}' must be a list or an object, got {type(raw).__name__}"
            )

        for record in items:
            surah = OfflineSurah.model_validate(record)
            if not 1 <= surah.surah_id <= TOTAL_SURAHS:
                raise MalformedSnapshotError(f"Surah id {surah.surah_id} out of range")
            if surah.surah_id in surahs:
                raise MalformedSnapshotError(f"Surah {surah.surah_id} appears twice")
            surahs[surah.surah_id] = surah
    except (ValidationError, ValueError, TypeError) as e:
        raise MalformedSnapshotError(f"Invalid snapshot '{translation_id}': {e}") from e

    return OfflineSnapshot(translation_id=translation_id, surahs=surahs)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class OfflineSnapshotStore:
    """Reads and writes per-translation offline snapshots and their metadata.

    Layout under ``data_dir``::

        translations/<translation_id>.json
        metadata.json
    """

    def __init__(self, data_dir: str, cache: Optional[ResolutionCache] = None):
        self.data_dir = data_dir
        self.translations_dir = os.path.join(data_dir, TRANSLATIONS_DIR_NAME)
        self.metadata_path = os.path.join(data_dir, METADATA_FILE_NAME)
        self.cache = cache

        self._metadata: Optional[dict] = None
        self._metadata_lock = threading.Lock()
        self._write_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def ensure_layout(self) -> str:
        """Create the data and translations directories if they don't exist."""
        for dir_path in (self.data_dir, self.translations_dir):
            if not os.path.isdir(dir_path):
                os.makedirs(dir_path, exist_ok=True)
                logger.info("Created offline data directory: %s", dir_path)
        return self.translations_dir

    def snapshot_path(self, translation_id: str) -> str:
        if not _SAFE_ID.match(translation_id or ""):
            raise ValueError(f"Invalid translation id: {translation_id!r}")
        return os.path.join(self.translations_dir, f"{translation_id}.json")

    def _lock_for(self, translation_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._write_locks.setdefault(translation_id, threading.Lock())

    # --- Snapshots ---

    def read_snapshot(self, translation_id: str) -> Optional[OfflineSnapshot]:
        """Return the snapshot, or None if it is missing or unreadable."""
        path = self.snapshot_path(translation_id)
        if not os.path.exists(path):
            return None
        try:
            return parse_snapshot(translation_id, load_json(path))
        except (json.JSONDecodeError, UnicodeDecodeError, MalformedSnapshotError) as e:
            logger.warning("Ignoring malformed offline snapshot %s: %s", path, e)
            return None
        except OSError as e:
            logger.warning("Could not read offline snapshot %s: %s", path, e)
            return None

    def write_snapshot(self, translation_id: str, data: SnapshotInput) -> OfflineSnapshot:
        """Persist a snapshot given as a list of surah records or a mapping by surah id.

        Both shapes are stored the same way: a JSON array ordered by surah id.
        Cached lookups for this translation are invalidated afterwards.
        """
        snapshot = data if isinstance(data, OfflineSnapshot) else parse_snapshot(translation_id, data)
        path = self.snapshot_path(translation_id)

        with self._lock_for(translation_id):
            write_json_atomic(path, snapshot.to_records())

        if self.cache is not None:
            dropped = self.cache.invalidate(translation_prefix(translation_id))
            logger.debug("Invalidated %d cached entries for '%s'", dropped, translation_id)

        logger.info("Saved offline snapshot '%s' (%d surahs)", translation_id, len(snapshot.surahs))
        return snapshot

    def list_available_translation_ids(self) -> Set[str]:
        if not os.path.isdir(self.translations_dir):
            return set()
        try:
            names = os.listdir(self.translations_dir)
        except OSError as e:
            logger.error("Error reading offline translations directory: %s", e)
            return set()
        return {name[:-len(".json")] for name in names
                if name.endswith(".json") and not name.startswith(".")}

    def is_available(self, translation_id: str) -> bool:
        return os.path.exists(self.snapshot_path(translation_id))

    def missing_surahs(self, translation_id: str) -> Set[int]:
        """Surah ids not yet covered by this translation's snapshot."""
        all_ids = set(range(1, TOTAL_SURAHS + 1))
        snapshot = self.read_snapshot(translation_id)
        if snapshot is None:
            return all_ids
        return all_ids - set(snapshot.surahs)

    # --- Metadata ---

    def read_metadata(self) -> dict:
        with self._metadata_lock:
            return copy.deepcopy(self._load_metadata())

    def _load_metadata(self) -> dict:
        if self._metadata is not None:
            return self._metadata
        if not os.path.exists(self.metadata_path):
            self._metadata = {}
            return self._metadata
        try:
            data = load_json(self.metadata_path)
            if not isinstance(data, dict):
                raise ValueError("metadata root must be an object")
            self._metadata = self._sanitize_metadata(data)
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError, OSError) as e:
            logger.warning("Could not load offline metadata %s: %s", self.metadata_path, e)
            self._metadata = {}
        return self._metadata

    def _sanitize_metadata(self, data: dict) -> dict:
        """Drop a non-object ``translations`` section and non-object per-id entries."""
        if "translations" not in data:
            return data
        translations = data["translations"]
        if not isinstance(translations, dict):
            logger.warning("Ignoring malformed 'translations' in %s", self.metadata_path)
            data["translations"] = {}
            return data
        for translation_id, entry in list(translations.items()):
            if not isinstance(entry, dict):
                logger.warning("Ignoring malformed metadata for '%s' in %s", translation_id, self.metadata_path)
                del translations[translation_id]
        return data

    def write_metadata(self, metadata: dict) -> dict:
        """Merge ``metadata`` into metadata.json and return the merged result.

        Top-level fields are replaced; each ``translations[<id>]`` entry is
        merged field by field and stamped with ``lastUpdated``.
        """
        with self._metadata_lock:
            current = copy.deepcopy(self._load_metadata())
            now = _timestamp()
            for key, value in metadata.items():
                if key == "translations":
                    if not isinstance(value, Mapping):
                        raise ValueError("metadata 'translations' must be an object")
                    translations = current.setdefault("translations", {})
                    for translation_id, fields in value.items():
                        entry = dict(translations.get(translation_id) or {})
                        entry.update(fields or {})
                        entry["lastUpdated"] = now
                        translations[translation_id] = entry
                else:
                    current[key] = value

            write_json_atomic(self.metadata_path, current)
            self._metadata = current
            return copy.deepcopy(current)

    def get_translation_metadata(self, translation_id: str) -> Optional[dict]:
        return self.read_metadata().get("translations", {}).get(translation_id)

    def update_translation_metadata(self, translation_id: str, **fields) -> dict:
        return self.write_metadata({"translations": {translation_id: fields}})

    def clear_cache(self) -> None:
        with self._metadata_lock:
            self._metadata = None

    def summary(self) -> dict:
        available = sorted(self.list_available_translation_ids())
        return {"available": available, "path": self.translations_dir, "total": len(available)}
