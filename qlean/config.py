# qlean/config.py
import os
from typing import Optional

import platformdirs
from pydantic import BaseModel

from .utils import IS_FROZEN, get_app_path

# --- Define constants for platformdirs ---
APP_NAME = "QLean"
APP_AUTHOR = "FadSecLab"

API_BASE = "https://api.quran.com/api/v4"


def default_base_dir() -> str:
    """Writable root for offline data and fonts."""
    if IS_FROZEN:
        # Frozen builds keep their data next to the executable
        return get_app_path('assets', writable=True)
    return platformdirs.user_data_dir(APP_NAME, APP_AUTHOR)


class Settings(BaseModel):
    data_dir: str
    fonts_dir: str
    api_base: str = API_BASE
    request_timeout: float = 15.0
    max_retries: int = 3
    backoff_base: float = 2.0
    search_limit: int = 50
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Settings":
        """Build settings from QLEAN_* environment variables."""
        env = os.environ if environ is None else environ
        base_dir = default_base_dir()
        data_dir = env.get("QLEAN_DATA_DIR") or os.path.join(base_dir, "data")
        fonts_dir = env.get("QLEAN_FONTS_DIR") or os.path.join(os.path.dirname(data_dir), "fonts")

        return cls(
            data_dir=data_dir,
            fonts_dir=fonts_dir,
            api_base=env.get("QLEAN_API_BASE", API_BASE).rstrip("/"),
            request_timeout=float(env.get("QLEAN_TIMEOUT", 15)),
            max_retries=int(env.get("QLEAN_MAX_RETRIES", 3)),
            backoff_base=float(env.get("QLEAN_BACKOFF_BASE", 2.0)),
            search_limit=int(env.get("QLEAN_SEARCH_LIMIT", 50)),
            log_level=env.get("QLEAN_LOG_LEVEL", "INFO").upper(),
        )
