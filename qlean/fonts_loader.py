# qlean/fonts_loader.py
import os
import logging
from typing import Dict, List, Optional

from .models import FontInfo

logger = logging.getLogger(__name__)

FONT_EXTENSIONS = (".ttf", ".otf", ".woff", ".woff2")

# Font family mappings: directory key -> CSS font-family stacks
FONT_MAPPINGS: Dict[str, Dict[str, str]] = {
    "traditional": {
        "name": "'Traditional Arabic', 'Scheherazade', serif",
        "fallback": "'Traditional Arabic', serif",
    },
    "uthmani": {
        "name": "'Scheherazade New', 'Traditional Arabic', serif",
        "fallback": "'Scheherazade New', serif",
    },
    "indopak": {
        "name": "'IndoPak', 'Traditional Arabic', serif",
        "fallback": "'IndoPak', serif",
    },
    "tajweed": {
        "name": "'Tajweed', 'Traditional Arabic', serif",
        "fallback": "'Tajweed', serif",
    },
}

README_TEMPLATE = """# Quran Fonts

This directory contains custom Quran fonts for offline use.

## Supported Fonts
{families}
## Installation

1. Download or prepare your font file (TTF, OTF, WOFF or WOFF2 format)
2. Place it in the matching subdirectory (e.g. `uthmani/font.ttf`)
3. The application detects it automatically
4. The font file should carry the internal family name used in the CSS stack

## Supported Formats

- .ttf (TrueType Font)
- .otf (OpenType Font)
- .woff (Web Open Font Format)
- .woff2 (Web Open Font Format 2)

## Resources

- https://fonts.quran.com
- https://github.com/aliftype/fonts
"""


def _is_font_file(filename: str) -> bool:
    return filename.lower().endswith(FONT_EXTENSIONS)


class FontLoader:
    """Reports which Quran font families have local font files."""

    def __init__(self, fonts_dir: str):
        self.fonts_dir = fonts_dir
        self._info_cache: Dict[str, FontInfo] = {}

    def ensure_layout(self) -> str:
        """Create the base directory, one folder per family and the README."""
        if not os.path.isdir(self.fonts_dir):
            os.makedirs(self.fonts_dir, exist_ok=True)
            logger.info("Created fonts directory: %s", self.fonts_dir)

        for font_key in FONT_MAPPINGS:
            os.makedirs(os.path.join(self.fonts_dir, font_key), exist_ok=True)

        readme_path = os.path.join(self.fonts_dir, "README.md")
        if not os.path.exists(readme_path):
            self._write_readme(readme_path)
        return self.fonts_dir

    def _write_readme(self, readme_path: str) -> None:
        families = "".join(
            f"\n### {key.capitalize()}\n"
            f"- Directory: `{key}/`\n"
            f"- Font name in CSS: `{mapping['fallback'].split(',')[0]}`\n"
            for key, mapping in FONT_MAPPINGS.items()
        )
        try:
            with open(readme_path, "w", encoding="utf-8") as f:
                f.write(README_TEMPLATE.format(families=families))
            logger.info("Created fonts README")
        except OSError as e:
            logger.error("Error creating fonts README: %s", e)

    def get_font_files(self, font_key: str) -> List[str]:
        font_path = os.path.join(self.fonts_dir, font_key)
        if not os.path.isdir(font_path):
            return []
        try:
            return sorted(f for f in os.listdir(font_path) if _is_font_file(f))
        except OSError as e:
            logger.error("Error reading font files for %s: %s", font_key, e)
            return []

    def is_font_available(self, font_key: str) -> bool:
        return bool(self.get_font_files(font_key))

    def get_font_file_path(self, font_key: str) -> Optional[str]:
        files = self.get_font_files(font_key)
        return os.path.join(self.fonts_dir, font_key, files[0]) if files else None

    def get_font_info(self, font_key: str) -> Optional[FontInfo]:
        """Font info for one family, cached until ``clear_cache``. None for unknown keys."""
        if font_key in self._info_cache:
            return self._info_cache[font_key]

        mapping = FONT_MAPPINGS.get(font_key)
        if not mapping:
            return None

        files = self.get_font_files(font_key)
        info = FontInfo(
            key=font_key,
            name=mapping["name"],
            fallback=mapping["fallback"],
            available=bool(files),
            files=files,
        )
        self._info_cache[font_key] = info
        return info

    def get_all_fonts_info(self) -> List[FontInfo]:
        if not os.path.isdir(self.fonts_dir):
            # Fresh install: lay out the folders, nothing can be available yet
            self.ensure_layout()
        return [self.get_font_info(font_key) for font_key in FONT_MAPPINGS]

    def get_available_local_fonts(self) -> List[str]:
        return [font_key for font_key in FONT_MAPPINGS if self.is_font_available(font_key)]

    def clear_cache(self) -> None:
        self._info_cache.clear()

    def summary(self) -> dict:
        available = self.get_available_local_fonts()
        return {"available": available, "path": self.fonts_dir, "total": len(available)}
