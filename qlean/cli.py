# qlean/cli.py
import os
import sys
import asyncio
import argparse
from typing import List, Optional

import arabic_reshaper
from bidi.algorithm import get_display
from colorama import Fore, Style, init

from . import create_font_loader, create_resolver
from .config import Settings
from .errors import SurahNotFoundError
from .log import setup_logging
from .offline_bundle import OfflineBundleBuilder
from .quran_api_client import QuranAPIClient
from .snapshot_store import OfflineSnapshotStore
from .translations import CANONICAL_SOURCE_ID, default_translations, find_translation


def fix_arabic_text(text: str) -> str:
    """Reshapes and applies BiDi so Arabic reads correctly in a terminal."""
    if not text:
        return ""
    try:
        return str(get_display(arabic_reshaper.reshape(text)))
    except Exception as e:
        print(f"{Fore.YELLOW}Warning: Error processing Arabic text ('{text[:20]}...'): {e}", file=sys.stderr)
        return text


def _print_surah_row(surah) -> None:
    print(Fore.GREEN + f"{surah.id:3d}. " + Fore.WHITE + f"{surah.transliteration:<16}"
          + Fore.CYAN + f"{surah.translation:<30}" + Style.DIM + f"{surah.type:<8} {surah.total_ayahs:>3} ayahs  "
          + Style.NORMAL + Fore.WHITE + fix_arabic_text(surah.name))


def cmd_list(args, settings: Settings) -> int:
    resolver = create_resolver(settings)
    surahs = resolver.list_surahs()
    if args.json:
        print("[" + ",".join(s.model_dump_json() for s in surahs) + "]")
        return 0
    print(Fore.GREEN + Style.BRIGHT + "Quran - List of Surahs:")
    print(Fore.CYAN + "-" * 25)
    for surah in surahs:
        _print_surah_row(surah)
    return 0


def cmd_search(args, settings: Settings) -> int:
    resolver = create_resolver(settings)
    results = resolver.search_surahs(args.query)
    if args.json:
        print("[" + ",".join(s.model_dump_json() for s in results) + "]")
        return 0
    if not results:
        print(Fore.YELLOW + f"No surah matches '{args.query}'.")
        return 0
    for surah in results:
        _print_surah_row(surah)
    return 0


def _selected_translations(value: Optional[str]) -> List[str]:
    if not value:
        return [s.id for s in default_translations()]
    selected = []
    for translation_id in (part.strip() for part in value.split(",")):
        if not translation_id:
            continue
        if find_translation(translation_id) is None:
            raise argparse.ArgumentTypeError(f"Unknown translation '{translation_id}'")
        selected.append(translation_id)
    return selected


def cmd_show(args, settings: Settings) -> int:
    shown = _selected_translations(args.translations)
    resolver = create_resolver(settings)
    surah = asyncio.run(resolver.get_surah(args.surah))
    if args.json:
        print(surah.model_dump_json(indent=2))
        return 0

    print(Fore.RED + "╭─ " + Style.BRIGHT + Fore.GREEN + f"📜 {surah.transliteration} "
          + Fore.WHITE + f"({surah.translation}) " + fix_arabic_text(surah.name))
    print(Fore.RED + f"│ {Fore.WHITE}{surah.type} • {surah.total_ayahs} ayahs • source: {surah.source}")
    print(Fore.RED + "╰────────────────────────────────────────")

    if surah.degraded:
        print(Fore.YELLOW + "\nAyahs are unavailable right now (offline and no local data). Try again later.")
        return 0

    for ayah in surah.ayahs:
        print(Fore.GREEN + f"\n[{surah.id}:{ayah.number}] " + Fore.WHITE + fix_arabic_text(ayah.text))
        for translation_id in shown:
            text = ayah.translations.get(translation_id, "")
            if text:
                print(Fore.CYAN + f"  {translation_id}: " + Fore.WHITE + text)
    return 0


def cmd_search_ayah(args, settings: Settings) -> int:
    resolver = create_resolver(settings)
    matches = asyncio.run(resolver.search_ayahs(args.query))
    if args.json:
        print("[" + ",".join(m.model_dump_json() for m in matches) + "]")
        return 0
    if not matches:
        print(Fore.YELLOW + f"No ayah contains '{args.query}'.")
        return 0
    for match in matches:
        print(Fore.GREEN + f"[{match.surah_id}:{match.ayah_number}] " + Fore.CYAN + f"{match.surah_name} "
              + Style.DIM + f"({match.source}) " + Style.NORMAL + Fore.WHITE + fix_arabic_text(match.text))
    return 0


def cmd_fonts(args, settings: Settings) -> int:
    loader = create_font_loader(settings)
    print(Fore.GREEN + Style.BRIGHT + f"Fonts directory: {Fore.WHITE}{loader.fonts_dir}")
    for info in loader.get_all_fonts_info():
        mark = Fore.GREEN + "✓" if info.available else Fore.RED + "✗"
        files = ", ".join(info.files) if info.files else "no font files"
        print(f"  {mark} {Fore.WHITE}{info.key:<12}{Fore.CYAN}{info.fallback:<28}{Style.DIM}{files}")
    return 0


def cmd_offline(args, settings: Settings) -> int:
    resolver = create_resolver(settings)
    print(Fore.GREEN + Style.BRIGHT + f"Offline data: {Fore.WHITE}{resolver.store.translations_dir}")
    for status in resolver.translation_status():
        mark = Fore.GREEN + "✓" if status["offline"] else Fore.RED + "✗"
        updated = status["lastUpdated"] or "never"
        default = " (default)" if status["default"] else ""
        print(f"  {mark} {Fore.WHITE}{status['id']:<10}{Fore.CYAN}{status['label']}{default}"
              + Style.DIM + f"  [{status['language']}, updated {updated}]")
    return 0


def cmd_bundle(args, settings: Settings) -> int:
    store = OfflineSnapshotStore(settings.data_dir)
    store.ensure_layout()
    client = QuranAPIClient(
        base_url=settings.api_base,
        max_retries=settings.max_retries,
        backoff_base=settings.backoff_base,
    )
    builder = OfflineBundleBuilder(client, store, max_workers=args.workers)

    print(Fore.CYAN + "🚀 Starting offline bundle creation...")
    try:
        if args.translation:
            if args.translation == CANONICAL_SOURCE_ID:
                results = [builder.build_canonical()]
            else:
                source = find_translation(args.translation)
                if source is None:
                    print(Fore.RED + f"Unknown translation '{args.translation}'", file=sys.stderr)
                    return 2
                results = [builder.build_translation(source)]
        else:
            results = builder.build_all(only_missing=not args.all)
    except OSError as e:
        print(Fore.RED + f"Could not write offline data: {e}", file=sys.stderr)
        return 1

    for result in results:
        color = Fore.GREEN if not result.failed else Fore.YELLOW
        print(color + f"✓ {result.source_id}: {len(result.downloaded)} downloaded, "
                      f"{len(result.failed)} failed, {result.total_surahs} in snapshot")
    print(Fore.GREEN + f"\n✨ Offline bundle saved to: {store.translations_dir}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qlean", description="Read the Quran online or from offline snapshots.")
    parser.add_argument("--data-dir", help="Offline data directory (overrides QLEAN_DATA_DIR).")
    parser.add_argument("--log-level", help="Logging level (overrides QLEAN_LOG_LEVEL).")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List all surahs.")
    list_parser.add_argument("--json", action="store_true", help="Print JSON.")
    list_parser.set_defaults(func=cmd_list)

    show_parser = subparsers.add_parser("show", help="Show a surah with its ayahs.")
    show_parser.add_argument("surah", help="Surah number (1-114).")
    show_parser.add_argument("--translations", help="Comma-separated translation ids to display.")
    show_parser.add_argument("--json", action="store_true", help="Print JSON.")
    show_parser.set_defaults(func=cmd_show)

    search_parser = subparsers.add_parser("search", help="Search surahs by name.")
    search_parser.add_argument("query")
    search_parser.add_argument("--json", action="store_true", help="Print JSON.")
    search_parser.set_defaults(func=cmd_search)

    ayah_parser = subparsers.add_parser("search-ayah", help="Search ayahs by Arabic text.")
    ayah_parser.add_argument("query")
    ayah_parser.add_argument("--json", action="store_true", help="Print JSON.")
    ayah_parser.set_defaults(func=cmd_search_ayah)

    fonts_parser = subparsers.add_parser("fonts", help="Show local Quran font availability.")
    fonts_parser.set_defaults(func=cmd_fonts)

    offline_parser = subparsers.add_parser("offline", help="Show offline translation status.")
    offline_parser.set_defaults(func=cmd_offline)

    bundle_parser = subparsers.add_parser("bundle", help="Download offline snapshots.")
    bundle_parser.add_argument("--translation", help="Only this translation id ('uthmani' for Arabic).")
    bundle_parser.add_argument("--all", action="store_true", help="Re-download surahs already on disk.")
    bundle_parser.add_argument("--workers", type=int, default=3, help="Parallel downloads.")
    bundle_parser.set_defaults(func=cmd_bundle)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    init(autoreset=True)
    parser = build_parser()
    args = parser.parse_args(argv)

    env = dict(os.environ)
    if args.data_dir:
        # fonts_dir follows the data dir unless QLEAN_FONTS_DIR is set
        env["QLEAN_DATA_DIR"] = args.data_dir
    settings = Settings.from_env(env)
    setup_logging(args.log_level.upper() if args.log_level else settings.log_level)

    try:
        return args.func(args, settings)
    except SurahNotFoundError as e:
        print(Fore.RED + f"error: {e}", file=sys.stderr)
        return 2
    except argparse.ArgumentTypeError as e:
        print(Fore.RED + f"error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130
    except BrokenPipeError:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
