"""Command-line entry point.

    dream-analyzer validate-patterns [--dir PATH]
    dream-analyzer analyze FILE --language en --adapters module:factory
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import re
import sys
from pathlib import Path

from .adapters import resolve_adapters
from .config import (
    PatternBundleError,
    get_available_locales,
    get_settings,
    load_pattern_bundle,
)
from .errors import AnalysisError
from .formatting import format_percent
from .pipeline import orchestrate

log = logging.getLogger(__name__)

# Lookahead followed by an unbounded quantifier: catastrophic backtracking risk.
_UNSAFE_REGEX = (
    re.compile(r"\(\?=.*\*"),
    re.compile(r"\(\?=.*\+"),
    re.compile(r"\(\?=.*\{.*,.*\}"),
)

_PLACEHOLDER = re.compile(r"CHANGE_ME|[A-Z]+_WORDS_HERE")


def validate_patterns(patterns_dir: Path) -> int:
    """Validate every bundle listed in ``active.json``; return the error count."""
    locales = get_available_locales(patterns_dir)
    print(f"Available locales: {', '.join(locales)}")

    errors = 0
    for locale in locales:
        print(f"\nValidating {locale}...")
        try:
            bundle = load_pattern_bundle(locale, patterns_dir)
            print(f"  bundle version: {bundle.bundle_version}")
            print(f"  patterns: {len(bundle.patterns)}, keyword lists: {len(bundle.keywords)}")

            unsafe = 0
            for rule in bundle.patterns:
                try:
                    re.compile(rule.regex)
                except re.error as e:
                    print(f"  invalid regex in {rule.id!r}: {e}", file=sys.stderr)
                    unsafe += 1
                    continue
                if any(p.search(rule.regex) for p in _UNSAFE_REGEX):
                    print(f"  potentially unsafe regex in {rule.id!r}: {rule.regex}",
                          file=sys.stderr)
                    unsafe += 1
            if unsafe:
                raise PatternBundleError(f"found {unsafe} unsafe or invalid regex pattern(s)")

            raw = (patterns_dir / f"patterns.{locale}.json").read_text(encoding="utf-8")
            placeholder = _PLACEHOLDER.search(raw)
            if placeholder:
                raise PatternBundleError(
                    f"template placeholder {placeholder.group(0)!r} found in patterns.{locale}.json"
                )
            print("  ok")
        except PatternBundleError as e:
            print(f"  validation failed for {locale}: {e}", file=sys.stderr)
            errors += 1

    return errors


def _print_summary(result) -> None:
    bundle = result.bundle
    lang = bundle.language
    emotions = bundle.emotions
    print(f"tone: {emotions.tone} "
          f"(pos {format_percent(emotions.pos, lang)}, "
          f"neg {format_percent(emotions.neg, lang)}, "
          f"neu {format_percent(emotions.neu, lang)})")
    for label in emotions.labels:
        print(f"  - {label.tag}: {format_percent(label.intensity, lang)}")

    sleep = bundle.sleep
    if bundle.hide_sleep_percentages:
        print(f"sleep stage: {sleep.stage}")
    else:
        prob = "" if sleep.prob is None else f" ({format_percent(sleep.prob, lang)})"
        print(f"sleep stage: {sleep.stage}{prob}")

    p = bundle.plausibility
    print(f"plausibility: overall {format_percent(p.overall, lang)}, "
          f"physical {format_percent(p.physical, lang)}, "
          f"bizarreness {format_percent(p.bizarreness, lang)}"
          f"{' [metamorphosis]' if bundle.has_metamorphosis else ''}")

    for theme in bundle.themes:
        score = theme.score_norm if theme.score_norm is not None else theme.score_raw
        print(f"theme {theme.id}: {format_percent(score, lang)} ({theme.strength})")

    for name, values in bundle.entities.categories().items():
        if values:
            print(f"{name}: {', '.join(values)}")

    for v in result.validation_results:
        print(f"corrected {v.rule}: {v.message}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="dream-analyzer")
    sub = parser.add_subparsers(dest="command", required=True)

    validate = sub.add_parser("validate-patterns", help="Validate the pattern bundles")
    validate.add_argument("--dir", type=Path, default=None,
                          help="Pattern directory (default: configured directory)")

    analyze = sub.add_parser("analyze", help="Analyse one dream report")
    analyze.add_argument("file", help="Text file, or - for stdin")
    analyze.add_argument("--language", default="tr", choices=["tr", "en"])
    analyze.add_argument("--adapters", default=None,
                         help="Stage adapter factory as module:factory")
    analyze.add_argument("--json", action="store_true", help="Print the bundle as JSON")

    args = parser.parse_args(argv)
    settings = get_settings()
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s %(levelname)s %(message)s")

    if args.command == "validate-patterns":
        errors = validate_patterns(args.dir or settings.patterns_dir)
        if errors:
            print(f"\nValidation failed for {errors} locale(s)", file=sys.stderr)
            return 1
        print("\nAll locales validated successfully")
        return 0

    adapters = resolve_adapters(settings, path=args.adapters)
    if adapters is None:
        parser.error("--adapters (or DREAM_ANALYZER_ADAPTERS) is required for analyze")

    text = sys.stdin.read() if args.file == "-" else Path(args.file).read_text(encoding="utf-8")
    try:
        result = asyncio.run(orchestrate(
            text, args.language,
            adapters=adapters,
            settings=settings,
        ))
    except AnalysisError as e:
        print(f"analysis unavailable: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.bundle.to_dict(), ensure_ascii=False, indent=2))
    else:
        _print_summary(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
