"""Runtime configuration.

Two kinds of configuration live here:

* ``Settings``: process-level knobs read from environment variables once
  and cached (``get_settings`` / ``reset_settings``).
* Pattern bundles: the per-locale keyword and regex tables used by the text
  detectors and the merge node.  They are JSON files validated against
  ``PatternBundle`` and loaded once per directory/locale.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

log = logging.getLogger(__name__)

PACKAGED_PATTERNS_DIR = Path(__file__).resolve().parent / "patterns"

THEME_NORMALIZATION_MODES = frozenset(["max", "softmax", "independent"])
QUANTITATIVE_BACKENDS = frozenset(["adapters", "ollama"])


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    analysis_version: str = "1.0.0"
    quant_model_version: str = "unknown-model"
    theme_normalization: str = "max"
    patterns_dir: Path = PACKAGED_PATTERNS_DIR
    adapters_path: Optional[str] = None
    quantitative_backend: str = "adapters"
    min_text_length: int = 20
    max_text_length: int = 10000
    ollama_base_url: str = "http://localhost:11434"
    model_name: str = "llama3.1:8b"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read ``Settings`` from the environment (cached)."""
    mode = os.getenv("DREAM_ANALYZER_THEME_NORMALIZATION", "max").lower()
    if mode not in THEME_NORMALIZATION_MODES:
        log.warning("Unknown theme normalization mode %r, using 'max'", mode)
        mode = "max"

    backend = os.getenv("DREAM_ANALYZER_QUANTITATIVE", "adapters").lower()
    if backend not in QUANTITATIVE_BACKENDS:
        log.warning("Unknown quantitative backend %r, using 'adapters'", backend)
        backend = "adapters"

    patterns_dir = os.getenv("DREAM_ANALYZER_PATTERNS_DIR")

    return Settings(
        log_level=os.getenv("DREAM_ANALYZER_LOG_LEVEL", "INFO").upper(),
        analysis_version=os.getenv("DREAM_ANALYZER_ANALYSIS_VERSION", "1.0.0"),
        quant_model_version=os.getenv("DREAM_ANALYZER_QUANT_MODEL", "unknown-model"),
        theme_normalization=mode,
        patterns_dir=Path(patterns_dir) if patterns_dir else PACKAGED_PATTERNS_DIR,
        adapters_path=os.getenv("DREAM_ANALYZER_ADAPTERS") or None,
        quantitative_backend=backend,
        min_text_length=int(os.getenv("DREAM_ANALYZER_MIN_TEXT_LENGTH", "20")),
        max_text_length=int(os.getenv("DREAM_ANALYZER_MAX_TEXT_LENGTH", "10000")),
        ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
        model_name=os.getenv("MODEL_NAME", "llama3.1:8b"),
    )


def reset_settings() -> None:
    """Drop cached settings and pattern bundles (used by tests)."""
    get_settings.cache_clear()
    _load_bundle.cache_clear()


# ---------------------------------------------------------------------------
# Pattern bundles
# ---------------------------------------------------------------------------


class PatternBundleError(Exception):
    """A pattern bundle is missing, malformed or inconsistent."""


class PatternRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    category: str
    regex: str
    weight: float = Field(default=1.0, ge=0)


class PatternBundle(BaseModel):
    """Schema v1 of ``patterns.<locale>.json``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    bundle_version: Literal["1.0.0"] = Field(alias="bundleVersion")
    locale: Literal["tr", "en"]
    word_suffix: str = Field(default="", alias="wordSuffix")  # appended to keyword regexes
    patterns: tuple[PatternRule, ...] = ()
    keywords: dict[str, tuple[str, ...]] = Field(default_factory=dict)

    def rules(self, category: str) -> list[PatternRule]:
        return [p for p in self.patterns if p.category == category]

    def compiled(self, category: str) -> list[tuple[re.Pattern, PatternRule]]:
        return [(compile_pattern(p.regex), p) for p in self.rules(category)]

    def words(self, name: str) -> tuple[str, ...]:
        return self.keywords.get(name, ())


@lru_cache(maxsize=512)
def compile_pattern(regex: str) -> re.Pattern:
    return re.compile(regex, re.IGNORECASE)


def get_available_locales(patterns_dir: Optional[Path] = None) -> list[str]:
    """Locales listed in ``active.json``; ``["tr"]`` when the file is absent."""
    active = _read_active(Path(patterns_dir or get_settings().patterns_dir))
    return list(active.get("availableLocales", ["tr"]))


def load_pattern_bundle(
    locale: Optional[str] = None,
    patterns_dir: Optional[Path] = None,
) -> PatternBundle:
    """Load and validate ``patterns.<locale>.json``.

    *locale* defaults to the ``defaultLocale`` of ``active.json``.
    """
    directory = Path(patterns_dir or get_settings().patterns_dir)
    if locale is None:
        locale = _read_active(directory).get("defaultLocale", "tr")
    return _load_bundle(str(directory), locale)


def load_all_bundles(patterns_dir: Optional[Path] = None) -> tuple[PatternBundle, ...]:
    """Load every bundle listed in ``active.json``."""
    directory = Path(patterns_dir or get_settings().patterns_dir)
    return tuple(
        load_pattern_bundle(locale, directory)
        for locale in get_available_locales(directory)
    )


@lru_cache(maxsize=32)
def _load_bundle(directory: str, locale: str) -> PatternBundle:
    path = Path(directory) / f"patterns.{locale}.json"
    if not path.exists():
        available = ", ".join(get_available_locales(Path(directory)))
        raise PatternBundleError(
            f"Pattern file not found: {path.name} (available locales: {available})"
        )

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        bundle = PatternBundle.model_validate(raw)
    except (json.JSONDecodeError, ValidationError) as e:
        raise PatternBundleError(f"Invalid pattern bundle {path.name}: {e}") from e

    if bundle.locale != locale:
        raise PatternBundleError(
            f"Locale mismatch: requested {locale!r} but {path.name} says {bundle.locale!r}"
        )

    log.info("Loaded pattern bundle %s (%d patterns, %d keyword lists)",
             path.name, len(bundle.patterns), len(bundle.keywords))
    return bundle


def _read_active(directory: Path) -> dict:
    path = directory / "active.json"
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        log.warning("active.json not found in %s, using default locales", directory)
        return {"availableLocales": ["tr"], "defaultLocale": "tr"}
