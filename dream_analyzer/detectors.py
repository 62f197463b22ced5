"""Text derivation helpers.

Stateless scans of the raw dream text.  All word lists and regexes come
from the loaded pattern bundles; every function accepts an explicit
*bundles* tuple and otherwise uses every bundle listed in ``active.json``.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from .config import PatternBundle, compile_pattern, load_all_bundles
from .models import ENTITY_CATEGORIES, EntityIndex

log = logging.getLogger(__name__)


def detect_metamorphosis(text: str, bundles: Optional[Iterable[PatternBundle]] = None) -> bool:
    """True when *text* describes an impossible transformation.

    A curated phrase match wins outright.  Otherwise a transformation-verb
    match ("X turned into Y", "X melted") only counts when the matched span
    contains one of the bundle's impossible keywords.
    """
    bundles = _resolve(bundles)
    lower = text.lower()

    for bundle in bundles:
        for phrase in bundle.words("impossible_transformations"):
            if phrase in lower:
                log.debug("Metamorphosis phrase matched: %r", phrase)
                return True

    keywords = [k for bundle in bundles for k in bundle.words("impossible_keywords")]
    for bundle in bundles:
        for pattern, rule in bundle.compiled("metamorphosis"):
            for match in pattern.finditer(lower):
                span = match.group(0)
                if any(k in span for k in keywords):
                    log.debug("Metamorphosis pattern %s matched: %r", rule.id, span)
                    return True
    return False


def detect_dialogue(text: str, bundles: Optional[Iterable[PatternBundle]] = None) -> bool:
    """True when *text* contains quoted speech or speech verbs."""
    return any(
        pattern.search(text)
        for bundle in _resolve(bundles)
        for pattern, _ in bundle.compiled("dialogue")
    )


def extract_entities_from_text(
    text: str,
    language: Optional[str] = None,
    bundles: Optional[Iterable[PatternBundle]] = None,
) -> EntityIndex:
    """Naive keyword extraction into the five entity categories.

    With *language*, only that locale's keywords are used (when a bundle
    for it is loaded).  Each category lists every keyword found once.
    """
    bundles = _resolve(bundles)
    if language is not None:
        matching = tuple(b for b in bundles if b.locale == language)
        bundles = matching or bundles

    lower = text.lower()
    found: dict[str, list[str]] = {name: [] for name in ENTITY_CATEGORIES}
    for bundle in bundles:
        for category in ENTITY_CATEGORIES:
            for keyword in bundle.words(f"entity_{category}"):
                if keyword in found[category]:
                    continue
                if _keyword_pattern(keyword, bundle.word_suffix).search(lower):
                    found[category].append(keyword)

    return EntityIndex(**found)


def detect_emotional_content(text: str, bundles: Optional[Iterable[PatternBundle]] = None) -> bool:
    lower = text.lower()
    return any(
        keyword in lower
        for bundle in _resolve(bundles)
        for keyword in bundle.words("emotional")
    )


def detect_bizarreness(text: str, bundles: Optional[Iterable[PatternBundle]] = None) -> float:
    """Weighted count of bizarre-content indicators, capped at 100."""
    lower = text.lower()
    score = 0.0
    for bundle in _resolve(bundles):
        for pattern, rule in bundle.compiled("bizarreness"):
            hits = len(pattern.findall(lower))
            if hits:
                score += hits * rule.weight
    return min(score, 100.0)


def _keyword_pattern(keyword: str, suffix: str) -> re.Pattern:
    return compile_pattern(rf"\b{re.escape(keyword)}{suffix}\b")


def _resolve(bundles: Optional[Iterable[PatternBundle]]) -> tuple[PatternBundle, ...]:
    if bundles is None:
        return load_all_bundles()
    return tuple(bundles)
