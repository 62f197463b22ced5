"""Node 2 - Normalize.

Rescales the values that are not yet 0-100 percentages so every later
node shares one numeric contract.  Both rescalings are idempotent.
"""

from __future__ import annotations

import copy
import logging

from ..models import AnalysisBundle, EmotionIndex, ThemeIndex
from ..timing import timed_node

log = logging.getLogger(__name__)


@timed_node("normalize", "core")
def normalize_bundle(bundle: AnalysisBundle, theme_mode: str = "max") -> AnalysisBundle:
    """Return a copy of *bundle* with the emotion triad summing to 100 and
    theme scores normalised according to *theme_mode*."""
    normalized = copy.deepcopy(bundle)
    normalize_emotions(normalized.emotions)
    normalized.themes = normalize_themes(normalized.themes, theme_mode)

    log.info("Normalize: triad=%.1f/%.1f/%.1f, %d theme(s) (%s)",
             normalized.emotions.pos, normalized.emotions.neg, normalized.emotions.neu,
             len(normalized.themes), theme_mode)
    return normalized


def normalize_emotions(emotions: EmotionIndex) -> EmotionIndex:
    """Scale ``pos/neg/neu`` proportionally so they sum to 100.

    A zero total is left untouched.  Modifies *emotions* in place and
    returns it.
    """
    total = emotions.pos + emotions.neg + emotions.neu
    if total > 0:
        emotions.pos = emotions.pos / total * 100
        emotions.neg = emotions.neg / total * 100
        emotions.neu = emotions.neu / total * 100
    return emotions


def normalize_themes(themes: list[ThemeIndex], mode: str = "max") -> list[ThemeIndex]:
    """Fill ``score_norm`` for every theme.  Order is preserved.

    Modes:

    ``max``
        ``score_raw / max(score_raw) * 100``.  When the maximum is not
        positive no theme gets a ``score_norm``.
    ``softmax``
        Share of the total, so scores sum to 100 (all 0 when the total is 0).
    ``independent``
        ``score_norm = score_raw``.
    """
    if not themes:
        return themes

    if mode == "max":
        top = max(t.score_raw for t in themes)
        if top <= 0:
            return themes
        return [_with_norm(t, t.score_raw / top * 100) for t in themes]

    if mode == "softmax":
        total = sum(t.score_raw for t in themes)
        return [_with_norm(t, t.score_raw / total * 100 if total > 0 else 0.0) for t in themes]

    if mode == "independent":
        return [_with_norm(t, t.score_raw) for t in themes]

    raise ValueError(f"Unknown theme normalization mode: {mode!r}")


def _with_norm(theme: ThemeIndex, score_norm: float) -> ThemeIndex:
    updated = copy.copy(theme)
    updated.score_norm = score_norm
    return updated
