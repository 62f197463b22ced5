"""Node 1 - Merge.

Projects the five raw adapter results into one ``AnalysisBundle``,
renaming fields, rescaling the REM probability and filling missing values
with stage-appropriate defaults.  ``tone`` is computed here rather than
copied from any adapter.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from ..config import PatternBundle, load_all_bundles
from ..models import (
    LEVELS,
    SLEEP_STAGES,
    VALENCES,
    AnalysisBundle,
    Continuity,
    EmotionIndex,
    EmotionLabel,
    EntityIndex,
    Plausibility,
    RawAnalysisResults,
    SleepStage,
    ThemeIndex,
)
from ..timing import timed_node
from .validation import determine_tone

log = logging.getLogger(__name__)

DEFAULT_SLEEP_CONFIDENCE = 75.0
BUNDLE_CONFIDENCE = 75.0


@timed_node("merge", "core")
def merge_raw_results(
    raw: RawAnalysisResults,
    text: str,
    language: str,
    analysis_version: str = "1.0.0",
    bundles: Optional[Iterable[PatternBundle]] = None,
) -> AnalysisBundle:
    """Build the preliminary bundle from *raw* adapter output."""
    classifier = CharacterClassifier.from_bundles(
        load_all_bundles() if bundles is None else bundles
    )

    bundle = AnalysisBundle(
        emotions=_merge_emotions(raw.emotion),
        entities=_merge_entities(raw.quantitative, classifier),
        sleep=_merge_sleep(raw.sleep),
        plausibility=_merge_plausibility(raw.continuity),
        continuity=_merge_continuity(raw.continuity),
        themes=_merge_themes(raw.thematic),
        source_text=text,
        language=language,
        analysis_version=analysis_version,
        timestamp=datetime.now(timezone.utc).isoformat(),
        confidence=BUNDLE_CONFIDENCE,
    )

    log.info("Merge: %d emotion label(s), %d entities, stage=%s, %d theme(s)",
             len(bundle.emotions.labels), bundle.entities.total(),
             bundle.sleep.stage, len(bundle.themes))
    return bundle


class CharacterClassifier:
    """Maps a character type to ``"animals"`` or ``"people"``.

    Exact tokens ("cat", "kedi") and substring markers ("animal", "hayvan")
    are both matched case-insensitively.
    """

    def __init__(self, tokens: dict[str, str], markers: dict[str, str]):
        self._tokens = tokens
        self._markers = markers

    @classmethod
    def from_bundles(cls, bundles: Iterable[PatternBundle]) -> "CharacterClassifier":
        tokens: dict[str, str] = {}
        markers: dict[str, str] = {}
        for bundle in bundles:
            tokens.update({t.lower(): "animals" for t in bundle.words("animal_tokens")})
            markers.update({m.lower(): "animals" for m in bundle.words("animal_markers")})
        return cls(tokens, markers)

    def classify(self, character_type: str) -> str:
        normalized = character_type.strip().lower()
        if normalized in self._tokens:
            return self._tokens[normalized]
        for marker, category in self._markers.items():
            if marker in normalized:
                return category
        return "people"


def _merge_emotions(raw: dict) -> EmotionIndex:
    balance = _section(raw, "valenceBalance")
    pos = _number(balance.get("positive"), 0.0)
    neg = _number(balance.get("negative"), 0.0)
    neu = _number(balance.get("neutral"), 100.0)

    # Primary (highest-intensity) emotion first, then secondaries in order.
    labels: list[EmotionLabel] = []
    primary = raw.get("primaryEmotion")
    if isinstance(primary, dict) and primary.get("emotion"):
        labels.append(_label(primary))
    for secondary in _items(raw, "secondaryEmotions"):
        if isinstance(secondary, dict) and secondary.get("emotion"):
            labels.append(_label(secondary))

    confidence = _number(primary.get("confidence"), 0.0) if isinstance(primary, dict) else 0.0

    return EmotionIndex(
        pos=pos,
        neg=neg,
        neu=neu,
        labels=labels,
        confidence=confidence,
        tone=determine_tone(pos, neg, neu),
    )


def _label(entry: dict) -> EmotionLabel:
    intensity = _number(entry.get("intensity"), 0.0)
    return EmotionLabel(
        tag=str(entry["emotion"]),
        score=intensity,
        intensity=intensity,
        valence=_choice(entry.get("valence"), VALENCES, "neu"),
        arousal=_number(entry.get("arousal"), 0.0) * 100,
    )


def _merge_entities(raw: Optional[dict], classifier: CharacterClassifier) -> EntityIndex:
    entities = EntityIndex()
    if not raw:
        return entities

    for character in _items(raw, "characters"):
        if not isinstance(character, dict) or not character.get("type"):
            continue
        character_type = str(character["type"])
        getattr(entities, classifier.classify(character_type)).append(character_type)

    setting = raw.get("setting")
    if isinstance(setting, dict) and setting.get("description"):
        entities.places.append(str(setting["description"]))

    return entities


def _merge_sleep(raw: dict) -> SleepStage:
    estimate = _section(raw, "sleepStageEstimate")
    circadian = _section(raw, "circadianFactors")

    # A zero REM probability means the adapter had no time data.
    rem_probability = _number(circadian.get("remProbability"), 0.0)
    prob = rem_probability * 100 if rem_probability else None

    return SleepStage(
        stage=_choice(estimate.get("estimatedSleepStage"), SLEEP_STAGES, "unknown"),
        prob=prob,
        confidence=_number(estimate.get("confidence"), DEFAULT_SLEEP_CONFIDENCE),
        vividness=_number(estimate.get("dreamVividness"), 0.0),
        emotional_intensity=_number(estimate.get("emotionalIntensity"), 0.0),
        bizarreness_score=_number(estimate.get("bizarrenessScore"), 0.0),
        narrative_coherence=_number(estimate.get("narrativeCoherence"), 0.0),
    )


def _merge_plausibility(raw: dict) -> Plausibility:
    reality = _section(raw, "realityTesting")
    overall_realism = _number(reality.get("overallRealism"), 0.0)

    return Plausibility(
        logical=_number(reality.get("logicalConsistency"), 0.0),
        physical=_number(reality.get("physicalPlausibility"), 0.0),
        social=_number(reality.get("socialPlausibility"), 0.0),
        bizarreness=100 - overall_realism if overall_realism else 0.0,
        overall=overall_realism,
    )


def _merge_continuity(raw: dict) -> Continuity:
    types = _section(raw, "continuityTypes")
    return Continuity(
        thematic=_number(types.get("thematic"), 0.0),
        overall=_number(raw.get("continuityScore"), 0.0),
        emotional=_optional_number(types.get("emotional")),
        social=_optional_number(types.get("social")),
        cognitive=_optional_number(types.get("cognitive")),
        has_day_data=False,
    )


def _merge_themes(raw: dict) -> list[ThemeIndex]:
    themes: list[ThemeIndex] = []
    for theme in _items(raw, "themes"):
        if not isinstance(theme, dict) or not theme.get("theme"):
            continue
        themes.append(ThemeIndex(
            id=str(theme["theme"]),
            score_raw=_number(theme.get("confidence"), 0.0),
            evidence_spans=_spans(theme.get("evidenceSpans")),
            strength=_choice(theme.get("strength"), LEVELS, "low"),
            evidence_level=_choice(theme.get("evidence_level"), LEVELS, "low"),
        ))
    return themes


def _section(raw: dict, key: str) -> dict:
    value = raw.get(key)
    return value if isinstance(value, dict) else {}


def _items(raw: dict, key: str) -> list:
    value = raw.get(key)
    return value if isinstance(value, list) else []


def _choice(value: Any, allowed: frozenset, default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


def _spans(value: Any) -> list[int]:
    if not isinstance(value, list):
        return []
    return [int(s) for s in value if isinstance(s, (int, float)) and not isinstance(s, bool) and math.isfinite(s)]


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def _optional_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)
