"""Data models for the dream analysis pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


TONES = frozenset(["positive", "negative", "neutral"])
VALENCES = frozenset(["pos", "neg", "neu"])
SLEEP_STAGES = frozenset(["REM", "NREM", "unknown"])
LEVELS = frozenset(["low", "medium", "high"])

ENTITY_CATEGORIES = ("people", "animals", "places", "objects", "events")

SUPPORTED_LANGUAGES = frozenset(["tr", "en"])


@dataclass
class EmotionLabel:
    tag: str
    score: float
    intensity: float
    valence: str  # "pos" | "neg" | "neu"
    arousal: float

    def to_dict(self) -> dict:
        return {
            "tag": self.tag,
            "score": self.score,
            "intensity": self.intensity,
            "valence": self.valence,
            "arousal": self.arousal,
        }


@dataclass
class EmotionIndex:
    """Valence triad plus ordered emotion labels.

    ``tone`` is derived from ``pos/neg/neu`` and only ever assigned from
    ``determine_tone``.
    """

    pos: float = 0.0
    neg: float = 0.0
    neu: float = 100.0
    labels: list[EmotionLabel] = field(default_factory=list)
    confidence: float = 0.0
    tone: str = "neutral"  # "positive" | "negative" | "neutral"

    def to_dict(self) -> dict:
        return {
            "pos": self.pos,
            "neg": self.neg,
            "neu": self.neu,
            "labels": [label.to_dict() for label in self.labels],
            "confidence": self.confidence,
            "tone": self.tone,
        }


@dataclass
class EntityIndex:
    """Five entity categories with set semantics in first-occurrence order."""

    people: list[str] = field(default_factory=list)
    animals: list[str] = field(default_factory=list)
    places: list[str] = field(default_factory=list)
    objects: list[str] = field(default_factory=list)
    events: list[str] = field(default_factory=list)

    def categories(self) -> dict[str, list[str]]:
        return {name: getattr(self, name) for name in ENTITY_CATEGORIES}

    def total(self) -> int:
        return sum(len(values) for values in self.categories().values())

    def to_dict(self) -> dict:
        return {name: list(values) for name, values in self.categories().items()}


@dataclass
class SleepStage:
    stage: str = "unknown"  # "REM" | "NREM" | "unknown"
    prob: Optional[float] = None  # only when stage != "unknown"
    confidence: float = 0.0
    vividness: float = 0.0
    emotional_intensity: float = 0.0
    bizarreness_score: float = 0.0
    narrative_coherence: float = 0.0

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"stage": self.stage}
        if self.prob is not None:
            out["prob"] = self.prob
        out.update({
            "confidence": self.confidence,
            "vividness": self.vividness,
            "emotionalIntensity": self.emotional_intensity,
            "bizarrenessScore": self.bizarreness_score,
            "narrativeCoherence": self.narrative_coherence,
        })
        return out


@dataclass
class Plausibility:
    logical: float = 0.0
    physical: float = 0.0
    social: float = 0.0
    bizarreness: float = 0.0
    overall: float = 0.0  # recomputed from the other four, never set directly

    def to_dict(self) -> dict:
        return {
            "logical": self.logical,
            "physical": self.physical,
            "social": self.social,
            "bizarreness": self.bizarreness,
            "overall": self.overall,
        }


@dataclass
class Continuity:
    thematic: float = 0.0
    overall: float = 0.0
    emotional: Optional[float] = None
    social: Optional[float] = None
    cognitive: Optional[float] = None
    has_day_data: bool = False

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"thematic": self.thematic}
        for name in ("emotional", "social", "cognitive"):
            value = getattr(self, name)
            if value is not None:
                out[name] = value
        out["overall"] = self.overall
        out["hasDayData"] = self.has_day_data
        return out


@dataclass
class ThemeIndex:
    id: str
    score_raw: float = 0.0
    score_norm: Optional[float] = None
    evidence_spans: list[int] = field(default_factory=list)
    strength: str = "low"  # "low" | "medium" | "high"
    evidence_level: str = "low"

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"id": self.id, "scoreRaw": self.score_raw}
        if self.score_norm is not None:
            out["scoreNorm"] = self.score_norm
        out.update({
            "evidenceSpans": list(self.evidence_spans),
            "strength": self.strength,
            "evidenceLevel": self.evidence_level,
        })
        return out


@dataclass
class AnalysisBundle:
    """Canonical result for one dream text.

    Built once per request by the merge node and passed through the core
    nodes in order.  Every node returns a fresh copy; the flags left as
    ``None`` are filled in by the derive and heal nodes.
    """

    emotions: EmotionIndex = field(default_factory=EmotionIndex)
    entities: EntityIndex = field(default_factory=EntityIndex)
    sleep: SleepStage = field(default_factory=SleepStage)
    plausibility: Plausibility = field(default_factory=Plausibility)
    continuity: Continuity = field(default_factory=Continuity)
    themes: list[ThemeIndex] = field(default_factory=list)

    source_text: str = ""
    language: str = "tr"

    hide_emotion_cards: Optional[bool] = None
    hide_sleep_percentages: Optional[bool] = None
    hide_continuity_data: Optional[bool] = None

    has_metamorphosis: Optional[bool] = None

    analysis_version: str = "1.0.0"
    timestamp: str = ""
    confidence: float = 0.0

    def to_dict(self) -> dict:
        """Return the camelCase wire shape, omitting unset optional flags."""
        out: dict[str, Any] = {
            "emotions": self.emotions.to_dict(),
            "entities": self.entities.to_dict(),
            "sleep": self.sleep.to_dict(),
            "plausibility": self.plausibility.to_dict(),
            "continuity": self.continuity.to_dict(),
            "themes": [theme.to_dict() for theme in self.themes],
            "sourceText": self.source_text,
            "language": self.language,
        }
        flags = {
            "hideEmotionCards": self.hide_emotion_cards,
            "hideSleepPercentages": self.hide_sleep_percentages,
            "hideContinuityData": self.hide_continuity_data,
            "hasMetamorphosis": self.has_metamorphosis,
        }
        out.update({k: v for k, v in flags.items() if v is not None})
        out.update({
            "analysisVersion": self.analysis_version,
            "timestamp": self.timestamp,
            "confidence": self.confidence,
        })
        return out


@dataclass
class ValidationResult:
    """One consistency-rule violation and the correction applied for it."""

    rule: str  # "D-EMO-01", "D-REAL-01", ...
    passed: bool
    message: str
    original_value: Any = None
    corrected_value: Any = None


@dataclass
class SleepPatterns:
    bedtime: Optional[str] = None  # "HH:MM"
    wake_time: Optional[str] = None
    sleep_quality: Optional[float] = None


@dataclass
class Demographics:
    age: Optional[int] = None
    gender: Optional[str] = None
    occupation: Optional[str] = None
    concerns: list[str] = field(default_factory=list)
    sleep_patterns: Optional[SleepPatterns] = None
    cultural_background: Optional[str] = None
    language: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Demographics":
        """Build from the camelCase request shape, ignoring unknown keys."""
        patterns = data.get("sleepPatterns")
        sleep_patterns = None
        if isinstance(patterns, dict):
            sleep_patterns = SleepPatterns(
                bedtime=patterns.get("bedtime"),
                wake_time=patterns.get("wakeTime"),
                sleep_quality=patterns.get("sleepQuality"),
            )
        concerns = data.get("concerns") or []
        return cls(
            age=data.get("age"),
            gender=data.get("gender"),
            occupation=data.get("occupation"),
            concerns=[str(c) for c in concerns if c],
            sleep_patterns=sleep_patterns,
            cultural_background=data.get("culturalBackground"),
            language=data.get("language"),
        )


@dataclass
class QuantitativeOptions:
    """Extra inputs for the quantitative adapter.

    ``emotion_hint`` is the already-computed emotion adapter result.
    """

    demographics: Optional[Demographics] = None
    emotion_hint: Optional[dict] = None
    model_version: str = "unknown-model"
    settings: dict = field(default_factory=dict)


@dataclass
class RawAnalysisResults:
    """Per-adapter results, kept verbatim for backward-compatible consumers."""

    emotion: dict = field(default_factory=dict)
    quantitative: Optional[dict] = None
    sleep: dict = field(default_factory=dict)
    continuity: dict = field(default_factory=dict)
    thematic: dict = field(default_factory=dict)


@dataclass
class NodeMetrics:
    """Timing for one adapter call or core node."""

    node_name: str
    node_type: str  # "adapter" | "core"
    duration_ms: int = 0


@dataclass
class OrchestrationResult:
    """Complete output of ``orchestrate``."""

    bundle: AnalysisBundle
    raw_results: RawAnalysisResults
    validation_results: list[ValidationResult] = field(default_factory=list)
    report: dict = field(default_factory=dict)
