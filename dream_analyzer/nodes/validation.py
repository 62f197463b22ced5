"""Node 3 - Validation.

Cross-field consistency rules.  Each rule pairs a check with exactly one
deterministic correction:

* D-EMO-01  tone must match the pos/neg/neu triad
* D-REAL-01 metamorphosis caps physical plausibility; ``overall`` always
  follows the bizarreness-weighted formula
* D-SLP-01  an unknown sleep stage carries no probability
* D-ENT-01  no entity repeats within its category

All checks run against the same input bundle and each correction touches
only its own section, so rules are independent of each other.  Violations
are logged and returned but never raised.
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass
from typing import Callable

from ..models import (
    ENTITY_CATEGORIES,
    AnalysisBundle,
    EmotionIndex,
    EntityIndex,
    Plausibility,
    SleepStage,
    ValidationResult,
)
from ..timing import timed_node

log = logging.getLogger(__name__)

DOMINANCE_THRESHOLD = 60
METAMORPHOSIS_PHYSICAL_CAP = 50
BIZARRENESS_PENALTY = 0.5


@dataclass(frozen=True)
class ConsistencyRule:
    rule_id: str
    check: Callable[[AnalysisBundle], list[ValidationResult]]
    correct: Callable[[AnalysisBundle], None]


@timed_node("validation", "core")
def validate_bundle(bundle: AnalysisBundle) -> tuple[AnalysisBundle, list[ValidationResult]]:
    """Run every rule against *bundle*.

    Returns ``(corrected, violations)`` where *corrected* is a copy of
    *bundle* with the correction of every failing rule applied.
    """
    corrected = copy.deepcopy(bundle)
    violations: list[ValidationResult] = []

    for rule in RULES:
        found = rule.check(bundle)
        if not found:
            continue
        violations.extend(found)
        rule.correct(corrected)

    for v in violations:
        log.warning("Validation %s: %s (was %r, now %r)",
                    v.rule, v.message, v.original_value, v.corrected_value)
    log.info("Validation: %d violation(s) corrected", len(violations))
    return corrected, violations


# ---------------------------------------------------------------------------
# Pure helpers shared with other nodes
# ---------------------------------------------------------------------------


def determine_tone(pos: float, neg: float, neu: float) -> str:
    """Dominant valence label, or ``neutral`` when nothing reaches 60%."""
    top = max(pos, neg, neu)
    if top < DOMINANCE_THRESHOLD:
        return "neutral"
    if top == neg:
        return "negative"
    if top == pos:
        return "positive"
    return "neutral"


def apply_metamorphosis_penalty(plausibility: Plausibility, has_metamorphosis: bool) -> Plausibility:
    """Cap ``physical`` when a metamorphosis occurred, then recompute ``overall``.

    Pure function of its inputs: applying it twice gives the same result.
    """
    result = copy.copy(plausibility)
    if has_metamorphosis:
        result.physical = min(result.physical, METAMORPHOSIS_PHYSICAL_CAP)
    result.overall = overall_realism(result)
    return result


def overall_realism(plausibility: Plausibility) -> float:
    base = (plausibility.logical + plausibility.physical + plausibility.social) / 3
    return float(_round_half_up(base * (1 - BIZARRENESS_PENALTY * plausibility.bizarreness / 100)))


def harmonize_sleep_stage(sleep: SleepStage) -> SleepStage:
    result = copy.copy(sleep)
    if result.stage == "unknown":
        result.prob = None
    return result


def enforce_unique_entities(entities: EntityIndex) -> EntityIndex:
    """Deduplicate every category, keeping first occurrences in order."""
    return EntityIndex(**{
        name: list(dict.fromkeys(values))
        for name, values in entities.categories().items()
    })


def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


# ---------------------------------------------------------------------------
# D-EMO-01
# ---------------------------------------------------------------------------


def check_emotion_tone(bundle: AnalysisBundle) -> list[ValidationResult]:
    emotions = bundle.emotions
    calculated = determine_tone(emotions.pos, emotions.neg, emotions.neu)
    results: list[ValidationResult] = []

    if calculated != emotions.tone:
        results.append(ValidationResult(
            rule="D-EMO-01",
            passed=False,
            message=f"Tone mismatch: calculated {calculated!r} but stored {emotions.tone!r}",
            original_value=emotions.tone,
            corrected_value=calculated,
        ))

    if emotions.tone == "neutral" and max(emotions.pos, emotions.neg) >= DOMINANCE_THRESHOLD:
        results.append(ValidationResult(
            rule="D-EMO-01",
            passed=False,
            message="Neutral tone with dominant emotion detected",
            original_value=emotions.tone,
            corrected_value=calculated,
        ))

    return results


def correct_emotion_tone(bundle: AnalysisBundle) -> None:
    emotions: EmotionIndex = bundle.emotions
    emotions.tone = determine_tone(emotions.pos, emotions.neg, emotions.neu)


# ---------------------------------------------------------------------------
# D-REAL-01
# ---------------------------------------------------------------------------


def check_plausibility(bundle: AnalysisBundle) -> list[ValidationResult]:
    plausibility = bundle.plausibility
    has_metamorphosis = bool(bundle.has_metamorphosis)
    expected = apply_metamorphosis_penalty(plausibility, has_metamorphosis)
    results: list[ValidationResult] = []

    if has_metamorphosis and plausibility.physical > METAMORPHOSIS_PHYSICAL_CAP:
        results.append(ValidationResult(
            rule="D-REAL-01",
            passed=False,
            message="Physical plausibility too high with metamorphosis detected",
            original_value=plausibility.physical,
            corrected_value=expected.physical,
        ))

    if plausibility.overall != expected.overall:
        results.append(ValidationResult(
            rule="D-REAL-01",
            passed=False,
            message="Overall realism does not follow the bizarreness-weighted mean",
            original_value=plausibility.overall,
            corrected_value=expected.overall,
        ))

    return results


def correct_plausibility(bundle: AnalysisBundle) -> None:
    bundle.plausibility = apply_metamorphosis_penalty(
        bundle.plausibility, bool(bundle.has_metamorphosis)
    )


# ---------------------------------------------------------------------------
# D-SLP-01
# ---------------------------------------------------------------------------


def check_sleep_stage(bundle: AnalysisBundle) -> list[ValidationResult]:
    sleep = bundle.sleep
    if sleep.stage == "unknown" and sleep.prob is not None:
        return [ValidationResult(
            rule="D-SLP-01",
            passed=False,
            message="Unknown sleep stage should not have probability",
            original_value=sleep.prob,
            corrected_value=None,
        )]
    return []


def correct_sleep_stage(bundle: AnalysisBundle) -> None:
    bundle.sleep = harmonize_sleep_stage(bundle.sleep)


# ---------------------------------------------------------------------------
# D-ENT-01
# ---------------------------------------------------------------------------


def check_entities(bundle: AnalysisBundle) -> list[ValidationResult]:
    duplicates: dict[str, list[str]] = {}
    for name in ENTITY_CATEGORIES:
        seen: set[str] = set()
        for value in getattr(bundle.entities, name):
            if value in seen and value not in duplicates.get(name, []):
                duplicates.setdefault(name, []).append(value)
            seen.add(value)

    if not duplicates:
        return []

    listed = "; ".join(f"{name}: {', '.join(values)}" for name, values in duplicates.items())
    return [ValidationResult(
        rule="D-ENT-01",
        passed=False,
        message=f"Duplicate entities found ({listed})",
        original_value=bundle.entities.to_dict(),
        corrected_value=enforce_unique_entities(bundle.entities).to_dict(),
    )]


def correct_entities(bundle: AnalysisBundle) -> None:
    bundle.entities = enforce_unique_entities(bundle.entities)


RULES: tuple[ConsistencyRule, ...] = (
    ConsistencyRule("D-EMO-01", check_emotion_tone, correct_emotion_tone),
    ConsistencyRule("D-REAL-01", check_plausibility, correct_plausibility),
    ConsistencyRule("D-SLP-01", check_sleep_stage, correct_sleep_stage),
    ConsistencyRule("D-ENT-01", check_entities, correct_entities),
)
