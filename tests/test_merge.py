"""Tests for the merge node."""

from __future__ import annotations

import pytest

from dream_analyzer.models import RawAnalysisResults
from dream_analyzer.nodes.merge import CharacterClassifier, merge_raw_results

from tests.fakes import (
    CONTINUITY_RAW,
    EMOTION_RAW,
    QUANTITATIVE_RAW,
    SLEEP_RAW,
    THEMATIC_RAW,
)


def _raw(**overrides) -> RawAnalysisResults:
    fields = {
        "emotion": EMOTION_RAW,
        "quantitative": QUANTITATIVE_RAW,
        "sleep": SLEEP_RAW,
        "continuity": CONTINUITY_RAW,
        "thematic": THEMATIC_RAW,
    }
    fields.update(overrides)
    return RawAnalysisResults(**fields)


def test_emotion_labels_primary_first(bundles):
    bundle = merge_raw_results(_raw(), "text", "en", bundles=bundles)
    emotions = bundle.emotions

    assert [label.tag for label in emotions.labels] == ["fear", "sadness"]
    assert emotions.labels[0].intensity == 80
    assert emotions.labels[0].score == 80
    assert emotions.labels[0].arousal == pytest.approx(90)
    assert emotions.labels[0].valence == "neg"
    assert (emotions.pos, emotions.neg, emotions.neu) == (10, 85, 5)
    assert emotions.confidence == 70
    assert emotions.tone == "negative"


def test_missing_emotion_data_defaults_to_neutral(bundles):
    bundle = merge_raw_results(_raw(emotion={}), "text", "en", bundles=bundles)

    assert (bundle.emotions.pos, bundle.emotions.neg, bundle.emotions.neu) == (0, 0, 100)
    assert bundle.emotions.labels == []
    assert bundle.emotions.tone == "neutral"


def test_explicit_zero_neutral_is_kept(bundles):
    raw = _raw(emotion={"valenceBalance": {"positive": 30, "negative": 70, "neutral": 0}})

    bundle = merge_raw_results(raw, "text", "en", bundles=bundles)

    assert bundle.emotions.neu == 0
    assert bundle.emotions.tone == "negative"


def test_characters_split_into_people_and_animals(bundles):
    raw = _raw(quantitative={
        "characters": [
            {"type": "mother"}, {"type": "Kedi"}, {"type": "wild animal"},
            {"type": "stranger"}, {"type": "at"}, {"type": "hayvan sürüsü"},
        ],
        "setting": {"description": "school yard"},
    })

    entities = merge_raw_results(raw, "text", "en", bundles=bundles).entities

    assert entities.people == ["mother", "stranger"]
    assert entities.animals == ["Kedi", "wild animal", "at", "hayvan sürüsü"]
    assert entities.places == ["school yard"]
    assert entities.objects == [] and entities.events == []


def test_duplicates_survive_merge_for_validation(bundles):
    entities = merge_raw_results(_raw(), "text", "en", bundles=bundles).entities

    assert entities.people == ["mother", "mother"]
    assert entities.animals == ["dog"]


def test_missing_quantitative_result(bundles):
    entities = merge_raw_results(_raw(quantitative=None), "text", "en", bundles=bundles).entities

    assert entities.total() == 0


def test_classifier_is_data_driven():
    classifier = CharacterClassifier({"ejderha": "animals"}, {"yaratık": "animals"})

    assert classifier.classify("Ejderha") == "animals"
    assert classifier.classify("deniz yaratığı") == "people"
    assert classifier.classify("orman yaratık") == "animals"
    assert classifier.classify("dog") == "people"


def test_sleep_probability_scaled(bundles):
    sleep = merge_raw_results(_raw(), "text", "en", bundles=bundles).sleep

    assert sleep.stage == "unknown"
    assert sleep.prob == pytest.approx(42)
    assert sleep.vividness == 60
    assert sleep.emotional_intensity == 70
    assert sleep.bizarreness_score == 40
    assert sleep.narrative_coherence == 50
    assert sleep.confidence == 75


def test_sleep_defaults(bundles):
    raw = _raw(sleep={"sleepStageEstimate": {"estimatedSleepStage": "REM"},
                      "circadianFactors": {"remProbability": 0}})

    sleep = merge_raw_results(raw, "text", "en", bundles=bundles).sleep

    assert sleep.stage == "REM"
    assert sleep.prob is None
    assert sleep.vividness == 0


def test_unrecognised_stage_becomes_unknown(bundles):
    raw = _raw(sleep={"sleepStageEstimate": {"estimatedSleepStage": "deep"}})

    assert merge_raw_results(raw, "text", "en", bundles=bundles).sleep.stage == "unknown"


def test_plausibility_from_reality_testing(bundles):
    p = merge_raw_results(_raw(), "text", "en", bundles=bundles).plausibility

    assert (p.logical, p.physical, p.social) == (70, 90, 80)
    assert p.bizarreness == 20
    assert p.overall == 80


def test_plausibility_without_reality_testing(bundles):
    p = merge_raw_results(_raw(continuity={}), "text", "en", bundles=bundles).plausibility

    assert (p.logical, p.physical, p.social, p.bizarreness, p.overall) == (0, 0, 0, 0, 0)


def test_continuity_optional_scores(bundles):
    c = merge_raw_results(_raw(), "text", "en", bundles=bundles).continuity

    assert c.thematic == 40
    assert c.emotional == 30
    assert c.social is None and c.cognitive is None
    assert c.overall == 35
    assert c.has_day_data is False


def test_themes_projection(bundles):
    themes = merge_raw_results(_raw(), "text", "en", bundles=bundles).themes

    assert [t.id for t in themes] == ["fear", "loss"]
    assert themes[0].score_raw == 0.8
    assert themes[0].strength == "high"
    assert themes[0].evidence_level == "medium"
    assert themes[0].evidence_spans == [3, 10]
    assert themes[0].score_norm is None
    assert (themes[1].strength, themes[1].evidence_level) == ("low", "low")


def test_bundle_metadata(bundles):
    bundle = merge_raw_results(_raw(), "a dream", "en", analysis_version="2.1.0", bundles=bundles)

    assert bundle.source_text == "a dream"
    assert bundle.language == "en"
    assert bundle.analysis_version == "2.1.0"
    assert bundle.timestamp
    assert bundle.confidence == 75
    assert bundle.has_metamorphosis is None
    assert bundle.hide_emotion_cards is None


def test_malformed_theme_spans_are_dropped(bundles):
    raw = _raw(thematic={"themes": [
        {"theme": "chase", "confidence": 0.5, "evidenceSpans": [4, "x", None, 9.0, True, float("nan")]},
        {"theme": "fall", "confidence": 0.2, "evidenceSpans": "0-12"},
    ]})

    themes = merge_raw_results(raw, "text", "en", bundles=bundles).themes

    assert themes[0].evidence_spans == [4, 9]
    assert themes[1].evidence_spans == []


def test_malformed_sections_fall_back_to_defaults(bundles):
    raw = _raw(
        emotion={"valenceBalance": [10, 85, 5], "secondaryEmotions": "fear"},
        quantitative={"characters": 3, "setting": "house"},
        sleep={"sleepStageEstimate": "REM", "circadianFactors": None},
        continuity={"realityTesting": "high", "continuityTypes": [40]},
        thematic={"themes": {"theme": "fear"}},
    )

    bundle = merge_raw_results(raw, "text", "en", bundles=bundles)

    assert (bundle.emotions.pos, bundle.emotions.neg, bundle.emotions.neu) == (0, 0, 100)
    assert bundle.entities.total() == 0
    assert bundle.sleep.stage == "unknown"
    assert bundle.plausibility.overall == 0
    assert bundle.continuity.thematic == 0
    assert bundle.themes == []


def test_unhashable_enum_values_use_defaults(bundles):
    raw = _raw(
        emotion={"primaryEmotion": {"emotion": "fear", "valence": ["neg"]}},
        sleep={"sleepStageEstimate": {"estimatedSleepStage": ["REM"]}},
        thematic={"themes": [{"theme": "chase", "strength": {"high": 1}, "evidence_level": ["x"]}]},
    )

    bundle = merge_raw_results(raw, "text", "en", bundles=bundles)

    assert bundle.emotions.labels[0].valence == "neu"
    assert bundle.sleep.stage == "unknown"
    assert (bundle.themes[0].strength, bundle.themes[0].evidence_level) == ("low", "low")
