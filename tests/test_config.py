"""Tests for settings and pattern bundle loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from dream_analyzer.config import (
    PACKAGED_PATTERNS_DIR,
    PatternBundleError,
    get_available_locales,
    get_settings,
    load_all_bundles,
    load_pattern_bundle,
    reset_settings,
)


def _write_bundle(directory: Path, locale: str, **fields) -> None:
    data = {"bundleVersion": "1.0.0", "locale": locale, "patterns": [], "keywords": {}}
    data.update(fields)
    (directory / f"patterns.{locale}.json").write_text(json.dumps(data), encoding="utf-8")


# =====================================================================
# Settings
# =====================================================================

def test_default_settings():
    settings = get_settings()

    assert settings.analysis_version == "1.0.0"
    assert settings.theme_normalization == "max"
    assert settings.patterns_dir == PACKAGED_PATTERNS_DIR
    assert settings.adapters_path is None
    assert (settings.min_text_length, settings.max_text_length) == (20, 10000)


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DREAM_ANALYZER_ANALYSIS_VERSION", "2.0.0")
    monkeypatch.setenv("DREAM_ANALYZER_QUANT_MODEL", "qwen2.5:7b")
    monkeypatch.setenv("DREAM_ANALYZER_THEME_NORMALIZATION", "Softmax")
    monkeypatch.setenv("DREAM_ANALYZER_PATTERNS_DIR", str(tmp_path))
    monkeypatch.setenv("DREAM_ANALYZER_LOG_LEVEL", "debug")
    monkeypatch.setenv("DREAM_ANALYZER_MIN_TEXT_LENGTH", "5")

    settings = get_settings()

    assert settings.analysis_version == "2.0.0"
    assert settings.quant_model_version == "qwen2.5:7b"
    assert settings.theme_normalization == "softmax"
    assert settings.patterns_dir == tmp_path
    assert settings.log_level == "DEBUG"
    assert settings.min_text_length == 5


def test_unknown_theme_mode_falls_back_to_max(monkeypatch, caplog):
    monkeypatch.setenv("DREAM_ANALYZER_THEME_NORMALIZATION", "zscore")

    assert get_settings().theme_normalization == "max"
    assert "zscore" in caplog.text


def test_quantitative_backend_from_environment(monkeypatch, caplog):
    assert get_settings().quantitative_backend == "adapters"

    reset_settings()
    monkeypatch.setenv("DREAM_ANALYZER_QUANTITATIVE", "Ollama")
    assert get_settings().quantitative_backend == "ollama"

    reset_settings()
    monkeypatch.setenv("DREAM_ANALYZER_QUANTITATIVE", "openai")
    assert get_settings().quantitative_backend == "adapters"
    assert "openai" in caplog.text


def test_settings_are_cached():
    assert get_settings() is get_settings()


# =====================================================================
# Pattern bundles
# =====================================================================

def test_packaged_bundles_load():
    bundles = load_all_bundles(PACKAGED_PATTERNS_DIR)

    assert [b.locale for b in bundles] == ["tr", "en"]
    for bundle in bundles:
        assert bundle.rules("metamorphosis")
        assert bundle.words("entity_people")
        assert all(rule.weight > 0 for rule in bundle.rules("bizarreness"))


def test_default_locale_from_active_file():
    assert load_pattern_bundle(patterns_dir=PACKAGED_PATTERNS_DIR).locale == "tr"


def test_bundles_are_loaded_once():
    first = load_pattern_bundle("en", PACKAGED_PATTERNS_DIR)

    assert load_pattern_bundle("en", PACKAGED_PATTERNS_DIR) is first


def test_missing_active_file_defaults_to_turkish(tmp_path):
    _write_bundle(tmp_path, "tr")

    assert get_available_locales(tmp_path) == ["tr"]
    assert [b.locale for b in load_all_bundles(tmp_path)] == ["tr"]


def test_missing_locale_file(tmp_path):
    with pytest.raises(PatternBundleError, match="patterns.en.json"):
        load_pattern_bundle("en", tmp_path)


def test_locale_mismatch(tmp_path):
    _write_bundle(tmp_path, "en")
    (tmp_path / "patterns.en.json").rename(tmp_path / "patterns.tr.json")

    with pytest.raises(PatternBundleError, match="Locale mismatch"):
        load_pattern_bundle("tr", tmp_path)


@pytest.mark.parametrize("fields", [
    {"bundleVersion": "2.0.0"},
    {"patterns": [{"id": "x", "category": "dialogue"}]},
    {"patterns": [{"id": "x", "category": "dialogue", "regex": "a", "weight": -1}]},
    {"keywords": {"emotional": "not-a-list"}},
])
def test_schema_errors(tmp_path, fields):
    _write_bundle(tmp_path, "en", **fields)

    with pytest.raises(PatternBundleError, match="Invalid pattern bundle"):
        load_pattern_bundle("en", tmp_path)


def test_malformed_json(tmp_path):
    (tmp_path / "patterns.en.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(PatternBundleError):
        load_pattern_bundle("en", tmp_path)
