import pytest

from dream_analyzer.config import (
    PACKAGED_PATTERNS_DIR,
    Settings,
    load_all_bundles,
    reset_settings,
)

from tests.fakes import FakeStages

_ENV_VARS = (
    "DREAM_ANALYZER_LOG_LEVEL",
    "DREAM_ANALYZER_ANALYSIS_VERSION",
    "DREAM_ANALYZER_QUANT_MODEL",
    "DREAM_ANALYZER_THEME_NORMALIZATION",
    "DREAM_ANALYZER_PATTERNS_DIR",
    "DREAM_ANALYZER_ADAPTERS",
    "DREAM_ANALYZER_QUANTITATIVE",
    "DREAM_ANALYZER_MIN_TEXT_LENGTH",
    "DREAM_ANALYZER_MAX_TEXT_LENGTH",
)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Isolate every test from the caller's environment and cached config."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def bundles():
    return load_all_bundles(PACKAGED_PATTERNS_DIR)


@pytest.fixture
def stages():
    return FakeStages()
