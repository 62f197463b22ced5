"""
Tests for the HTTP surface.
===========================
POST /analyze, GET /analyze and GET /health through FastAPI's TestClient.
"""

from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from dream_analyzer.main import create_app
from dream_analyzer.ollama_quantitative import OllamaQuantitativeAdapter

from tests.fakes import DREAM_TEXT, FakeStages


@pytest.fixture
def client(stages, settings):
    return TestClient(create_app(adapters=stages.adapters(), settings=settings))


# =====================================================================
# POST /analyze
# =====================================================================

def test_analyze_returns_bundle(client):
    resp = client.post("/analyze", json={"dreamText": DREAM_TEXT, "language": "en"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    data = body["data"]
    assert data["language"] == "en"
    assert data["hasMetamorphosis"] is True
    assert data["hideSleepPercentages"] is True
    assert data["emotions"]["tone"] == "negative"
    assert data["plausibility"]["physical"] == 50
    assert "prob" not in data["sleep"]
    assert data["entities"]["people"] == ["mother"]


def test_analyze_passes_demographics(stages, settings):
    client = TestClient(create_app(adapters=stages.adapters(), settings=settings))

    resp = client.post("/analyze", json={
        "dreamText": DREAM_TEXT,
        "language": "en",
        "demographics": {"age": 34, "sleepPatterns": {"bedtime": "01:15"}},
    })

    assert resp.status_code == 200
    assert stages.calls["sleep"][1] == "01:15"
    assert stages.calls["continuity"][1].age == 34


@pytest.mark.parametrize("payload,fragment", [
    ({"dreamText": DREAM_TEXT, "language": "de"}, "language"),
    ({"dreamText": "too short", "language": "en"}, "at least 20"),
    ({"dreamText": "x" * 10001, "language": "tr"}, "less than 10000"),
])
def test_analyze_rejects_bad_input(client, payload, fragment):
    resp = client.post("/analyze", json=payload)

    assert resp.status_code == 400
    assert fragment in resp.json()["detail"]


def test_analyze_without_adapters_is_unavailable(settings):
    client = TestClient(create_app(settings=settings))

    resp = client.post("/analyze", json={"dreamText": DREAM_TEXT, "language": "en"})

    assert resp.status_code == 503


def test_adapter_failure_returns_500(settings):
    stages = FakeStages(continuity=RuntimeError("continuity store down"))
    client = TestClient(create_app(adapters=stages.adapters(), settings=settings))

    resp = client.post("/analyze", json={"dreamText": DREAM_TEXT, "language": "en"})

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Analysis failed"
    assert "continuity" in body["message"]


def test_whitespace_text_is_degenerate(client):
    resp = client.post("/analyze", json={"dreamText": " " * 30, "language": "en"})

    assert resp.status_code == 500
    assert resp.json()["error"] == "Analysis failed"


def test_missing_field_is_422_with_preview(client):
    resp = client.post("/analyze", json={"language": "en"})

    assert resp.status_code == 422
    body = resp.json()
    assert body["detail"]
    assert '"language"' in body["body_preview"]


# =====================================================================
# GET endpoints
# =====================================================================

def test_describe_endpoint(client):
    resp = client.get("/analyze")

    assert resp.status_code == 200
    assert resp.json()["message"] == "Dream Analysis API"
    assert "POST" in resp.json()["endpoints"]


def test_health(client, settings):
    assert client.get("/health").json() == {"status": "ok", "adapters": True}

    bare = TestClient(create_app(settings=settings))
    assert bare.get("/health").json() == {"status": "ok", "adapters": False}


def test_adapters_loaded_from_settings_path(settings):
    app = create_app(settings=replace(settings, adapters_path="tests.fakes:build_adapters"))

    assert TestClient(app).get("/health").json()["adapters"] is True


def test_ollama_backend_replaces_quantitative_stage(stages, settings):
    app = create_app(
        adapters=stages.adapters(),
        settings=replace(settings, quantitative_backend="ollama",
                         ollama_base_url="http://gpu-box:11434", model_name="qwen2.5:7b"),
    )

    quantitative = app.state.adapters.quantitative
    assert isinstance(quantitative, OllamaQuantitativeAdapter)
    assert quantitative.ollama_url == "http://gpu-box:11434"
    assert quantitative.model_name == "qwen2.5:7b"
    assert app.state.adapters.emotion == stages.emotion
