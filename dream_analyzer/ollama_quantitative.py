"""LLM-backed quantitative stage adapter.

Extracts characters and the main setting from a dream report through an
Ollama model.  Retries on incomplete or malformed responses; the
orchestrator only ever sees the final result or an ``AdapterFailure``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import httpx

from .config import Settings, get_settings
from .errors import AdapterFailure
from .models import QuantitativeOptions
from .ollama_client import call_ollama

log = logging.getLogger(__name__)

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"
_SYSTEM_TEMPLATE = (_PROMPTS_DIR / "quantitative_system.txt").read_text(encoding="utf-8").strip()
_USER_TEMPLATE = (_PROMPTS_DIR / "quantitative_user.txt").read_text(encoding="utf-8").strip()

_LANGUAGE_NAMES = {"tr": "Turkish", "en": "English"}


class OllamaQuantitativeAdapter:
    """Callable matching the ``quantitative`` stage contract."""

    def __init__(
        self,
        ollama_url: str,
        model_name: str,
        max_attempts: int = 2,
        min_length: int = 20,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.ollama_url = ollama_url
        self.model_name = model_name
        self.max_attempts = max_attempts
        self.min_length = min_length
        self._client = client

    @classmethod
    def from_settings(
        cls, settings: Optional[Settings] = None, **kwargs
    ) -> "OllamaQuantitativeAdapter":
        """Build an adapter for the configured Ollama server and model."""
        settings = settings or get_settings()
        kwargs.setdefault("min_length", settings.min_text_length)
        return cls(settings.ollama_base_url, settings.model_name, **kwargs)

    async def __call__(
        self, text: str, language: str, options: QuantitativeOptions
    ) -> Optional[dict]:
        trimmed = text.strip()
        if len(trimmed) < self.min_length:
            log.info("Quantitative: text too short (%d < %d), skipping",
                     len(trimmed), self.min_length)
            return None

        system_prompt = _SYSTEM_TEMPLATE.format(
            language=_LANGUAGE_NAMES.get(language, "Turkish"),
        )
        user_prompt = _USER_TEMPLATE.format(
            emotion_hint=_dominant_emotion(options.emotion_hint) or "none",
            text=trimmed,
        )

        last_error = "no attempts made"
        for attempt in range(1, self.max_attempts + 1):
            log.info("Quantitative: attempt %d/%d model=%s length=%d",
                     attempt, self.max_attempts, self.model_name, len(trimmed))
            try:
                parsed = await call_ollama(
                    self.ollama_url, self.model_name, system_prompt, user_prompt,
                    client=self._client,
                )
            except (httpx.HTTPError, json.JSONDecodeError) as e:
                last_error = f"{type(e).__name__}: {e}"
                log.warning("Quantitative: attempt %d failed: %s", attempt, last_error)
                continue

            if not isinstance(parsed, dict) or not ("characters" in parsed or "setting" in parsed):
                last_error = "incomplete response"
                log.warning("Quantitative: attempt %d returned an incomplete response", attempt)
                continue

            return _coerce(parsed, options)

        raise AdapterFailure(
            "quantitative", f"no usable response after {self.max_attempts} attempt(s): {last_error}"
        )


def _coerce(parsed: dict, options: QuantitativeOptions) -> dict:
    """Keep only well-formed fields of the model output."""
    characters = [
        {
            "type": str(c["type"]).strip(),
            "count": int(c.get("count") or 1),
            "familiarity": c.get("familiarity") or "unfamiliar",
        }
        for c in parsed.get("characters") or []
        if isinstance(c, dict) and str(c.get("type") or "").strip()
    ]

    setting = parsed.get("setting") if isinstance(parsed.get("setting"), dict) else {}
    result = {
        "characters": characters,
        "setting": {
            "description": str(setting.get("description") or "").strip(),
            "location": setting.get("location") or "mixed",
        },
        "aggression": parsed.get("aggression") or 0,
        "friendliness": parsed.get("friendliness") or 0,
        "modelVersion": options.model_version,
    }

    dominant = _dominant_emotion(options.emotion_hint)
    if dominant:
        result["dominantEmotion"] = dominant
    return result


def _dominant_emotion(emotion: Optional[dict]) -> Optional[str]:
    if not emotion:
        return None
    primary = emotion.get("primaryEmotion")
    if isinstance(primary, dict) and primary.get("emotion"):
        return str(primary["emotion"])
    return None
