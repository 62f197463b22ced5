"""Shared Ollama HTTP helper for LLM-backed stage adapters.

Provides a single async function that handles the HTTP call, Markdown
fence stripping and JSON parsing.
"""

from __future__ import annotations

import json
import logging
import re

import httpx

log = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


async def call_ollama(
    ollama_url: str,
    model_name: str,
    system_prompt: str,
    user_prompt: str,
    client: httpx.AsyncClient | None = None,
) -> dict:
    """Send a prompt to Ollama's ``/api/generate`` endpoint and return
    the parsed JSON response body.

    Raises on HTTP errors or malformed JSON so callers can decide whether
    to retry.  Pass *client* to reuse a connection pool.
    """
    payload = {
        "model": model_name,
        "prompt": user_prompt,
        "system": system_prompt,
        "stream": False,
        "format": "json",
        "options": {"num_predict": -1},
    }

    if client is None:
        async with httpx.AsyncClient(timeout=None) as own_client:
            resp = await own_client.post(f"{ollama_url}/api/generate", json=payload)
    else:
        resp = await client.post(f"{ollama_url}/api/generate", json=payload)
    resp.raise_for_status()

    raw = strip_code_fence(resp.json().get("response", ""))
    log.debug("Ollama responded (%d chars)", len(raw))
    return json.loads(raw)


def strip_code_fence(text: str) -> str:
    return _FENCE.sub("", text.strip())
