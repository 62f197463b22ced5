"""Stage adapter contract and invocation.

The five analysis stages are supplied by the caller as plain callables
(sync or async).  ``invoke_stages`` runs the emotion stage first, because
the quantitative stage consumes its result, then runs the remaining four
concurrently and joins them.  Any adapter failure aborts the whole
invocation and cancels the calls still in flight.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from .config import Settings
from .errors import AdapterFailure
from .models import Demographics, QuantitativeOptions, RawAnalysisResults
from .ollama_quantitative import OllamaQuantitativeAdapter
from .timing import record_duration

log = logging.getLogger(__name__)

Translator = Callable[..., str]


@dataclass(frozen=True)
class StageAdapters:
    """The five analysis stages.

    Signatures::

        emotion(text, language) -> dict
        quantitative(text, language, options: QuantitativeOptions) -> dict | None
        sleep(text, bedtime, emotion_intensity, language) -> dict
        continuity(text, demographics, language) -> dict
        thematic(text, language, translate) -> dict
    """

    emotion: Callable[..., Any]
    quantitative: Callable[..., Any]
    sleep: Callable[..., Any]
    continuity: Callable[..., Any]
    thematic: Callable[..., Any]


def load_adapters(path: str) -> StageAdapters:
    """Resolve ``"package.module:factory"`` and call the factory."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Adapter path must look like 'module:factory', got {path!r}")

    factory = getattr(importlib.import_module(module_name), attr)
    adapters = factory() if callable(factory) else factory
    if not isinstance(adapters, StageAdapters):
        raise TypeError(f"{path} did not produce StageAdapters (got {type(adapters).__name__})")
    log.info("Loaded stage adapters from %s", path)
    return adapters


def resolve_adapters(
    settings: Settings,
    adapters: Optional[StageAdapters] = None,
    path: Optional[str] = None,
) -> Optional[StageAdapters]:
    """Adapters for one app or CLI run.

    Explicit *adapters* win over *path*, which wins over
    ``settings.adapters_path``.  With ``quantitative_backend == "ollama"`` the
    quantitative stage is replaced by ``OllamaQuantitativeAdapter``.
    """
    path = path or settings.adapters_path
    if adapters is None and path:
        adapters = load_adapters(path)
    if adapters is None:
        return None

    if settings.quantitative_backend == "ollama":
        log.info("Quantitative stage served by Ollama at %s (model=%s)",
                 settings.ollama_base_url, settings.model_name)
        adapters = replace(adapters, quantitative=OllamaQuantitativeAdapter.from_settings(settings))
    return adapters


async def invoke_stages(
    adapters: StageAdapters,
    text: str,
    language: str,
    demographics: Optional[Demographics],
    translate: Optional[Translator],
    settings: Settings,
) -> RawAnalysisResults:
    """Run all five adapters and return their raw results."""

    # Emotion must finish before quantitative starts.
    emotion = await _call("emotion", adapters.emotion, text, language)

    bedtime = None
    if demographics is not None and demographics.sleep_patterns is not None:
        bedtime = demographics.sleep_patterns.bedtime
    log.debug("Sleep adapter bedtime hint: %r", bedtime)

    options = QuantitativeOptions(
        demographics=demographics,
        emotion_hint=emotion,
        model_version=settings.quant_model_version,
        settings={"allowFallback": False},
    )

    tasks = [
        asyncio.create_task(_call("quantitative", adapters.quantitative, text, language, options)),
        asyncio.create_task(_call("sleep", adapters.sleep, text, bedtime, None, language)),
        asyncio.create_task(_call("continuity", adapters.continuity, text, demographics, language)),
        asyncio.create_task(_call("thematic", adapters.thematic, text, language, translate)),
    ]
    try:
        quantitative, sleep, continuity, thematic = await asyncio.gather(*tasks)
    except BaseException:
        # Failure or cancellation: nothing partial survives.
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    return RawAnalysisResults(
        emotion=_require_dict("emotion", emotion),
        quantitative=None if quantitative is None else _require_dict("quantitative", quantitative),
        sleep=_require_dict("sleep", sleep),
        continuity=_require_dict("continuity", continuity),
        thematic=_require_dict("thematic", thematic),
    )


async def _call(stage: str, fn: Callable[..., Any], *args: Any) -> Any:
    """Invoke one adapter, timing it and wrapping failures."""
    t0 = time.monotonic_ns()
    try:
        if inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(getattr(fn, "__call__", None)):
            result = await fn(*args)
        else:
            result = await asyncio.to_thread(fn, *args)
            if inspect.isawaitable(result):
                result = await result
    except AdapterFailure:
        raise
    except asyncio.CancelledError:
        log.info("%s adapter cancelled", stage)
        raise
    except Exception as e:
        log.error("%s adapter raised %s: %s", stage, type(e).__name__, e)
        raise AdapterFailure(stage, str(e) or type(e).__name__) from e
    record_duration(stage, "adapter", t0)
    return result


def _require_dict(stage: str, value: Any) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise AdapterFailure(stage, f"expected a dict result, got {type(value).__name__}")
    return value
