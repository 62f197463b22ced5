"""Pipeline orchestrator.

Invokes the stage adapters (emotion first, the rest concurrently), then
runs the five core nodes in strict sequence, collecting per-node timing
into a structured report:

    adapters -> merge -> normalize -> validation -> derive -> heal
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from .adapters import StageAdapters, Translator, invoke_stages
from .config import Settings, get_settings, load_all_bundles
from .errors import DegenerateInput
from .models import Demographics, OrchestrationResult
from .nodes import derive, heal, merge, normalize, validation
from .timing import build_report, collect_metrics

log = logging.getLogger(__name__)


async def orchestrate(
    dream_text: str,
    language: str,
    demographics: Optional[Demographics] = None,
    translate: Optional[Translator] = None,
    *,
    adapters: StageAdapters,
    settings: Optional[Settings] = None,
) -> OrchestrationResult:
    """Analyse *dream_text* and return the validated bundle plus raw results.

    Raises ``DegenerateInput`` for empty text and ``AdapterFailure`` when any
    stage adapter fails; no partial bundle is ever returned.
    """
    if not isinstance(dream_text, str) or not dream_text.strip():
        raise DegenerateInput("dream text must be a non-empty string")

    settings = settings or get_settings()
    bundles = load_all_bundles(settings.patterns_dir)
    log.info("Starting analysis: language=%s text_length=%d", language, len(dream_text))

    t0 = time.monotonic_ns()
    try:
        with collect_metrics() as metrics:
            # ----------------------------------------------------------
            # Stage adapters
            # ----------------------------------------------------------
            raw = await invoke_stages(
                adapters, dream_text, language, demographics, translate, settings,
            )

            # ----------------------------------------------------------
            # Core nodes, strictly sequential
            # ----------------------------------------------------------
            bundle = merge.merge_raw_results(
                raw, dream_text, language, settings.analysis_version, bundles,
            )
            bundle = normalize.normalize_bundle(bundle, settings.theme_normalization)
            bundle, violations = validation.validate_bundle(bundle)
            bundle = derive.derive_fields(bundle, dream_text, bundles)
            bundle = heal.apply_auto_healing(bundle)
    except Exception:
        log.exception("Analysis failed")
        raise

    report = build_report(metrics)
    report["total_duration_ms"] = (time.monotonic_ns() - t0) // 1_000_000
    report["violations"] = len(violations)

    log.info(
        "Analysis complete: %d theme(s), %d emotion label(s), %d entities, stage=%s | "
        "total=%dms (adapters=%dms, core=%dms)",
        len(bundle.themes), len(bundle.emotions.labels), bundle.entities.total(),
        bundle.sleep.stage, report["total_duration_ms"],
        report["adapter_duration_ms"], report["core_duration_ms"],
    )

    return OrchestrationResult(
        bundle=bundle,
        raw_results=raw,
        validation_results=violations,
        report=report,
    )
