"""Node 4 - Derive.

Augments the validated bundle with signals read straight from the dream
text: the metamorphosis flag (and its plausibility penalty, re-applied now
that the flag is authoritative), keyword entities and a text-pattern
bizarreness score.
"""

from __future__ import annotations

import copy
import logging
from typing import Iterable, Optional

from ..config import PatternBundle, load_all_bundles
from ..detectors import (
    detect_bizarreness,
    detect_dialogue,
    detect_emotional_content,
    detect_metamorphosis,
    extract_entities_from_text,
)
from ..models import ENTITY_CATEGORIES, AnalysisBundle, EntityIndex
from ..timing import timed_node
from .validation import apply_metamorphosis_penalty

log = logging.getLogger(__name__)


@timed_node("derive", "core")
def derive_fields(
    bundle: AnalysisBundle,
    text: str,
    bundles: Optional[Iterable[PatternBundle]] = None,
) -> AnalysisBundle:
    """Return a copy of *bundle* with the text-derived fields filled in."""
    bundles = load_all_bundles() if bundles is None else tuple(bundles)
    derived = copy.deepcopy(bundle)

    derived.has_metamorphosis = detect_metamorphosis(text, bundles)

    text_entities = extract_entities_from_text(text, derived.language, bundles)
    derived.entities = union_entities(derived.entities, text_entities)

    text_bizarreness = detect_bizarreness(text, bundles)
    derived.plausibility.bizarreness = max(derived.plausibility.bizarreness, text_bizarreness)

    # Applied after the bizarreness update so ``overall`` reflects final values.
    derived.plausibility = apply_metamorphosis_penalty(
        derived.plausibility, derived.has_metamorphosis
    )

    # Day-residue data is not collected yet, so continuity is never shown.
    derived.continuity.has_day_data = False

    log.debug("Derive: dialogue=%s emotional_content=%s",
              detect_dialogue(text, bundles), detect_emotional_content(text, bundles))
    log.info("Derive: metamorphosis=%s, text bizarreness=%.0f, %d entities",
             derived.has_metamorphosis, text_bizarreness, derived.entities.total())
    return derived


def union_entities(base: EntityIndex, extra: EntityIndex) -> EntityIndex:
    """Order-preserving set union per category."""
    return EntityIndex(**{
        name: list(dict.fromkeys([*getattr(base, name), *getattr(extra, name)]))
        for name in ENTITY_CATEGORIES
    })
