"""Node 5 - Heal.

Sets the presentation-suppression flags from the final bundle state.
No other field is touched.
"""

from __future__ import annotations

import copy
import logging

from ..models import AnalysisBundle
from ..timing import timed_node

log = logging.getLogger(__name__)


@timed_node("heal", "core")
def apply_auto_healing(bundle: AnalysisBundle) -> AnalysisBundle:
    healed = copy.copy(bundle)
    healed.hide_emotion_cards = not bundle.emotions.labels
    healed.hide_sleep_percentages = bundle.sleep.stage == "unknown"
    healed.hide_continuity_data = not bundle.continuity.has_day_data

    log.info("Heal: hide emotion=%s sleep=%s continuity=%s",
             healed.hide_emotion_cards, healed.hide_sleep_percentages,
             healed.hide_continuity_data)
    return healed
