"""Display helpers for bundle percentages."""

from __future__ import annotations


def format_percent(value: float, language: str = "tr") -> str:
    """Clamp to 0-100 and format with one decimal.

    Values strictly between 0 and 1 render as "less than one percent" so
    a tiny share never shows up as ``0.4%``.
    """
    clamped = max(0.0, min(100.0, float(value)))
    if 0 < clamped < 1:
        return "< %1" if language == "tr" else "<1%"
    return f"{clamped:.1f}%"
