"""Exceptions raised by the dream analysis pipeline.

Consistency-rule violations are not exceptions: the validation node records
them as ``ValidationResult`` entries and corrects them in place.
"""

from __future__ import annotations


class AnalysisError(Exception):
    """Base class for failures that abort a whole analysis request."""


class DegenerateInput(AnalysisError):
    """The dream text violates a precondition (e.g. it is empty)."""


class AdapterFailure(AnalysisError):
    """A stage adapter raised or its underlying call failed."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage} adapter failed: {message}")
        self.stage = stage
