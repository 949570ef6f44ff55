"""Error taxonomy for the fusion engine."""

from __future__ import annotations


class FusionError(Exception):
    """Base class for every failure raised by the engine."""


class ValidationError(FusionError):
    """Malformed or inconsistent input, detected before any computation."""

    def __init__(self, message: str, index: int | None = None):
        super().__init__(message)
        self.index = index


class ProcessingError(FusionError):
    """Failure while interpolating, matching, or computing metrics."""
