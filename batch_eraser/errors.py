from __future__ import annotations


class InputError(ValueError):
    """Processing was requested without a usable mask rectangle."""


class DecodeError(ValueError):
    """An image or settings file could not be read."""


class GenerationError(RuntimeError):
    """The external generation call failed or returned no image."""


class BatchCancelledError(RuntimeError):
    """The batch was cancelled between items; no results are kept."""
