"""Error taxonomy shared by the data-access layer, pipeline and views."""

from __future__ import annotations


class MapEngineError(Exception):
    """Base class for all application errors."""


class ValidationError(MapEngineError):
    """Bad input, detected before any database or storage call."""


class InvalidTransition(ValidationError):
    """An upload status change that would leave a terminal state."""


class ProviderError(MapEngineError):
    """A database or storage call failed; the message is passed through as-is."""


class NotFound(ProviderError):
    pass


class ExtractionError(MapEngineError):
    """PDF text extraction failed or the AI response was malformed."""


class NotAuthenticated(MapEngineError):
    pass
