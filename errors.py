# errors.py - Exceptions raised by the ebook generator


class EbookError(Exception):
    """Base class for all generator errors."""


class InputValidationError(EbookError):
    """Request rejected before any Gemini call was made."""


class BackendError(EbookError):
    """A Gemini call failed or returned nothing usable."""


class GenerationError(EbookError):
    """Terminal pipeline error.

    The chapters finished before the failure are kept on the exception so the
    caller can inspect them or render them anyway.
    """

    def __init__(self, message, chapters=None, outline=None):
        super().__init__(message)
        self.chapters = list(chapters or [])
        self.outline = outline


class GenerationCancelled(GenerationError):
    """The caller asked to stop between two generation steps."""
