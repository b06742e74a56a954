"""
Custom exceptions for nupsheet.

This module defines all custom exceptions raised by the layout engine.
"""


class NupSheetError(Exception):
    """Base exception for all nupsheet errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def default_message(self) -> str:
        return "An unknown nupsheet error occurred."


class UnsupportedModeError(NupSheetError, ValueError):
    """Raised when a pages-per-sheet value outside {1, 2, 4} is requested."""

    def __init__(self, mode: object = None, message: str = "") -> None:
        self.mode = mode
        if not message and mode is not None:
            message = f"Unsupported pages-per-sheet value: {mode!r} (expected 1, 2 or 4)"
        super().__init__(message)

    @property
    def default_message(self) -> str:
        return "Unsupported pages-per-sheet value."


class DocumentProcessingError(NupSheetError):
    """Raised when a PDF cannot be parsed, embedded or serialized."""

    @property
    def default_message(self) -> str:
        return "Failed to process PDF document."
