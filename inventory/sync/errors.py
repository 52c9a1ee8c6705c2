"""Exceptions raised by the import pipeline."""

from __future__ import annotations


class ImportPipelineError(Exception):
    """Base exception for import pipeline errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class DraftValidationError(ImportPipelineError):
    """Row cannot become a valid draft; reported as skipped, not failed."""

    pass


class MissingRequiredField(DraftValidationError):
    """A column mapped as required was empty or absent."""

    def __init__(self, field: str, column: str | None = None):
        self.field = field
        self.column = column
        super().__init__(f"Required field {field} is missing")


class TagCollisionError(ImportPipelineError):
    """No unique asset tag could be produced within the retry limit."""

    pass


class UnsupportedSourceError(ImportPipelineError):
    """Source cannot be used for the requested operation (e.g. not snapshot-capable)."""

    pass


class RunAlreadyFinishedError(ImportPipelineError):
    """An import sync run is immutable once finished."""

    pass
