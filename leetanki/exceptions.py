"""
Error taxonomy for the review core.

Item-level problems (MalformedEvent, UnknownOutcome) are logged and absorbed
by the component that detects them. StorageUnavailable propagates to the
caller. BatchProcessingError wraps whatever escaped a single ingestion batch.
"""

from __future__ import annotations


class LeetAnkiError(Exception):
    """Base class for review core errors."""


class StorageUnavailable(LeetAnkiError):
    """The persistence layer could not be reached."""


class MalformedEvent(LeetAnkiError):
    """A completion event is missing its item id or carries a bad timestamp."""

    def __init__(self, message: str, raw: object | None = None):
        super().__init__(message)
        self.raw = raw


class UnknownOutcome(LeetAnkiError):
    """An outcome string outside again/hard/good/easy."""

    def __init__(self, value: object):
        super().__init__(f"Unknown review outcome: {value!r}")
        self.value = value


class BatchProcessingError(LeetAnkiError):
    """Raised (and recorded) when folding one batch into the store fails."""

    def __init__(self, batch_number: int, cause: BaseException):
        super().__init__(f"Batch #{batch_number} failed: {cause}")
        self.batch_number = batch_number
        self.cause = cause
