"""Error kinds raised by the suppression engine.

Every error carries an ErrorKind so transports can serialize it without
matching on exception classes.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_NOTICE = "InvalidNotice"
    INVALID_PATTERN = "InvalidPattern"
    DUPLICATE_RULE = "DuplicateRule"
    STORAGE_UNAVAILABLE = "StorageUnavailable"
    UNAUTHORIZED = "Unauthorized"


class SuppressionError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind

    @property
    def retryable(self) -> bool:
        # Only persistence failures may succeed on a second attempt.
        return self.kind is ErrorKind.STORAGE_UNAVAILABLE


class InvalidNotice(SuppressionError):
    """Notice content is empty once markup and whitespace are removed."""

    kind = ErrorKind.INVALID_NOTICE


class InvalidPattern(SuppressionError):
    """Rule value is empty or the rule type is unknown."""

    kind = ErrorKind.INVALID_PATTERN


class DuplicateRule(SuppressionError):
    """A rule with the same type and value already exists."""

    kind = ErrorKind.DUPLICATE_RULE


class StorageUnavailable(SuppressionError):
    """The backing store failed or timed out."""

    kind = ErrorKind.STORAGE_UNAVAILABLE


class Unauthorized(SuppressionError):
    """The authorization collaborator denied a mutating call."""

    kind = ErrorKind.UNAUTHORIZED
