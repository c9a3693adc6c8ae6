"""Errors raised by the progress stores."""
from typing import Optional


class ProgressError(Exception):
    """Base class for progress store errors."""

    def __init__(self, message: str, user_id: Optional[int] = None, item_id: Optional[int] = None):
        super().__init__(message)
        self.user_id = user_id
        self.item_id = item_id


class ValidationError(ProgressError):
    """A required field is missing or a value is not acceptable."""


class UnknownReference(ValidationError):
    """The referenced user or content item does not exist."""


class UniquenessViolation(ProgressError):
    """A progress record already exists for the (user, item) pair."""


class NotFound(ProgressError):
    """No progress record exists for the (user, item) pair."""
