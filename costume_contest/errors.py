"""Exception taxonomy shared by the contest operations."""
from __future__ import annotations


class ContestError(Exception):
    """Base class for every error raised by costume_contest."""


class ContestValidationError(ContestError, ValueError):
    """Input or state rejected before anything was written."""

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class VoteRejected(ContestValidationError):
    """A vote that the current contest settings do not allow."""


class DuplicateCostume(ContestValidationError):
    """The user already has a costume submission."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            "You already have a costume submission. Please edit or delete it first.",
            reason="duplicate_costume",
        )
        self.user_id = user_id


class PermissionDenied(ContestError):
    """The acting user is not allowed to perform the operation."""


class StoreError(ContestError):
    """A read, write or subscription against the document store failed."""


class NotFound(StoreError):
    """The requested document or object does not exist."""


class UploadError(ContestError):
    """Image validation or object storage failure."""
