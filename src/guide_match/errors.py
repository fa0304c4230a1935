"""Error taxonomy shared by the token, selection and review layers.

Every caller-visible failure collapses to a small set of public
categories.  The ``message`` passed to the constructor is for server-side
logs only; clients only ever see ``category`` and ``public_message``.

``LOST_RACE`` and ``ALREADY_RESOLVED`` are not errors -- see
:class:`guide_match.matching.arbiter.RespondOutcome`.
"""

from __future__ import annotations


class GuideMatchError(Exception):
    """Base class for errors that map onto a public API category."""

    category: str = "internal_error"
    status_code: int = 500
    public_message: str = "An unexpected error occurred."
    retryable: bool = False


class ConfigError(GuideMatchError):
    """Missing or unusable configuration. Raised at startup, never caught."""


class TokenInvalid(GuideMatchError):
    category = "invalid_token"
    status_code = 401
    public_message = "This link is invalid."


class TokenExpired(GuideMatchError):
    category = "expired_token"
    status_code = 401
    public_message = "This link has expired."


class SelectionNotFound(TokenInvalid):
    """Identifier triple did not match a stored selection.

    Subclasses :class:`TokenInvalid` so the two are indistinguishable to a
    client probing for valid identifiers.
    """


class ReviewConflict(GuideMatchError):
    category = "conflict"
    status_code = 409
    public_message = "A review already exists for this request."


class ValidationError(GuideMatchError):
    category = "validation_error"
    status_code = 422
    public_message = "The submitted data is invalid."


class StorageTimeout(GuideMatchError):
    """A database call exceeded its time budget. Safe for the caller to retry."""

    category = "retryable"
    status_code = 503
    public_message = "The service is busy. Please try again."
    retryable = True


class StorageConflict(GuideMatchError):
    """The database aborted a transaction (deadlock or serialization failure)
    and no winner was committed. Safe for the caller to retry."""

    category = "retryable"
    status_code = 503
    public_message = "The service is busy. Please try again."
    retryable = True
