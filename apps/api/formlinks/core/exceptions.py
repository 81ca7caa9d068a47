"""Domain errors for the form-link workflow.

Each error carries a ``reason`` (the stable taxonomy name returned in the
response envelope), a human-readable ``message`` and the HTTP status the API
layer renders it with.
"""

from typing import Any


class FormLinkError(Exception):
    reason = "Error"
    status_code = 400
    default_message = "Form link request failed"

    def __init__(self, message: str | None = None, *, errors: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class NotFoundError(FormLinkError):
    reason = "NotFound"
    status_code = 404
    default_message = "Form link not found"


class ExpiredError(FormLinkError):
    reason = "Expired"
    status_code = 410
    default_message = "This form link has expired"


class AlreadyUsedError(FormLinkError):
    reason = "AlreadyUsed"
    status_code = 409
    default_message = "This form has already been submitted"


class AlreadyFinalizedError(FormLinkError):
    reason = "AlreadyFinalized"
    status_code = 409
    default_message = "This form has already been reviewed"


class InvalidStateTransitionError(FormLinkError):
    reason = "InvalidStateTransition"
    status_code = 409
    default_message = "Form link is not in a state that allows this action"


class PermissionDeniedError(FormLinkError):
    reason = "PermissionDenied"
    status_code = 403
    default_message = "Permission denied"


class FormValidationError(FormLinkError):
    reason = "ValidationError"
    status_code = 422
    default_message = "Invalid form data"


class PersistenceError(FormLinkError):
    reason = "PersistenceError"
    status_code = 500
    default_message = "Failed to persist form link changes"


class CollisionExhaustedError(FormLinkError):
    reason = "CollisionExhausted"
    status_code = 503
    default_message = "Could not generate a unique identifier"


REASON_TO_ERROR: dict[str, type[FormLinkError]] = {
    cls.reason: cls
    for cls in (
        NotFoundError,
        ExpiredError,
        AlreadyUsedError,
        AlreadyFinalizedError,
        InvalidStateTransitionError,
        PermissionDeniedError,
        FormValidationError,
        PersistenceError,
        CollisionExhaustedError,
    )
}
