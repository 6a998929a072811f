"""Classifiable failures raised by the scoring core.

Every rejection carries an HTTP status and a stable ``code`` so the client can
tell "not verified" from "not found" from "already done" from a bad request.
"""

from __future__ import annotations


class NinerError(Exception):
    status_code = 500
    code = "internal_error"
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"success": False, "error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class MalformedRequest(NinerError):
    status_code = 400
    code = "malformed_request"
    default_message = "Malformed request"


class NotVerified(NinerError):
    status_code = 403
    code = "not_verified"
    default_message = "Identity could not be verified"


class NotFound(NinerError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class AlreadyDone(NinerError):
    status_code = 409
    code = "already_done"
    default_message = "Already done"


class DataUnavailable(NinerError):
    """An upstream provider failed; nothing was scored against default metrics."""

    status_code = 502
    code = "data_unavailable"
    default_message = "Upstream data unavailable"
