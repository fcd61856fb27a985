"""Failures raised by the nonce protocol and the gate.

Domain failures (everything except ``Internal``) mean the request itself is
wrong and must not be retried as-is. ``Internal`` means a collaborator (store,
cache, verifier backend) is unavailable and the caller may retry later.
"""


class GateError(Exception):
    reason_code = "ERROR"
    http_status = 400

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.reason_code)
        self.detail = detail or self.reason_code


class NotFound(GateError):
    http_status = 404

    def __init__(self, what: str):
        super().__init__(f"{what} not found")
        self.what = what

    @property
    def reason_code(self) -> str:
        return f"{self.what.upper()}_NOT_FOUND"


class InvalidArgument(GateError):
    reason_code = "INVALID_ARGUMENT"
    http_status = 422


class InvalidSignature(GateError):
    reason_code = "INVALID_SIGNATURE"
    http_status = 400


class MalformedCode(GateError):
    reason_code = "MALFORMED_CODE"
    http_status = 400


class AlreadyCheckedIn(GateError):
    reason_code = "ALREADY_CHECKED_IN"
    http_status = 409

    def __init__(self, ticket, detail: str | None = None):
        super().__init__(detail)
        self.ticket = ticket


class Internal(GateError):
    reason_code = "INTERNAL"
    http_status = 503
