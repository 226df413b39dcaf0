"""Typed errors raised by the proposal engine."""

from enum import Enum


class ErrorCode(str, Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    VALIDATION = "VALIDATION"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"


HTTP_STATUS = {
    ErrorCode.UNAUTHENTICATED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.CONFLICT: 409,
    ErrorCode.VALIDATION: 422,
    ErrorCode.UPSTREAM_FAILURE: 502,
}


class ProposalError(Exception):
    """Rejected proposal operation.

    ``detail`` is the user-facing reason; ``reason`` is a stable sub-code the
    client can branch on (e.g. ``ACTIVE_PROPOSAL_EXISTS``).
    """

    def __init__(self, code: ErrorCode, detail: str, reason: str | None = None):
        super().__init__(detail)
        self.code = code
        self.detail = detail
        self.reason = reason or code.value

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.code]

    def to_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code.value, "reason": self.reason}

    def __repr__(self) -> str:
        return f"ProposalError({self.code.value}, {self.reason}: {self.detail!r})"
