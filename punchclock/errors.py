from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class PunchclockError(Exception):
    """Base for storage-facing failures.

    ``step`` names the operation that failed (``lookup_user_state``,
    ``commit_clock_out``, ...) so callers and logs can tell where a
    transition broke off.
    """

    def __init__(self, message: str, *, step: str, uid: int | None = None):
        super().__init__(message)
        self.message = message
        self.step = step
        self.uid = uid

    def log_context(self) -> dict[str, object]:
        return {"step": self.step, "uid": self.uid, "error": self.message}


class TransactionError(PunchclockError):
    """Begin, lookup or commit failed inside a transition; already rolled back."""


class RecordLookupError(PunchclockError, LookupError):
    """An expected row is absent or could not be read."""


class ScanError(PunchclockError):
    """A stored row does not have the expected shape."""


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)


def classify_domain_error(exc: PunchclockError) -> tuple[int, str]:
    if isinstance(exc, TransactionError):
        if isinstance(exc.__cause__, RecordLookupError):
            return 404, "USER_STATE_NOT_FOUND"
        if isinstance(exc.__cause__, ScanError):
            return 500, "CORRUPT_ROW"
        return 503, "TRANSACTION_FAILED"
    if isinstance(exc, RecordLookupError):
        return 404, "NOT_FOUND"
    if isinstance(exc, ScanError):
        return 500, "CORRUPT_ROW"
    return 500, "INTERNAL_ERROR"
