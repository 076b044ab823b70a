from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    AUTH = "auth"
    DB = "db"
    STORAGE = "storage"
    NETWORK = "network"
    UNKNOWN = "unknown"


# PostgREST code for "JSON object requested, multiple (or no) rows returned".
PGRST_NO_ROWS = "PGRST116"


class RemoteError(Exception):
    """
    A failed call to the hosted platform, already classified.

    `detail` is the upstream message and is only meant for logs.
    """

    def __init__(
        self,
        kind: ErrorKind,
        detail: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(detail)
        self.kind = kind
        self.detail = detail
        self.status = status
        self.code = code


def classify_response(service: str, status: int, body: Any) -> RemoteError:
    """
    Map an HTTP error response from Supabase to a RemoteError.

    service is "rest" (PostgREST rows and RPC) or "storage".
    PostgREST bodies look like {code, message, details, hint};
    Storage bodies like {statusCode, error, message}.
    """
    code: Optional[str] = None
    message = ""
    if isinstance(body, dict):
        raw_code = body.get("code") or body.get("error")
        code = str(raw_code) if raw_code is not None else None
        message = str(body.get("message") or body.get("msg") or body.get("error") or "")
    elif isinstance(body, str):
        message = body
    message = message or f"HTTP {status}"

    if status in (401, 403):
        kind = ErrorKind.AUTH
    elif service == "storage":
        kind = ErrorKind.STORAGE
    elif code == PGRST_NO_ROWS:
        kind = ErrorKind.NOT_FOUND
    elif service == "rest":
        kind = ErrorKind.DB
    else:
        kind = ErrorKind.UNKNOWN

    return RemoteError(kind, message, status=status, code=code)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Failure]


# HTTP status used when a Failure reaches the API edge.
HTTP_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.AUTH: 401,
    ErrorKind.DB: 502,
    ErrorKind.STORAGE: 502,
    ErrorKind.NETWORK: 502,
    ErrorKind.UNKNOWN: 500,
}
