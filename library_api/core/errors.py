# library_api/core/errors.py
from typing import Any, Dict, Optional

from fastapi import status

# Responses under this prefix use the lending envelope ({"success": false, ...}).
LENDING_PATH_PREFIX = "/api/v1/lending"


class LibraryError(Exception):
    """Base class for errors raised by the core modules and mapped to HTTP responses."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind: str = "unexpected"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LibraryError):
    """Missing or malformed input (absent company, non-numeric cost, bad id format...)."""
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "validation"


class NotFoundError(LibraryError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class ConflictError(LibraryError):
    """The request is well formed but the current state forbids it (e.g. copy already borrowed)."""
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "conflict"


class UnexpectedError(LibraryError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "unexpected"


def error_body(path: str, message: str, kind: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build the failure envelope for the given request path."""
    body: Dict[str, Any] = {"message": message, "kind": kind}
    if path.startswith(LENDING_PATH_PREFIX):
        body = {"success": False, **body}
    if extra:
        body.update(extra)
    return body
