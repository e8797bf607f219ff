# library_api/middleware/authentication.py
from typing import Awaitable, Callable, Optional, Set, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.security.utils import get_authorization_scheme_param
from jose import JWTError, jwt
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from library_api.core.config import SECRET_KEY, ALGORITHM
from library_api.core.errors import error_body

# Paths that do NOT require a bearer token.
PUBLIC_PATHS: Set[str] = {
    "/",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/ping-mongodb",
    "/api/v1/auth/token",
    "/api/v1/auth/register",
    "/api/v1/books",
    "/api/v1/equipment",
}

# Inventory and equipment are tenant-scoped by query parameter, not by principal.
PUBLIC_PREFIXES: Tuple[str, ...] = (
    "/docs/",
    "/redoc/",
    "/api/v1/books/",
    "/api/v1/equipment/",
)


def is_public_path(path: str) -> bool:
    if path in PUBLIC_PATHS:
        return True
    return path.startswith(PUBLIC_PREFIXES)


def _unauthorized(path: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=error_body(path, message, "unauthorized"),
        headers={"WWW-Authenticate": "Bearer"},
    )


class AuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = request.url.path
        request_id = getattr(request.state, "request_id", "N/A")

        if request.method == "OPTIONS" or is_public_path(path):
            return await call_next(request)

        authorization: Optional[str] = request.headers.get("Authorization")
        scheme, token = get_authorization_scheme_param(authorization or "")
        if not authorization or scheme.lower() != "bearer" or not token:
            logger.warning(f"RID:{request_id} Auth failed: No valid Bearer token for protected path {path}.")
            return _unauthorized(path, "Not authenticated")

        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except JWTError as e:
            logger.warning(f"RID:{request_id} Auth failed: Invalid token for path {path}. Error: {e}")
            return _unauthorized(path, f"Invalid token: {e}")

        username: Optional[str] = payload.get("sub")
        if username is None:
            logger.warning(f"RID:{request_id} Auth failed: 'sub' claim missing in token for path {path}.")
            return _unauthorized(path, "Invalid token: subject missing")

        request.state.username = username
        logger.debug(f"RID:{request_id} Auth successful for user '{username}' accessing {path}.")
        return await call_next(request)
