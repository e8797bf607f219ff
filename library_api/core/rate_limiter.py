# library_api/core/rate_limiter.py
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request

from library_api.core.config import RATE_LIMIT_ENABLED
from library_api.core.errors import error_body

# In-memory storage; pass storage_uri="redis://..." for multi-process deployments.
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)


def get_rate_limiter() -> Limiter:
    return limiter


def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content=error_body(request.url.path, f"Rate limit exceeded: {exc.detail}", "rate_limited"),
    )
