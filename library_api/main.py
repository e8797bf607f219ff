# library_api/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status as fastapi_status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from pymongo.errors import PyMongoError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from library_api.api.v1.api import api_router_v1
from library_api.core.config import CORS_ORIGINS, setup_logging
from library_api.core.errors import LibraryError, error_body
from library_api.core.rate_limiter import get_rate_limiter, rate_limit_exception_handler
from library_api.db import database
from library_api.middleware.authentication import AuthMiddleware
from library_api.middleware.logging import RequestLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application startup...")
    await database.init_db()
    logger.info("Database initialized.")
    yield
    logger.info("Application shutdown...")
    database.close_db()


app = FastAPI(
    title="Library Lending API",
    description="Copy-group inventory and lending tracker for libraries and equipment rooms.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- Error handling ---

app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)


@app.exception_handler(LibraryError)
async def library_exception_handler(request: Request, exc: LibraryError):
    if exc.status_code >= 500:
        logger.error(f"{exc.kind}: {exc.message}")
    else:
        logger.warning(f"{exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(request.url.path, exc.message, exc.kind))


@app.exception_handler(RequestValidationError)
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc):
    # ctx may hold the raw exception object, which is not JSON serializable
    errors = jsonable_encoder([{k: v for k, v in err.items() if k not in ("ctx", "url")} for err in exc.errors()])
    logger.warning(f"Validation Error: {errors}")
    return JSONResponse(
        status_code=fastapi_status.HTTP_400_BAD_REQUEST,
        content=error_body(request.url.path, "Validation Error", "validation", {"errors": errors}),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP Exception: Status={exc.status_code}, Detail={exc.detail}")
    kind = "not_found" if exc.status_code == 404 else "http"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request.url.path, str(exc.detail), kind),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled Exception: {exc}")
    return JSONResponse(
        status_code=fastapi_status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request.url.path, "An internal server error occurred.", "unexpected"),
    )


# --- Middleware (last added runs first) ---

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AuthMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=500)

app.state.limiter = get_rate_limiter()

app.include_router(api_router_v1)


@app.get("/")
async def read_root():
    return {"message": "Welcome to the Library Lending API!"}


@app.get("/ping-mongodb")
async def ping_mongodb():
    if database.client is None:
        raise HTTPException(status_code=503, detail="MongoDB client is not initialized.")
    try:
        await database.client.admin.command("ping")
    except PyMongoError as exc:
        logger.error(f"MongoDB ping failed: {exc}")
        raise HTTPException(status_code=503, detail="MongoDB connection failed.")
    return {"status": "success", "message": "MongoDB connection is healthy."}
