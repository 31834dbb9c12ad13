"""FastAPI application entrypoint.

Responsibilities:
- Create the FastAPI app with lifespan context
- Attach middleware: request id binding, basic security headers
- Map request validation errors to the 400 payload clients expect
- Include API routes

Notes:
- Logging is configured in jobscan.bootstrap when the context is created.
- The browser is launched lazily by the first scrape and closed on shutdown.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
import contextlib
from typing import AsyncIterator
import asyncio
import uuid

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from structlog import contextvars as struct_contextvars

from jobscan.bootstrap import SCAN_REQUESTS_TOTAL, get_context
from jobscan.errors import InvalidRequest
from .routes import router as core_router


# ------------------------------------------------------------
# Lifespan: initialize global context once app starts
# ------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:  # noqa: D401
    ctx = await get_context()
    ctx.logger.info("api_startup", search_url=ctx.settings.search_base_url)
    try:
        yield
    except asyncio.CancelledError:  # graceful shutdown triggered
        ctx.logger.info("api_shutdown_cancelled")
    finally:
        with contextlib.suppress(Exception):
            await ctx.session.close()
        ctx.logger.info("api_shutdown")


app = FastAPI(title="Job Listing Scan API", version="0.1.0", lifespan=lifespan)


# ------------------------------------------------------------
# Middleware
# ------------------------------------------------------------
@app.middleware("http")
async def security_headers(request: Request, call_next):  # noqa: D401
    rid = str(uuid.uuid4())
    struct_contextvars.bind_contextvars(request_id=rid)
    try:
        response: Response = await call_next(request)
    finally:
        # Clear contextvars to avoid leakage
        struct_contextvars.clear_contextvars()
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("X-Request-ID", rid)
    return response


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    SCAN_REQUESTS_TOTAL.labels(status="invalid").inc()
    return JSONResponse(
        {"success": False, "error": exc.message, "example": exc.example},
        status_code=400,
    )


# ------------------------------------------------------------
# Include routes
# ------------------------------------------------------------
app.include_router(core_router)


# For local dev run: uvicorn server.main:app --reload
