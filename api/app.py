"""
FastAPI application for the SDR CRM backend.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import router
from config import settings
from observability import trace_logger
from services import CRMError


TRACE_HEADER = "X-Trace-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup/shutdown."""
    # Startup
    trace_logger.info("Starting SDR CRM API")
    try:
        settings.validate_api_keys()
    except ValueError as e:
        trace_logger.warning("AI features will use fallbacks", reason=str(e))

    yield

    # Shutdown
    trace_logger.info("Shutting down SDR CRM API")


app = FastAPI(
    title="SDR CRM",
    description="Sales development CRM with Grok-powered lead scoring and outreach",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def trace_requests(request: Request, call_next):
    """Assign a trace ID to each request and log its completion."""
    with trace_logger.trace(request.headers.get(TRACE_HEADER)) as trace_id:
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as e:
            trace_logger.error_occurred(
                error_type=type(e).__name__,
                error_message=str(e),
                context={"method": request.method, "path": request.url.path}
            )
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "trace_id": trace_id}
            )

        response.headers[TRACE_HEADER] = trace_id
        trace_logger.request_completed(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=(time.monotonic() - start) * 1000
        )
        return response


@app.exception_handler(CRMError)
async def crm_error_handler(request: Request, exc: CRMError):
    if exc.status_code >= 500:
        trace_logger.error_occurred(
            error_type=type(exc).__name__,
            error_message=exc.message,
            context={"path": request.url.path}
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "details": exc.details}
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": details}
    )


app.include_router(router)


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "SDR CRM",
        "version": "1.0.0",
        "status": "operational"
    }
