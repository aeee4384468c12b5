"""FastAPI application for the exam strategy analyzer."""

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Union

import fitz
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded  # type: ignore[import-not-found]

from app.config import get_settings
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import get_limiter, rate_limit_exceeded_handler
from app.routers import analysis
from app.services.gemini_client import get_gemini_client

# Application metadata
VERSION = "1.0.0"
COMMIT_HASH = "development"  # This can be set via environment variable or build process


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan event handler for startup and shutdown."""
    # Startup: fail fast on missing configuration
    try:
        settings = get_settings()

        # Log startup (without exposing secrets)
        print(f"Starting Exam Strategy API v{VERSION}")
        print(f"Models: {', '.join(m.name for m in settings.model_fallbacks)}")
        print("Environment validation: OK")

    except Exception as e:
        print(f"Startup validation failed: {e}")
        raise

    yield

    print("Shutting down Exam Strategy API")


app = FastAPI(
    title="Exam Strategy API",
    description="Cross-references a syllabus with past exam papers to rank study topics",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Add rate limiter to app state (required by slowapi)
app.state.limiter = get_limiter()
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Add logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this to specific domains
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=None)
async def health_check() -> Union[Dict[str, Any], Response]:
    """
    Health check endpoint that verifies all required services are operational.

    Status Codes:
        200: All services healthy
        503: One or more services unavailable
    """
    timestamp = datetime.now(timezone.utc).isoformat()
    services: Dict[str, str] = {}
    overall_healthy = True

    # Check PDF decoder
    try:
        fitz.open().close()
        services["pdf_decoder"] = "healthy"
    except Exception as e:
        services["pdf_decoder"] = f"unhealthy: {str(e)}"
        overall_healthy = False

    # Check Gemini API client
    try:
        client = get_gemini_client()
        if client:
            services["gemini_api"] = "healthy"
        else:
            services["gemini_api"] = "unhealthy: client is None"
            overall_healthy = False
    except Exception as e:
        services["gemini_api"] = f"unhealthy: {str(e)}"
        overall_healthy = False

    response_data: Dict[str, Any] = {
        "status": "healthy" if overall_healthy else "unhealthy",
        "timestamp": timestamp,
        "services": services,
    }

    if not overall_healthy:
        return Response(
            content=json.dumps(response_data),
            status_code=503,
            media_type="application/json",
        )

    return response_data


@app.get("/version")
async def version_info() -> Dict[str, str]:
    """
    Get version information for the API.

    Returns:
        JSON with version number and commit hash.
    """
    return {
        "version": VERSION,
        "commit_hash": COMMIT_HASH,
    }


app.include_router(analysis.router)
