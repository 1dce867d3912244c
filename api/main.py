"""FastAPI application for Parley.

Provides a REST API for generating AI reply options, recording conversation
history, and reading the AI request log.

Usage:
    uvicorn api.main:app --reload --port 8742

Documentation:
    - Swagger UI: http://localhost:8742/docs
    - ReDoc: http://localhost:8742/redoc
    - OpenAPI JSON: http://localhost:8742/openapi.json
"""

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import close_suggestion_service
from api.errors import register_exception_handlers
from parley import __version__

# API metadata for OpenAPI documentation
API_TITLE = "Parley API"
API_VERSION = __version__
API_DESCRIPTION = """
# Parley - AI Reply Options API

Generates short reply options for an incoming chat message using an
OpenAI-compatible chat-completions endpoint.

## Features

- **Prompt Selection**: Per-sender and per-group whitelists/blacklists decide
  which system prompts apply
- **Robust Parsing**: Recovers options from fenced, truncated or free-form
  model output
- **Automatic Retries**: Malformed output is retried before an error is returned
- **Request Log**: Recent request outcomes for troubleshooting
"""

API_TAGS_METADATA = [
    {
        "name": "health",
        "description": "Service status and configuration checks.",
    },
    {
        "name": "suggestions",
        "description": "AI reply options, conversation history and the request log.",
    },
]


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncIterator[None]:
    """Lifecycle event handler for the FastAPI application."""
    yield
    await close_suggestion_service()


def _configure_middleware(app_instance: FastAPI) -> None:
    """Configure middleware for the FastAPI application."""
    app_instance.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app_instance.middleware("http")
    async def timing_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time
        response.headers["X-Response-Time"] = f"{duration:.4f}s"
        return response


def _register_routers(app_instance: FastAPI) -> None:
    """Register API routers."""
    from api.routers.health import router as health_router
    from api.routers.suggestions import router as suggestions_router

    app_instance.include_router(health_router)
    app_instance.include_router(suggestions_router)


def create_app() -> FastAPI:
    """Application factory for creating configured FastAPI instances."""
    app_instance = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=API_TAGS_METADATA,
        lifespan=lifespan,
    )

    _configure_middleware(app_instance)
    _register_routers(app_instance)
    register_exception_handlers(app_instance)

    return app_instance


app = create_app()
