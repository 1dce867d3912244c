"""FastAPI backend for Parley.

Provides REST endpoints for reply suggestions, conversation history, the AI
request log, and health status.

Usage:
    uvicorn api.main:app --reload --port 8742
"""

from .main import app

__all__ = ["app"]
