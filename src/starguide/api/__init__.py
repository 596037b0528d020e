"""FastAPI application exposing character deployment endpoints."""

from .app import create_app

__all__ = ["create_app"]
