"""HTTP API for the video generation service."""

from videogen.api.routes import health_router, router

__all__ = ["health_router", "router"]
