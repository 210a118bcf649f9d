"""Shared FastAPI dependencies."""

from fastapi import Request

from storeops.backend.base import BackendClient
from storeops.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """Dependency: the app's ServiceContainer, created on first use if startup hasn't run."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        container = ServiceContainer()
        request.app.state.container = container
    return container


def get_backend(request: Request) -> BackendClient:
    return get_container(request).backend
