"""Local static file server: the FastAPI app and the uvicorn listener that runs it."""

from .app import create_app, resolve_request_path
from .listener import LocalServer, bind_socket

__all__ = [
    "create_app",
    "resolve_request_path",
    "LocalServer",
    "bind_socket",
]
