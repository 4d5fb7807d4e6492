import logging
import os
import time
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse, StreamingResponse

from ..config import DEFAULT_ENTRY_FILE
from ..errors import DirectoryRequestError, ForbiddenPathError, MissingFileError, RequestPathError
from ..streaming import FileStream
from ..utils import content_type_for

logger = logging.getLogger("devtunnel-server")

ENTRY_PATHS = ("/", "/index.html")


def is_within_root(project_root: str, candidate: str) -> bool:
    """Lexical containment check on already-normalized paths.

    Symlinks are not resolved and comparison is case-sensitive, so a link
    inside the root that points elsewhere is still served.
    """
    root = project_root.rstrip(os.sep)
    return candidate == project_root or candidate.startswith(root + os.sep)


def resolve_request_path(project_root: str, url_path: str, entry_file: str = DEFAULT_ENTRY_FILE) -> str:
    """
    Map a URL path onto a file under the project root.

    Args:
        project_root: Absolute, normalized project directory
        url_path: Decoded URL path, query string already removed
        entry_file: File served for "/" and "/index.html"

    Returns:
        Absolute path of the file to serve

    Raises:
        ForbiddenPathError: Path escapes the project root
        MissingFileError: Nothing exists at the path
        DirectoryRequestError: Path is a directory
    """
    if url_path in ENTRY_PATHS:
        file_path = os.path.join(project_root, entry_file)
    else:
        file_path = project_root + url_path

    # Containment is checked before anything touches the filesystem
    normalized = os.path.normpath(file_path)
    if not is_within_root(project_root, normalized):
        raise ForbiddenPathError(url_path)

    if not os.path.exists(normalized):
        raise MissingFileError(url_path)

    if os.path.isdir(normalized):
        raise DirectoryRequestError(url_path)

    return normalized


def format_access_log(method: str, path: str, status_code: int, duration_ms: Optional[float] = None) -> str:
    """Format: [timestamp] METHOD /path -> status_code (duration)"""
    timestamp = datetime.now().strftime("%H:%M:%S")
    duration_str = f" {duration_ms:.0f}ms" if duration_ms is not None else ""
    return f"[{timestamp}] {method} {path} -> {status_code}{duration_str}"


class AccessLogMiddleware:
    """Logs one line per HTTP request once the response status is known."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        status = {"code": 0}

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                status["code"] = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.time() - start_time) * 1000
            logger.info(format_access_log(scope.get("method", "GET"), scope.get("path", "/"), status["code"], duration_ms))


class FileEndpoint:
    """
    Plain ASGI endpoint serving files under the project root.

    Mounted as an ASGI app rather than a view function so the router accepts
    every HTTP method, including ones it has never heard of.
    """

    def __init__(self, project_root: str, entry_file: str = DEFAULT_ENTRY_FILE):
        self.project_root = project_root
        self.entry_file = entry_file

    async def __call__(self, scope, receive, send):
        response = await self.respond(scope["path"])
        await response(scope, receive, send)

    async def respond(self, url_path: str):
        """Build the response for a decoded URL path (query string already split off)."""
        try:
            target = resolve_request_path(self.project_root, url_path, self.entry_file)
        except RequestPathError as e:
            logger.debug(f"Rejected {url_path}: {e.body}")
            return PlainTextResponse(e.body, status_code=e.status_code)

        try:
            stream = await FileStream.open(target)
        except OSError as e:
            logger.error(f"Error reading file {target}: {e}")
            return PlainTextResponse("500 Internal Server Error", status_code=500)

        headers = {
            "Content-Type": content_type_for(target),
            "Content-Length": str(stream.size),
            "Access-Control-Allow-Origin": "*",
        }
        return StreamingResponse(stream.chunks(), status_code=200, headers=headers)


def create_app(project_root, entry_file: str = DEFAULT_ENTRY_FILE) -> FastAPI:
    """Create the FastAPI app serving files from `project_root`."""
    root = os.path.normpath(os.path.abspath(str(project_root)))

    # No docs/openapi routes: they would shadow project files of the same name
    app = FastAPI(title="Devtunnel File Server", docs_url=None, redoc_url=None, openapi_url=None)
    app.add_route("/{file_path:path}", FileEndpoint(root, entry_file), include_in_schema=False)
    app.add_middleware(AccessLogMiddleware)
    return app
