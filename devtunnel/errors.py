"""Exceptions raised by devtunnel.

Startup failures (configuration, bind, tunnel) are fatal and end the process
with exit status 1. Request failures only affect the request being served.
"""

from typing import Optional


class DevTunnelError(Exception):
    """Base class for all devtunnel errors."""


class ConfigurationError(DevTunnelError):
    """No ngrok authtoken could be found."""

    def __init__(self, message: str, remediation: Optional[str] = None):
        super().__init__(message)
        self.remediation = remediation


class BindError(DevTunnelError):
    """The local listening socket could not be bound."""


class TunnelError(DevTunnelError):
    """The tunnel provider refused or failed to open the tunnel."""


class RequestPathError(DevTunnelError):
    """A request path that cannot be served. Carries the HTTP status to answer with."""

    status_code = 400
    body = "400 Bad Request"

    def __init__(self, path: str):
        super().__init__(f"{self.body}: {path}")
        self.path = path


class ForbiddenPathError(RequestPathError):
    status_code = 403
    body = "403 Forbidden"


class DirectoryRequestError(RequestPathError):
    status_code = 403
    body = "403 Forbidden: Directory listing not allowed"


class MissingFileError(RequestPathError):
    status_code = 404
    body = "404 Not Found"


class StreamError(DevTunnelError):
    """Reading a file failed after its response headers were sent."""
