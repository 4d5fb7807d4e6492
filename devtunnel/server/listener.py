"""Bind the local port and run the file server app under uvicorn."""

import asyncio
import logging
import socket
from typing import Optional

import uvicorn

from ..errors import BindError

logger = logging.getLogger("devtunnel-server")


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind a listening TCP socket, raising BindError with the OS reason on failure."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise BindError(f"Could not bind {host}:{port}: {e}") from e
    sock.set_inheritable(True)
    return sock


class LocalServer:
    """
    Runs an ASGI app on an already-bound socket.

    `start()` only returns once uvicorn is accepting connections, so callers
    can safely point a tunnel at the port afterwards.
    """

    def __init__(self, app, sock: socket.socket, startup_poll: float = 0.05):
        self.sock = sock
        self.host, self.port = sock.getsockname()[:2]
        self.startup_poll = startup_poll
        config = uvicorn.Config(
            app=app,
            log_level="warning",
            loop="asyncio",
            lifespan="off",
            access_log=False,
        )
        # uvicorn traps SIGINT/SIGTERM while serving and re-raises them on exit
        self.server = uvicorn.Server(config)
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self.server.serve(sockets=[self.sock]))
        while not self.server.started:
            if self._task.done():
                # serve() returned or raised before it got to accept anything
                exc = self._task.exception()
                self._task = None
                raise BindError(f"Local server failed to start on port {self.port}: {exc}")
            await asyncio.sleep(self.startup_poll)
        logger.info(f"Local server listening on {self.host}:{self.port}")

    async def wait(self) -> None:
        """Block until the server stops."""
        if self._task:
            await self._task

    async def stop(self) -> None:
        if not self._task:
            return
        self.server.should_exit = True
        try:
            await asyncio.wait_for(self._task, timeout=5)
        except asyncio.TimeoutError:
            logger.warning("Local server did not stop in time, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
