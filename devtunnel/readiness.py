"""Tell a supervising parent process that the tunnel is live."""

import json
import logging
import os
from typing import Mapping, Optional

logger = logging.getLogger("devtunnel")

READY_MESSAGE = "OK"


class ReadinessNotifier:
    """
    Writes a single readiness marker to the parent, if there is one.

    Two channels are supported:
      * an explicit file descriptor (``--ready-fd``), which receives ``OK\\n``
      * the IPC channel Node.js sets up for ``child_process.fork`` children
        (``NODE_CHANNEL_FD``), which expects line-delimited JSON
    """

    def __init__(self, fd: Optional[int] = None, json_lines: bool = False):
        self.fd = fd
        self.json_lines = json_lines
        self.notified = False

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None,
                         ready_fd: Optional[int] = None) -> "ReadinessNotifier":
        environ = os.environ if environ is None else environ
        if ready_fd is not None:
            return cls(fd=ready_fd)

        node_fd = environ.get("NODE_CHANNEL_FD")
        if node_fd:
            try:
                return cls(fd=int(node_fd), json_lines=True)
            except ValueError:
                logger.warning(f"Ignoring malformed NODE_CHANNEL_FD={node_fd!r}")
        return cls()

    @property
    def supervised(self) -> bool:
        return self.fd is not None

    def payload(self) -> bytes:
        if self.json_lines:
            return (json.dumps(READY_MESSAGE) + "\n").encode("utf-8")
        return (READY_MESSAGE + "\n").encode("utf-8")

    def notify(self) -> bool:
        """Send the marker once. Returns True if it was written."""
        if self.fd is None or self.notified:
            return False
        try:
            os.write(self.fd, self.payload())
        except OSError as e:
            # Tunnel is already live; keep serving
            logger.warning(f"Could not signal readiness on fd {self.fd}: {e}")
            return False
        self.notified = True
        logger.debug(f"Signalled readiness on fd {self.fd}")
        return True
