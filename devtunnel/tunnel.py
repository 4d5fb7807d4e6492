"""Open the public tunnel in front of the local file server.

The provider is kept behind a one-method interface so the ngrok integration
can be swapped for a fake in tests.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from pyngrok import conf, ngrok
from pyngrok.exception import PyngrokError

from .errors import TunnelError

logger = logging.getLogger("devtunnel")


@dataclass
class TunnelHandle:
    public_url: str
    close: Callable[[], None]


class TunnelProvider(Protocol):
    def open(self, local_port: int, auth_token: str, domain: Optional[str] = None) -> TunnelHandle:
        ...


class NgrokTunnelProvider:
    """Tunnel provider backed by the ngrok agent, driven through pyngrok."""

    def __init__(self, proto: str = "http"):
        self.proto = proto

    def open(self, local_port: int, auth_token: str, domain: Optional[str] = None) -> TunnelHandle:
        pyngrok_config = conf.PyngrokConfig(auth_token=auth_token, monitor_thread=False)
        options = {}
        if domain:
            options["domain"] = domain

        try:
            tunnel = ngrok.connect(addr=str(local_port), proto=self.proto, pyngrok_config=pyngrok_config, **options)
        except PyngrokError as e:
            raise TunnelError(f"ngrok could not open the tunnel: {e}") from e

        public_url = tunnel.public_url

        def close() -> None:
            try:
                ngrok.disconnect(public_url, pyngrok_config=pyngrok_config)
            finally:
                ngrok.kill(pyngrok_config=pyngrok_config)

        return TunnelHandle(public_url=public_url, close=close)


async def open_tunnel(provider: TunnelProvider, local_port: int, auth_token: str,
                      domain: Optional[str] = None) -> TunnelHandle:
    """
    Ask the provider for a tunnel to `local_port`.

    The provider call blocks, so it runs in a worker thread. Any failure is
    fatal and comes back as TunnelError; there is no retry.
    """
    if domain:
        logger.info(f"Requesting tunnel to port {local_port} on static domain {domain}")
    else:
        logger.info(f"Requesting tunnel to port {local_port} on an ephemeral domain")

    try:
        handle = await asyncio.to_thread(provider.open, local_port, auth_token, domain)
    except TunnelError:
        raise
    except Exception as e:
        raise TunnelError(f"Failed to open tunnel: {e}") from e

    logger.info(f"Tunnel ready! Forwarding {handle.public_url} -> localhost:{local_port}")
    return handle


def artifact_url(public_url: str, artifact: str) -> str:
    """Join the tunnel URL and the artifact path into the distributable URL."""
    return f"{public_url.rstrip('/')}/{artifact.lstrip('/')}"
