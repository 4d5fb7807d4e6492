import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from .config import ConfigResolver, ProviderConfig, ServeSettings, default_candidate_paths
from .errors import ConfigurationError, DevTunnelError
from .readiness import ReadinessNotifier
from .server.app import create_app
from .server.listener import LocalServer, bind_socket
from .tunnel import NgrokTunnelProvider, TunnelHandle, TunnelProvider, artifact_url, open_tunnel

logger = logging.getLogger("devtunnel")

RULE = "=" * 60


def build_resolver(settings: ServeSettings, home: Optional[Path] = None) -> ConfigResolver:
    """Operator-supplied config files first, then the per-OS ngrok locations."""
    home = home or Path.home()
    return ConfigResolver(list(settings.config_paths) + default_candidate_paths(home))


class TunnelSession:
    """
    One run of the tool: resolve credentials, start the file server, open the tunnel.

    The order is fixed. Credentials are resolved before any socket is bound,
    and the tunnel is only opened once the local server accepts connections.
    """

    def __init__(self, settings: ServeSettings, resolver: ConfigResolver, provider: TunnelProvider):
        self.settings = settings
        self.resolver = resolver
        self.provider = provider
        self.provider_config: Optional[ProviderConfig] = None
        self.server: Optional[LocalServer] = None
        self.tunnel: Optional[TunnelHandle] = None

    @property
    def local_port(self) -> Optional[int]:
        return self.server.port if self.server else None

    @property
    def public_url(self) -> Optional[str]:
        return self.tunnel.public_url if self.tunnel else None

    @property
    def artifact_url(self) -> Optional[str]:
        if not self.tunnel:
            return None
        return artifact_url(self.tunnel.public_url, self.settings.artifact)

    async def start(self) -> str:
        """Bring everything up and return the distributable artifact URL."""
        self.provider_config = self.settings.provider_config(self.resolver)
        if self.provider_config.source:
            logger.debug(f"Using ngrok config {self.provider_config.source}")

        sock = bind_socket(self.settings.host, self.settings.port)
        app = create_app(self.settings.project_root, self.settings.entry_file)
        self.server = LocalServer(app, sock)
        await self.server.start()
        click.echo(f"\n✓ Local server running on port {self.server.port}")

        click.echo("✓ Starting ngrok tunnel...")
        domain = self.provider_config.static_domain
        if domain:
            click.echo(f"  Using static domain: {domain}")
        self.tunnel = await open_tunnel(self.provider, self.server.port, self.provider_config.auth_token, domain)
        return self.artifact_url

    async def serve_forever(self) -> None:
        if self.server:
            await self.server.wait()

    async def close(self) -> None:
        if self.tunnel:
            tunnel, self.tunnel = self.tunnel, None
            try:
                await asyncio.to_thread(tunnel.close)
            except Exception as e:
                logger.warning(f"Error closing tunnel: {e}")
        if self.server:
            await self.server.stop()


def print_summary(session: TunnelSession) -> None:
    click.echo("\n" + RULE)
    click.echo("🚀 Plugin available at:")
    click.echo(f"   {session.artifact_url}")
    click.echo(RULE + "\n")

    if not session.provider_config or not session.provider_config.static_domain:
        click.echo("💡 TIP: URL changes each time on free plan.")
        click.echo("   To get a permanent URL, claim your free static domain:")
        click.echo("   1. Visit: https://dashboard.ngrok.com/domains")
        click.echo('   2. Click "Create Domain" or "New Domain"')
        click.echo("   3. Save the domain (e.g., acode-prettier.ngrok-free.app)")
        click.echo("   4. Add to ngrok config: ngrok config edit")
        click.echo("   5. Add under agent section:")
        click.echo("      domain: your-domain.ngrok-free.app\n")

    click.echo("Copy the URL above and paste it in Acode:")
    click.echo("Settings → Plugins → + → REMOTE\n")


async def main_serve(settings: ServeSettings, resolver: ConfigResolver,
                     provider: TunnelProvider, notifier: ReadinessNotifier):
    logger.info(f"Serving {settings.project_root}")
    session = TunnelSession(settings, resolver, provider)
    try:
        await session.start()
        print_summary(session)
        notifier.notify()
        await session.serve_forever()
    finally:
        logger.info("Cleaning up...")
        await session.close()


def report_fatal(error: Exception, title: str = "Error starting server:") -> None:
    click.echo(f"\n❌ {title}", err=True)
    click.echo(str(error), err=True)
    if isinstance(error, ConfigurationError) and error.remediation:
        click.echo("\n" + error.remediation + "\n", err=True)


def run_serve(settings: ServeSettings, resolver: Optional[ConfigResolver] = None,
              provider: Optional[TunnelProvider] = None, notifier: Optional[ReadinessNotifier] = None):
    resolver = resolver or build_resolver(settings)
    provider = provider or NgrokTunnelProvider()
    notifier = notifier or ReadinessNotifier.from_environment()

    try:
        asyncio.run(main_serve(settings, resolver, provider, notifier))
    except KeyboardInterrupt:
        logger.info("Stopping devtunnel...")
    except DevTunnelError as e:
        report_fatal(e)
        sys.exit(1)
    except Exception as e:
        logger.debug("Unexpected error during startup", exc_info=True)
        report_fatal(e)
        sys.exit(1)
