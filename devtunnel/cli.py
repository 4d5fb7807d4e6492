import click
import logging
import sys
from pathlib import Path

from .config import (
    DEFAULT_ARTIFACT, DEFAULT_ENTRY_FILE, DEFAULT_HOST, DEFAULT_PORT, ServeSettings,
)
from .errors import ConfigurationError
from .readiness import ReadinessNotifier
from .runner import build_resolver, report_fatal, run_serve
from .utils import mask_token


@click.group()
@click.option("--log-level", default="INFO", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
              envvar="DEVTUNNEL_LOG_LEVEL", help="Log level (can be set via DEVTUNNEL_LOG_LEVEL)")
def cli(log_level):
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Suppress pyngrok process logs to reduce noise
    logging.getLogger("pyngrok").setLevel(logging.WARNING)


def config_file_options(func):
    return click.option("--ngrok-config", "ngrok_configs", multiple=True, type=click.Path(dir_okay=False),
                        envvar="DEVTUNNEL_NGROK_CONFIG",
                        help="Extra ngrok config file to check before the default locations "
                             "(repeatable, env: DEVTUNNEL_NGROK_CONFIG)")(func)


@cli.command()
@click.option("--root", default=".", type=click.Path(exists=True, file_okay=False, resolve_path=True),
              envvar="DEVTUNNEL_ROOT", help="Project directory to serve (default: current directory, env: DEVTUNNEL_ROOT)")
@click.option("--host", default=DEFAULT_HOST, envvar="DEVTUNNEL_HOST",
              help=f"Host to bind (default: {DEFAULT_HOST}, env: DEVTUNNEL_HOST)")
@click.option("--port", default=DEFAULT_PORT, type=int, envvar="DEVTUNNEL_PORT",
              help=f"Port to bind (default: {DEFAULT_PORT}, env: DEVTUNNEL_PORT)")
@click.option("--artifact", default=DEFAULT_ARTIFACT, envvar="DEVTUNNEL_ARTIFACT",
              help=f"Artifact path appended to the public URL (default: {DEFAULT_ARTIFACT}, env: DEVTUNNEL_ARTIFACT)")
@click.option("--entry-file", default=DEFAULT_ENTRY_FILE, envvar="DEVTUNNEL_ENTRY_FILE",
              help=f"File served for / (default: {DEFAULT_ENTRY_FILE}, env: DEVTUNNEL_ENTRY_FILE)")
@config_file_options
@click.option("--authtoken", envvar="NGROK_AUTHTOKEN",
              help="ngrok authtoken, overrides the config file (env: NGROK_AUTHTOKEN)")
@click.option("--domain", envvar="NGROK_DOMAIN",
              help="ngrok static domain, overrides the config file (env: NGROK_DOMAIN)")
@click.option("--ready-fd", type=int, envvar="DEVTUNNEL_READY_FD",
              help="File descriptor to write OK to once the tunnel is live (env: DEVTUNNEL_READY_FD)")
def serve(root, host, port, artifact, entry_file, ngrok_configs, authtoken, domain, ready_fd):
    """Serve a project directory and expose it through an ngrok tunnel."""
    settings = ServeSettings(
        project_root=Path(root),
        port=port,
        host=host,
        artifact=artifact,
        entry_file=entry_file,
        auth_token=authtoken,
        domain=domain,
        config_paths=[Path(p) for p in ngrok_configs],
    )
    run_serve(settings, notifier=ReadinessNotifier.from_environment(ready_fd=ready_fd))


@cli.command("config")
@config_file_options
def show_config(ngrok_configs):
    """Show which ngrok config file, token and static domain would be used."""
    settings = ServeSettings(project_root=Path("."), config_paths=[Path(p) for p in ngrok_configs])
    resolver = build_resolver(settings)

    try:
        token = resolver.resolve_token()
    except ConfigurationError as e:
        report_fatal(e, title="Error reading ngrok config:")
        sys.exit(1)

    domain = resolver.resolve_static_domain()
    click.echo(f"Config file:   {resolver.source}")
    click.echo(f"Authtoken:     {mask_token(token)}")
    if domain:
        click.echo(f"Static domain: {domain}")
    else:
        click.echo("Static domain: not set (public URL changes on every run)")


if __name__ == "__main__":
    cli()
