import asyncio
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .config import AppConfig, load_config, save_config
from .logging import get_logger, set_level
from .ui.app import TorwatchApp


LOG = get_logger(__name__)


def _apply_overrides(
    config: AppConfig,
    host: Optional[str],
    port: Optional[int],
    user: Optional[str],
    password: Optional[str],
    download_dir: Optional[str],
    surface_errors: Optional[bool],
) -> AppConfig:
    if host:
        config.rpc.host = host
    if port is not None:
        config.rpc.port = port
    if user is not None:
        config.rpc.username = user
    if password is not None:
        config.rpc.password = password
    if download_dir:
        config.paths.download_dir = Path(download_dir).expanduser()
    if surface_errors is not None:
        config.commands.surface_failures = surface_errors
    save_config(config)
    return config


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--host", default=None, help="Transmission RPC host (default: localhost)")
@click.option("--port", default=None, type=int, help="RPC port (default: 9091)")
@click.option("--user", default=None, help="RPC username")
@click.option("--password", default=None, help="RPC password")
@click.option("--download-dir", default=None, help="Default download directory")
@click.option(
    "--surface-errors/--log-errors",
    default=None,
    help="Show failed engine commands in the UI, or only write them to the log",
)
@click.option("--debug", is_flag=True, help="Verbose logging")
@click.version_option(__version__, "-v", "--version", message="torwatch %(version)s")
def main(
    host: Optional[str],
    port: Optional[int],
    user: Optional[str],
    password: Optional[str],
    download_dir: Optional[str],
    surface_errors: Optional[bool],
    debug: bool,
):
    """Watch and control torrents in a Transmission daemon."""
    if debug:
        set_level("DEBUG")
    config = load_config()
    config = _apply_overrides(config, host, port, user, password, download_dir, surface_errors)

    app = TorwatchApp(config=config)
    try:
        asyncio.run(app.run_async())
    except KeyboardInterrupt:
        LOG.info("Interrupted by user (Ctrl+C)")


if __name__ == "__main__":
    main()
