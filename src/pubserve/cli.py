"""CLI interface for Pubserve.

Command-line tool for serving a public directory and inspecting how request
paths resolve.
"""

import logging
import sys
from pathlib import Path

import click

from pubserve.config import Config, ConfigurationError

CONFIG_OPTION_HELP = "Path to configuration file (default: auto-discover pubserve.toml)"


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(config_path: Path | None) -> Config:
    """Load configuration, exiting with a red error message on failure."""
    try:
        return Config.load(config_path)
    except (FileNotFoundError, ConfigurationError) as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


def _validate(config: Config) -> None:
    try:
        config.validate()
    except ConfigurationError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


@click.group()
def cli() -> None:
    """Pubserve - static files with safe path resolution."""


@cli.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help=CONFIG_OPTION_HELP,
)
@click.option(
    "--public-dir",
    "-d",
    type=click.Path(exists=True, path_type=Path, file_okay=False),
    default=None,
    help="Public directory to serve (overrides config)",
)
@click.option(
    "--not-found",
    "not_found_page",
    type=click.Path(exists=True, path_type=Path, dir_okay=False),
    default=None,
    help="Page served when nothing matches (overrides config)",
)
@click.option(
    "--host",
    default=None,
    help="HTTP host to bind to (overrides config)",
)
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="HTTP port to bind to (overrides config)",
)
@click.option(
    "--listing/--no-listing",
    default=None,
    help="Enable/disable the directory listing route (overrides config)",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable debug logging",
)
def serve(
    config_path: Path | None,
    public_dir: Path | None,
    not_found_page: Path | None,
    host: str | None,
    port: int | None,
    listing: bool | None,
    verbose: bool,
) -> None:
    """Start the file server."""
    from pubserve.server import run_server

    _setup_logging(verbose)

    config = _load_config(config_path).with_overrides(
        host=host,
        port=port,
        public_dir=public_dir.absolute() if public_dir is not None else None,
        not_found_page=not_found_page.absolute() if not_found_page is not None else None,
        listing_enabled=listing,
    )
    _validate(config)

    click.echo(f"Public directory: {config.files.public_dir}")
    click.echo(f"Not found page: {config.files.not_found_page}")
    if config.http.enabled:
        click.echo(f"Starting HTTP server on http://{config.http.host}:{config.http.port}")
    if config.https.enabled:
        click.echo(f"Starting HTTPS server on https://{config.https.host}:{config.https.port}")
    if config.listing.enabled:
        click.echo(f"Directory listing: {config.listing.route} -> {config.listing.dir}")
    else:
        click.echo("Directory listing: disabled")

    try:
        run_server(config)
    except ConfigurationError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


@cli.command()
@click.argument("request_path")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help=CONFIG_OPTION_HELP,
)
def resolve(request_path: str, config_path: Path | None) -> None:
    """Show which file a request path resolves to."""
    from pubserve.core.errors import ResourceAccessError
    from pubserve.core.resolver import PathResolver

    config = _load_config(config_path)
    resolver = PathResolver(config.files.public_dir, config.files.not_found_page)

    try:
        target = resolver.resolve(request_path, client="cli")
    except ResourceAccessError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    if target.found:
        click.echo(str(target.path))
    else:
        click.echo(f"{target.path} (not found)")


@cli.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help=CONFIG_OPTION_HELP,
)
def check(config_path: Path | None) -> None:
    """Validate the configuration."""
    config = _load_config(config_path)
    _validate(config)

    click.echo(click.style("Configuration is valid", fg="green", bold=True))
    if config.config_path is not None:
        click.echo(f"Config file: {config.config_path}")
    click.echo(f"Public directory: {config.files.public_dir}")
    click.echo(f"Not found page: {config.files.not_found_page}")
    filtering = config.filtering
    click.echo(f"IP whitelist: {len(filtering.ip_whitelist)} entries")
    click.echo(f"IP blacklist: {len(filtering.ip_blacklist)} entries")
    if filtering.rate_limit.per_second > 0:
        click.echo(
            f"Rate limit: {filtering.rate_limit.per_second}/s, "
            f"burst {filtering.rate_limit.burst_size}",
        )
    else:
        click.echo("Rate limit: disabled")
