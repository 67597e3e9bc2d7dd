"""Database CLI commands: list pipeline stages and ping the database."""

from pathlib import Path

import click

from ormforge.config import DatabaseConfig, configure_logging, create_driver
from ormforge.dialects import DIALECTS, get_dialect
from ormforge.errors import OrmError
from ormforge.hooks import default_book
from ormforge.hooks.types import REQUIRED_STAGES


def _load_config(url: str | None, config_path: Path | None) -> DatabaseConfig:
    if config_path is not None:
        config = DatabaseConfig.from_file(config_path)
    else:
        config = DatabaseConfig.from_env()
    if url:
        config.url = url
    return config


@click.command()
@click.option(
    "--dialect",
    "dialect_name",
    default="sqlite",
    type=click.Choice(sorted(DIALECTS)),
    help="Dialect whose default pipeline to show.",
)
def hooks(dialect_name: str):
    """List the registered stages of each hook chain."""
    book = default_book(get_dialect(dialect_name))
    for chain in book.chains():
        click.echo(click.style(f"{chain.name}:", bold=True))
        required = REQUIRED_STAGES.get(chain.name, ())
        stages = chain.list_registered()
        if not stages:
            click.echo("  (no stages)")
        for stage in stages:
            marker = " (required)" if stage in required else ""
            click.echo(f"  {stage}{marker}")


@click.command()
@click.option("--url", default=None, help="Database URL (overrides config).")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, path_type=Path),
    help="YAML config file with url/singular_table/log_level.",
)
def ping(url: str | None, config_path: Path | None):
    """Open the configured database and run SELECT 1."""
    try:
        config = _load_config(url, config_path)
        configure_logging(config)
        dialect, driver = create_driver(config)
    except OrmError as exc:
        click.echo(click.style(f"Error: {exc}", fg="red"), err=True)
        raise SystemExit(1)

    try:
        row = driver.query_row("SELECT 1", [])
    finally:
        driver.close()

    if not row or row[0] != 1:
        click.echo(click.style("Unexpected response from database", fg="red"), err=True)
        raise SystemExit(1)
    click.echo(click.style(f"OK ({dialect.name})", fg="green"))
