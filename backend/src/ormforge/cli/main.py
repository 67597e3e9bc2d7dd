"""ormforge CLI entry point."""

import click


@click.group()
def cli():
    """ormforge: ORM execution core CLI."""
    pass


# Register subcommands
from ormforge.cli.db_cmd import hooks, ping  # noqa: E402

cli.add_command(hooks)
cli.add_command(ping)
