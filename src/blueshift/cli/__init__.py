"""Blueshift CLI - dual-backend schema migrations

This module wires the command groups together:
- migrate.py: migrate, rollback, seed-history, status, new
- config.py: config show
- common.py: shared utilities
"""
from pathlib import Path

import click

from blueshift import __version__

# Local imports
from .common import VERBOSITY_NORMAL, VERBOSITY_QUIET, VERBOSITY_VERBOSE, configure_logging
from .config import config_group
from .migrate import migrate_group


@click.group()
@click.version_option(version=__version__, prog_name="blueshift")
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), default=None,
              help='Config file (default: $BLUESHIFT_CONFIG or ./blueshift.yaml)')
@click.option('--migrations-dir', type=click.Path(file_okay=False), default=None,
              help='Directory holding migration files (overrides config)')
@click.option('--verbose', '-v', is_flag=True, default=False,
              help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True, default=False,
              help='Suppress non-essential output')
@click.pass_context
def cli(ctx, config_path, migrations_dir, verbose, quiet):
    """Blueshift - one migration, two databases

    Applies up/down to the primary database and redup/reddown to the
    analytics warehouse, tracking each in its own schema_migrations table.

    \b
    Examples:
        blueshift new create_users
        blueshift migrate
        blueshift migrate redshift
        blueshift rollback pg
        blueshift seed-history redshift
        blueshift status
    """
    ctx.ensure_object(dict)

    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet are mutually exclusive")

    if quiet:
        ctx.obj['verbosity'] = VERBOSITY_QUIET
    elif verbose:
        ctx.obj['verbosity'] = VERBOSITY_VERBOSE
    else:
        ctx.obj['verbosity'] = VERBOSITY_NORMAL

    ctx.obj['config_path'] = Path(config_path) if config_path else None
    ctx.obj['migrations_dir'] = Path(migrations_dir) if migrations_dir else None
    configure_logging(ctx.obj['verbosity'])


# Register migration commands (migrate, rollback, seed-history, status, new)
cli.add_command(migrate_group.commands['migrate'])
cli.add_command(migrate_group.commands['rollback'])
cli.add_command(migrate_group.commands['seed-history'])
cli.add_command(migrate_group.commands['status'])
cli.add_command(migrate_group.commands['new'])

# Register config command group (config show)
cli.add_command(config_group, name='config')


def main():
    """Entry point for the CLI."""
    cli()


__all__ = [
    'cli',
    'main',
]
