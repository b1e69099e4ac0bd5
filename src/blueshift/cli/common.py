"""Shared utilities for Blueshift CLI commands."""
import logging
import sys
from typing import NoReturn

import click

from blueshift.config import BlueshiftConfig, load_config
from blueshift.migrations import Runner

# Verbosity levels
VERBOSITY_QUIET = 0
VERBOSITY_NORMAL = 1
VERBOSITY_VERBOSE = 2

LOG_LEVELS = {
    VERBOSITY_QUIET: logging.ERROR,
    VERBOSITY_NORMAL: logging.WARNING,
    VERBOSITY_VERBOSE: logging.INFO,
}

BACKEND_CHOICE = click.Choice(
    ['primary', 'analytics', 'pg', 'postgres', 'redshift', 'rs'],
    case_sensitive=False,
)


def configure_logging(verbosity: int) -> None:
    """Route engine logs to stderr at a level matching the verbosity flags."""
    logging.basicConfig(
        level=LOG_LEVELS.get(verbosity, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def should_print(verbosity: int, message_level: int) -> bool:
    """Determine if a message should be printed based on verbosity settings.

    Args:
        verbosity: Current verbosity level (0=quiet, 1=normal, 2=verbose).
        message_level: Minimum verbosity level required for this message.
    """
    return verbosity >= message_level


def echo_verbose(message: str, verbosity: int) -> None:
    """Print a message only in verbose mode."""
    if should_print(verbosity, VERBOSITY_VERBOSE):
        click.echo(message)


def echo_normal(message: str, verbosity: int) -> None:
    """Print a message in normal and verbose modes."""
    if should_print(verbosity, VERBOSITY_NORMAL):
        click.echo(message)


def echo_quiet(message: str, verbosity: int) -> None:
    """Print a message that is shown even in quiet mode."""
    click.echo(message)


def fail(message: str) -> NoReturn:
    """Print an error to stderr and exit with status 1."""
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


def get_config(ctx: click.Context) -> BlueshiftConfig:
    """Load configuration for this invocation, applying CLI overrides."""
    config = load_config(ctx.obj.get('config_path'))
    if ctx.obj.get('migrations_dir'):
        config.migrations_dir = ctx.obj['migrations_dir']
    return config


def open_runner(ctx: click.Context) -> Runner:
    """Build a Runner with both handles opened from configuration."""
    return Runner.from_config(get_config(ctx))
