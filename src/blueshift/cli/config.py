"""Configuration commands for Blueshift CLI."""
import click
import yaml

from blueshift.config import ConfigError, resolve_config_path

# Local CLI imports
from .common import VERBOSITY_NORMAL, echo_normal, echo_quiet, fail, get_config


@click.group()
def config_group():
    """Configuration commands."""
    pass


@config_group.command('show')
@click.pass_context
def config_show(ctx) -> None:
    """Display the effective configuration (file plus environment overrides)."""
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    try:
        config = get_config(ctx)
    except ConfigError as e:
        fail(str(e))

    source = resolve_config_path(ctx.obj.get('config_path'))
    origin = str(source) if source.exists() else "defaults"
    echo_normal(click.style(f"Current configuration ({origin}):", fg="cyan", bold=True), verbosity)
    echo_quiet(yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False), verbosity)
