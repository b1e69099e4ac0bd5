"""Blueshift CLI - Migration Commands

migrate, rollback, seed-history, status and new.
"""
import re
from datetime import datetime, timezone
from typing import Optional

import click

from blueshift.config import ConfigError
from blueshift.migrations import Backend, MigrationError, MigrationResult

# Local CLI imports
from .common import (
    BACKEND_CHOICE,
    VERBOSITY_NORMAL,
    echo_normal,
    echo_quiet,
    echo_verbose,
    fail,
    get_config,
    open_runner,
)

MIGRATION_TEMPLATE = '''"""{title}"""
from blueshift import define


def up(db):
    """Apply to the primary database."""


def down(db):
    """Revert on the primary database."""


def redup(db):
    """Apply to the analytics warehouse."""


def reddown(db):
    """Revert on the analytics warehouse."""


define(up=up, down=down, redup=redup, reddown=reddown)
'''


@click.group()
@click.pass_context
def migrate_group(ctx):
    """Migration commands."""
    ctx.ensure_object(dict)


def _open(ctx):
    try:
        return open_runner(ctx)
    except (ConfigError, MigrationError) as e:
        fail(str(e))


def _report(result: MigrationResult, verbosity: int) -> None:
    name = result.backend.value
    if not result.success:
        where = f" at version {result.failed_version}" if result.failed_version else ""
        click.echo(click.style(f"✗ {name}: failed{where}: {result.error}", fg="red"), err=True)
        return

    echo_normal(
        click.style(f"✓ {name}: ", fg="green")
        + f"applied {len(result.applied)}, reverted {len(result.reverted)}",
        verbosity,
    )
    for version in result.reverted:
        echo_verbose(f"    reverted {version}", verbosity)
    for version in result.applied:
        echo_verbose(f"    applied  {version}", verbosity)


@migrate_group.command('migrate')
@click.argument('backend', type=BACKEND_CHOICE, required=False)
@click.option('--target', type=int, default=None,
              help='Migrate BACKEND up or down to this version (0 reverts everything)')
@click.pass_context
def migrate(ctx, backend: Optional[str], target: Optional[int]) -> None:
    """Run pending migrations.

    Without BACKEND, migrates primary and then analytics; a failure on one
    does not stop the other, and the command exits non-zero if either fails.

    Examples:
        blueshift migrate
        blueshift migrate redshift
        blueshift migrate pg --target 20160601192854
    """
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    if target is not None and backend is None:
        raise click.UsageError("--target requires a BACKEND")

    runner = _open(ctx)
    try:
        if backend is None:
            results = runner.run_both()
            for result in results.values():
                _report(result, verbosity)
            failed = [r.backend.value for r in results.values() if not r.success]
            if failed:
                fail(f"Migration failed for {', '.join(failed)}")
        else:
            result = runner.run(Backend.parse(backend), target=target)
            _report(result, verbosity)
    except Exception as e:
        fail(f"Migration failed for {backend}: {e}")
    finally:
        runner.close()


@migrate_group.command('rollback')
@click.argument('backend', type=BACKEND_CHOICE)
@click.pass_context
def rollback(ctx, backend: str) -> None:
    """Revert the latest applied migration on BACKEND.

    Examples:
        blueshift rollback primary
        blueshift rollback redshift
    """
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    backend = Backend.parse(backend)

    runner = _open(ctx)
    try:
        result = runner.rollback(backend)
    except Exception as e:
        fail(f"Rollback failed for {backend.value}: {e}")
    finally:
        runner.close()

    if result is None:
        echo_normal(f"Nothing to roll back on {backend.value}", verbosity)
        return
    reverted = ", ".join(str(v) for v in result.reverted)
    echo_normal(click.style(f"✓ Rolled back {backend.value}: ", fg="green") + reverted, verbosity)


@migrate_group.command('seed-history')
@click.argument('backend', type=BACKEND_CHOICE)
@click.pass_context
def seed_history(ctx, backend: str) -> None:
    """Record every migration as applied on BACKEND without running it.

    Use after restoring BACKEND from a snapshot that already has the schema.
    """
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    backend = Backend.parse(backend)

    runner = _open(ctx)
    try:
        inserted = runner.insert_into_history(backend)
    except Exception as e:
        fail(f"Seeding history failed for {backend.value}: {e}")
    finally:
        runner.close()

    echo_normal(
        click.style("✓ ", fg="green") + f"Inserted {len(inserted)} versions into {backend.value} history",
        verbosity,
    )
    for version in inserted:
        echo_verbose(f"    {version}", verbosity)


@migrate_group.command('status')
@click.argument('backend', type=BACKEND_CHOICE, required=False)
@click.pass_context
def status(ctx, backend: Optional[str]) -> None:
    """Show applied and pending migrations."""
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    backends = [Backend.parse(backend)] if backend else list(Backend)

    runner = _open(ctx)
    try:
        for target in backends:
            rows = runner.status(target)
            echo_quiet(click.style(f"{target.value}", fg="cyan", bold=True), verbosity)
            if not rows:
                echo_quiet("  (no migrations)", verbosity)
            for row in rows:
                if row.missing:
                    line = click.style(f"  [?] {row.version}  (missing migration file)", fg="yellow")
                elif row.applied:
                    line = f"  [x] {row.version}  {row.name}"
                else:
                    line = click.style(f"  [ ] {row.version}  {row.name}", fg="white", dim=True)
                echo_quiet(line, verbosity)
                if row.applied_at:
                    echo_verbose(f"        applied at {row.applied_at.isoformat()}", verbosity)
    except Exception as e:
        fail(str(e))
    finally:
        runner.close()


@migrate_group.command('new')
@click.argument('name')
@click.pass_context
def new(ctx, name: str) -> None:
    """Create an empty migration file named <timestamp>_NAME.py.

    Examples:
        blueshift new create_users
        blueshift new "add email index"
    """
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    slug = re.sub(r"\W+", "_", name.strip().lower()).strip("_")
    if not slug:
        raise click.BadParameter("name must contain letters or digits", param_hint="NAME")

    try:
        config = get_config(ctx)
    except ConfigError as e:
        fail(str(e))

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    directory = config.migrations_dir
    path = directory / f"{timestamp}_{slug}.py"
    if path.exists():
        fail(f"{path} already exists")

    directory.mkdir(parents=True, exist_ok=True)
    path.write_text(MIGRATION_TEMPLATE.format(title=slug.replace("_", " ").capitalize()))
    echo_normal(click.style("✓ Created ", fg="green") + str(path), verbosity)
