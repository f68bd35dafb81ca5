"""TreeVault CLI - family-tree backup and restore

Command modules:
- workspace.py: init
- backup.py: export, validate, import, history, backups list|cleanup
- config.py: config set, get, show
- common.py: shared utilities
"""
import logging
from pathlib import Path

import click

from .. import __version__

# Local imports
from .common import VERBOSITY_QUIET, VERBOSITY_NORMAL, VERBOSITY_VERBOSE
from .workspace import init
from .backup import backup_group, backups_group
from .config import config_group


@click.group()
@click.version_option(version=__version__, prog_name="treevault")
@click.option('--data-dir', type=click.Path(), default=None, envvar='TREEVAULT_BASE_PATH',
              help='Base directory for TreeVault data (default: ~/.treevault)')
@click.option('--verbose', '-v', is_flag=True, default=False,
              help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True, default=False,
              help='Suppress non-essential output')
@click.pass_context
def cli(ctx, data_dir, verbose, quiet):
    """TreeVault - family-tree backup and restore

    \b
    Key Commands:
        init              Initialize a workspace
        export            Export all records into an archive
        validate          Check an archive before importing
        import            Import an archive (skip, replace or merge)
        history           Show past imports
        backups           List or clean up saved archives
        config            Configuration management

    \b
    Examples:
        treevault init --admin-email admin@example.com
        treevault export --operator admin@example.com
        treevault validate family.zip
        treevault import family.zip --strategy merge --operator admin@example.com
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

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ctx.obj['data_dir'] = Path(data_dir) if data_dir else None


cli.add_command(init)

# Register backup commands (export, validate, import, history)
for name in ('export', 'validate', 'import', 'history'):
    cli.add_command(backup_group.commands[name])

cli.add_command(backups_group, name='backups')
cli.add_command(config_group, name='config')


def main():
    """Entry point for the CLI."""
    cli()


__all__ = [
    'cli',
    'main',
]
