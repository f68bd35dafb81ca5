"""Shared utilities for TreeVault CLI commands."""
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import click

from ..archive import codec_for
from ..backups import BackupManager
from ..config import CONFIG_FILENAME, get_base_path, load_config, resolve_path
from ..models import EntityType, Operator
from ..service import BackupService
from ..storage import LocalPhotoStore, SQLiteRecordStore

# Verbosity levels
VERBOSITY_QUIET = 0
VERBOSITY_NORMAL = 1
VERBOSITY_VERBOSE = 2


def should_print(verbosity: int, message_level: int) -> bool:
    """Determine if a message should be printed based on verbosity settings."""
    return verbosity >= message_level


def echo_verbose(message: str, verbosity: int) -> None:
    """Print a message only in verbose mode."""
    if should_print(verbosity, VERBOSITY_VERBOSE):
        click.echo(message, err=False)


def echo_normal(message: str, verbosity: int) -> None:
    """Print a message in normal and verbose modes."""
    if should_print(verbosity, VERBOSITY_NORMAL):
        click.echo(message, err=False)


def echo_quiet(message: str, verbosity: int) -> None:
    """Print a critical message that should always be shown (even in quiet mode)."""
    click.echo(message, err=False)


def fail(message: str, verbosity: int) -> None:
    """Print an error and exit with status 1."""
    echo_quiet(click.style(f"Error: {message}", fg="red"), verbosity)
    sys.exit(1)


@dataclass
class Workspace:
    """Everything a command needs, built from config.yaml."""
    base_path: Path
    config: Dict[str, Any]
    store: SQLiteRecordStore
    service: BackupService
    backup_manager: BackupManager

    def close(self) -> None:
        self.store.close()


def require_initialized(ctx) -> Path:
    base_path = get_base_path(ctx.obj.get('data_dir'))
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    if not (base_path / CONFIG_FILENAME).exists():
        fail("TreeVault not initialized. Run 'treevault init' first.", verbosity)
    return base_path


def open_workspace(ctx, archive_format: Optional[str] = None) -> Workspace:
    """Open the store and service configured for the current base path."""
    base_path = require_initialized(ctx)
    config = load_config(base_path)
    storage = config["storage"]

    store = SQLiteRecordStore(resolve_path(base_path, storage["db_path"]))
    backup_manager = BackupManager(resolve_path(base_path, storage["backups_dir"]))
    service = BackupService(
        store,
        photo_store=LocalPhotoStore(resolve_path(base_path, storage["photos_dir"])),
        codec=codec_for(archive_format or config["export"]["archive_format"]),
        backup_manager=backup_manager,
        max_archive_mb=config["import"]["max_archive_mb"],
    )
    return Workspace(
        base_path=base_path,
        config=config,
        store=store,
        service=service,
        backup_manager=backup_manager,
    )


def resolve_operator(store: SQLiteRecordStore, email: Optional[str]) -> Operator:
    """
    Find the account an operation runs as.

    Raises:
        click.UsageError: If no email was given or no account matches
    """
    if not email:
        raise click.UsageError("An operator is required (--operator EMAIL or TREEVAULT_OPERATOR)")
    account = store.find_by_natural_key(EntityType.ACCOUNT, {"email": email})
    if account is None:
        raise click.UsageError(f"No account with email {email}")
    return Operator.from_account(account)
