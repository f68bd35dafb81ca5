"""Workspace setup command for TreeVault CLI."""
import uuid

import click

from ..config import get_base_path, load_config, resolve_path, write_default_config
from ..models import Account, EntityType, utcnow
from ..storage import SQLiteRecordStore, StoreError

# Local CLI imports
from .common import VERBOSITY_NORMAL, echo_normal, fail


@click.command('init')
@click.option('--admin-email', default=None, help='Create an admin account with this email')
@click.option('--admin-name', default=None, help='Display name for the admin account')
@click.pass_context
def init(ctx, admin_email, admin_name) -> None:
    """Initialize a TreeVault workspace.

    Creates the following:
    - the base directory with photos/ and backups/
    - config.yaml with default settings
    - the SQLite record store
    - optionally, a first admin account to run exports and imports as
    """
    base_path = get_base_path(ctx.obj.get('data_dir'))
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    echo_normal(click.style("Initializing TreeVault...", fg="cyan", bold=True), verbosity)

    base_path.mkdir(parents=True, exist_ok=True)
    config_path = base_path / "config.yaml"
    existed = config_path.exists()
    write_default_config(base_path)
    if existed:
        echo_normal(f" ⚠ Config exists: {config_path}", verbosity)
    else:
        echo_normal(f" ✓ Created config: {config_path}", verbosity)

    storage = load_config(base_path)["storage"]
    for key in ("photos_dir", "backups_dir"):
        directory = resolve_path(base_path, storage[key])
        directory.mkdir(parents=True, exist_ok=True)
        echo_normal(f" ✓ Created directory: {directory}", verbosity)

    db_path = resolve_path(base_path, storage["db_path"])
    store = SQLiteRecordStore(db_path)
    echo_normal(f" ✓ Initialized database: {db_path}", verbosity)

    try:
        if admin_email:
            if store.find_by_natural_key(EntityType.ACCOUNT, {"email": admin_email}):
                echo_normal(f" ⚠ Account exists: {admin_email}", verbosity)
            else:
                now = utcnow()
                store.create(EntityType.ACCOUNT, Account(
                    id=str(uuid.uuid4()),
                    email=admin_email,
                    name=admin_name,
                    role="ADMIN",
                    created_at=now,
                    updated_at=now,
                ))
                echo_normal(f" ✓ Created admin account: {admin_email}", verbosity)
    except StoreError as e:
        fail(f"Failed to create admin account: {e}", verbosity)
    finally:
        store.close()
