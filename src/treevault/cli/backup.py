"""Backup commands for TreeVault CLI: export, validate, import, history, backups."""
import json
from pathlib import Path

import click
from pydantic import ValidationError

from ..archive import ArchiveError
from ..models import ConflictResolutionStrategy
from ..schemas import ExportOptions, ImportOptions
from ..storage import StoreError

# Local CLI imports
from .common import (
    VERBOSITY_NORMAL,
    echo_normal,
    echo_quiet,
    echo_verbose,
    fail,
    open_workspace,
    resolve_operator,
)

operator_option = click.option(
    '--operator', envvar='TREEVAULT_OPERATOR', default=None,
    help='Email of the admin account running the command'
)


@click.group()
def backup_group():
    """Backup and restore commands."""
    pass


@backup_group.command('export')
@click.option('--output', '-o', type=click.Path(path_type=Path), default=None,
              help='Archive path (default: backups directory)')
@click.option('--photos/--no-photos', default=None, help='Include photo assets')
@click.option('--audit-logs/--no-audit-logs', default=None, help='Include audit records')
@click.option('--audit-log-days', type=int, default=None, help='Audit retention window (1-365)')
@click.option('--format', 'archive_format', type=click.Choice(['zip', 'tar']), default=None,
              help='Archive container format')
@operator_option
@click.pass_context
def export_cmd(ctx, output, photos, audit_logs, audit_log_days, archive_format, operator) -> None:
    """Export every record into a backup archive.

    Examples:
        treevault export --operator admin@example.com
        treevault export -o family.zip --no-audit-logs
        treevault export --format tar --audit-log-days 30
    """
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    workspace = open_workspace(ctx, archive_format)
    defaults = workspace.config["export"]

    try:
        options = ExportOptions(
            include_photos=defaults["include_photos"] if photos is None else photos,
            include_audit_logs=defaults["include_audit_logs"] if audit_logs is None else audit_logs,
            audit_log_days=defaults["audit_log_days"] if audit_log_days is None else audit_log_days,
        )
        export = workspace.service.export_backup(options, resolve_operator(workspace.store, operator))

        if output is None:
            output = workspace.backup_manager.backup_dir / export.filename
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(export.archive)

        stats = export.metadata["statistics"]
        echo_normal(click.style(f"✓ Exported backup: {output}", fg="green"), verbosity)
        echo_normal(
            f"  People: {stats['total_people']}  Relationships: {stats['total_relationships']}  "
            f"Users: {stats['total_users']}  Suggestions: {stats['total_suggestions']}",
            verbosity
        )
        echo_normal(
            f"  Photos: {stats['total_photos']}  Audit records: {stats['total_audit_logs']}",
            verbosity
        )
        echo_verbose(f"  Size: {len(export.archive)} bytes", verbosity)
    except (ValidationError, PermissionError, StoreError, ArchiveError) as e:
        fail(str(e), verbosity)
    finally:
        workspace.close()


def _print_messages(title: str, messages, color: str, verbosity: int) -> None:
    if not messages:
        return
    echo_quiet(click.style(f"{title} ({len(messages)}):", fg=color, bold=True), verbosity)
    for message in messages:
        echo_quiet(f"  - {message}", verbosity)


@backup_group.command('validate')
@click.argument('archive', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--json', 'as_json', is_flag=True, help='Print the full report as JSON')
@click.pass_context
def validate_cmd(ctx, archive: Path, as_json: bool) -> None:
    """Check an archive and list the conflicts importing it would hit.

    Exits with status 1 if the archive is invalid.
    """
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    fmt = 'tar' if archive.name.endswith(('.tar.gz', '.tgz')) else None
    workspace = open_workspace(ctx, fmt)

    try:
        result = workspace.service.validate_backup(archive.read_bytes())
    finally:
        workspace.close()

    if as_json:
        echo_quiet(json.dumps(result.to_dict(), indent=2, default=str), verbosity)
    else:
        status = click.style("valid", fg="green") if result.is_valid else click.style("invalid", fg="red")
        echo_quiet(f"Archive is {status}", verbosity)

        summary = result.statistics
        if summary.total_conflicts:
            echo_normal(click.style(f"Conflicts: {summary.total_conflicts}", fg="yellow"), verbosity)
            for kind, count in sorted(summary.conflicts_by_type.items()):
                echo_normal(f"  {kind}: {count}", verbosity)
            for conflict in result.conflicts:
                echo_verbose(f"  [{conflict.severity.value}] {conflict.description}", verbosity)

        _print_messages("Errors", result.errors, "red", verbosity)
        _print_messages("Warnings", result.warnings, "yellow", verbosity)

    if not result.is_valid:
        ctx.exit(1)


@backup_group.command('import')
@click.argument('archive', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--strategy', '-s', type=click.Choice(['skip', 'replace', 'merge'], case_sensitive=False),
              default=None, help='Conflict resolution strategy')
@click.option('--backup/--no-backup', 'create_backup', default=None,
              help='Save a safety backup before importing')
@click.option('--photos/--no-photos', default=None, help='Import photo assets')
@click.option('--audit-logs/--no-audit-logs', default=None, help='Import audit records')
@operator_option
@click.pass_context
def import_cmd(ctx, archive: Path, strategy, create_backup, photos, audit_logs, operator) -> None:
    """Import an archive into the store.

    Examples:
        treevault import family.zip --strategy merge
        treevault import family.zip -s replace --no-backup
    """
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    fmt = 'tar' if archive.name.endswith(('.tar.gz', '.tgz')) else None
    workspace = open_workspace(ctx, fmt)
    defaults = workspace.config["import"]

    def pick(value, key):
        return defaults[key] if value is None else value

    try:
        options = ImportOptions(
            strategy=ConflictResolutionStrategy.from_string(pick(strategy, "strategy")),
            create_backup_before_import=pick(create_backup, "create_backup_before_import"),
            import_photos=pick(photos, "import_photos"),
            import_audit_logs=pick(audit_logs, "import_audit_logs"),
        )
        result = workspace.service.import_backup(
            archive.read_bytes(), options, resolve_operator(workspace.store, operator)
        )
    except (ValueError, PermissionError, StoreError, ArchiveError) as e:
        fail(str(e), verbosity)
        return
    finally:
        workspace.close()

    stats = result.statistics
    color = "green" if result.success else "yellow"
    mark = "✓" if result.success else "⚠"
    echo_normal(click.style(f"{mark} Imported with strategy '{result.strategy.value}'", fg=color), verbosity)
    if result.backup_created:
        echo_normal(f"  Safety backup: {result.backup_created}", verbosity)
    echo_normal(
        f"  People: {stats.people_imported}  Users: {stats.accounts_imported}  "
        f"Relationships: {stats.relationships_imported}  Suggestions: {stats.suggestions_imported}",
        verbosity
    )
    echo_normal(
        f"  Audit records: {stats.audit_logs_imported}  Photos: {stats.photos_imported}  "
        f"Resolved: {stats.conflicts_resolved}  Skipped: {stats.skipped_items}",
        verbosity
    )
    _print_messages("Errors", result.errors, "red", verbosity)
    if result.warnings:
        echo_normal(click.style(f"Warnings: {len(result.warnings)}", fg="yellow"), verbosity)
        for warning in result.warnings:
            echo_verbose(f"  - {warning}", verbosity)

    if not result.success:
        ctx.exit(1)


@backup_group.command('history')
@click.option('--limit', type=int, default=50, help='Number of runs to show')
@click.pass_context
def history_cmd(ctx, limit: int) -> None:
    """Show past import runs, newest first."""
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    workspace = open_workspace(ctx)
    try:
        entries = workspace.service.get_import_history(limit=limit)
    finally:
        workspace.close()

    if not entries:
        echo_normal(click.style("No imports recorded.", fg="yellow"), verbosity)
        return

    for entry in entries:
        when = entry.imported_at.strftime('%Y-%m-%d %H:%M:%S') if entry.imported_at else 'N/A'
        status = click.style("ok", fg="green") if entry.success else click.style("failed", fg="red")
        echo_quiet(f"{when}  {status}  strategy={entry.strategy or '-'}  by={entry.imported_by}", verbosity)
        if entry.failure:
            echo_normal(f"  {entry.failure}", verbosity)
        elif entry.statistics:
            echo_verbose(f"  {entry.statistics}", verbosity)


@click.group('backups')
def backups_group():
    """Manage saved archives in the backups directory."""
    pass


@backups_group.command('list')
@click.pass_context
def backups_list(ctx) -> None:
    """List saved archives, newest first."""
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    workspace = open_workspace(ctx)
    workspace.close()

    backups = workspace.backup_manager.list_backups()
    if not backups:
        echo_normal(click.style("No backups found.", fg="yellow"), verbosity)
        return

    for info in backups:
        when = info.created_at.strftime('%Y-%m-%d %H:%M:%S')
        echo_quiet(f"{when}  {info.size_bytes:>10} bytes  {info.reason:<10}  {info.path.name}", verbosity)


@backups_group.command('cleanup')
@click.option('--keep', type=int, default=None, help='Number of archives to keep')
@click.pass_context
def backups_cleanup(ctx, keep) -> None:
    """Delete all but the most recent archives."""
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    workspace = open_workspace(ctx)
    workspace.close()

    keep_count = workspace.config["backups"]["keep_count"] if keep is None else keep
    try:
        deleted = workspace.backup_manager.cleanup_old_backups(keep_count)
    except ValueError as e:
        fail(str(e), verbosity)
        return
    echo_normal(click.style(f"✓ Deleted {deleted} old backup(s)", fg="green"), verbosity)
