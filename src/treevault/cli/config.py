"""Configuration management commands for TreeVault CLI."""
import click
import yaml

from ..config import CONFIG_FILENAME, get_value, load_config, set_value

# Local CLI imports
from .common import VERBOSITY_NORMAL, echo_normal, echo_quiet, fail, require_initialized


@click.group()
def config_group():
    """Configuration management commands."""
    pass


@config_group.command('set')
@click.argument('key')
@click.argument('value')
@click.pass_context
def config_set(ctx, key: str, value: str) -> None:
    """Set a configuration value.

    Examples:
        treevault config set import.strategy merge
        treevault config set export.audit_log_days 30
        treevault config set backups.keep_count 10
    """
    base_path = require_initialized(ctx)
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    try:
        set_value(base_path / CONFIG_FILENAME, key, value)
    except (OSError, yaml.YAMLError) as e:
        fail(f"Failed to set config: {e}", verbosity)
    echo_normal(click.style(f"✓ Set {key} = {value}", fg="green"), verbosity)


@config_group.command('get')
@click.argument('key')
@click.pass_context
def config_get(ctx, key: str) -> None:
    """Get a configuration value (defaults included).

    Examples:
        treevault config get import.strategy
        treevault config get storage.db_path
    """
    base_path = require_initialized(ctx)
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    try:
        value = get_value(load_config(base_path), key)
    except KeyError:
        echo_quiet(click.style(f"Key '{key}' not found", fg="yellow"), verbosity)
        ctx.exit(1)
    except (ValueError, yaml.YAMLError) as e:
        fail(f"Failed to read config: {e}", verbosity)
    else:
        echo_quiet(value, verbosity)


@config_group.command('show')
@click.pass_context
def config_show(ctx) -> None:
    """Display the effective configuration."""
    base_path = require_initialized(ctx)
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    try:
        config = load_config(base_path)
    except (ValueError, yaml.YAMLError) as e:
        fail(f"Failed to read config: {e}", verbosity)
        return
    echo_normal(click.style("Current configuration:", fg="cyan", bold=True), verbosity)
    echo_quiet(yaml.dump(config, default_flow_style=False, sort_keys=False).rstrip(), verbosity)
