"""
Helper functions shared by CLI commands.

- Configuration loading from the click context
- Bridge construction with a configured-check
- Generic table display
"""

from pathlib import Path

import click

from core.config import config_path, load_config
from core.controller import HueBridge
from core.errors import ConfigError
from models.utils import display_width


def get_config_file(ctx: click.Context) -> Path:
    """Configuration path chosen with --config (or the default)."""
    obj = ctx.find_root().obj or {}
    return config_path(obj.get('config_file'))


def get_config(ctx: click.Context, env_overrides: bool = True) -> dict:
    """Load the configuration or abort with a readable error.

    Args:
        ctx: Click context
        env_overrides: Apply HUE_BRIDGE_IP / HUE_APPLICATION_KEY. Commands
            that write the file back pass False so the overrides are not
            persisted.
    """
    try:
        return load_config(get_config_file(ctx), environ=None if env_overrides else {})
    except ConfigError as e:
        raise click.ClickException(e.technical_message)


def get_bridge(config: dict) -> HueBridge | None:
    """Build a HueBridge from the configuration, or explain how to configure one."""
    hue = config.get('hue', {})
    bridge = HueBridge(hue.get('bridge_ip') or None, hue.get('application_key') or None)
    if not bridge.is_configured():
        click.secho("✗ Hue Bridge is not configured", fg='red')
        click.echo("Run 'configure' to set the bridge IP and application key.")
        click.echo()
        return None
    return bridge


def display_table(rows: list[dict], columns: list[dict], title: str,
                  group_key: str | None = None) -> None:
    """Display a table of rows.

    Args:
        rows: List of dicts containing row data
        columns: List of column definitions with keys:
            - 'key': field name in row dict
            - 'header': column header text
            - 'color': click color name (default: 'white')
        title: Table title (e.g., "=== Lights ===")
        group_key: Optional column shown only on the first row of each group

    Example:
        columns = [
            {'key': 'name', 'header': 'Name'},
            {'key': 'id', 'header': 'ID', 'color': 'bright_black'}
        ]
    """
    if not rows:
        return

    # Calculate column widths
    col_widths = {}
    for col in columns:
        key = col['key']
        max_data = max(display_width(str(row.get(key, ''))) for row in rows)
        col_widths[key] = max(max_data, len(col['header']))

    click.echo()
    click.secho(title, fg='cyan', bold=True)
    click.echo()

    header_parts = [col['header'].ljust(col_widths[col['key']]) for col in columns]
    click.secho(' │ '.join(header_parts), fg='cyan', bold=True)

    separator_parts = ['─' * col_widths[col['key']] for col in columns]
    click.secho('─┼─'.join(separator_parts), fg='cyan')

    previous_group = None
    for row in rows:
        is_new_group = group_key is not None and row.get(group_key) != previous_group
        row_parts = []

        for col in columns:
            key = col['key']
            value = str(row.get(key, ''))
            width = col_widths[key]

            if key == group_key:
                if is_new_group:
                    display_value = click.style(value, fg='bright_blue')
                    previous_group = row.get(group_key)
                else:
                    value = ' ' * display_width(value)
                    display_value = value
            else:
                display_value = click.style(value, fg=col.get('color', 'white'))

            row_parts.append(display_value + ' ' * (width - display_width(value)))

        click.echo(' │ '.join(row_parts))
