"""
Mapping commands for Loxone external id to Hue resource mappings.

Mappings are stored in the configuration file. A running gateway picks
changes up on restart.
"""

from dataclasses import replace

import click

from commands.helpers import display_table, get_config, get_config_file
from core.config import mappings_from_config, save_mappings
from core.errors import DuplicateMappingError
from models.mapping import (
    RESOURCE_TYPES,
    Mapping,
    add_mapping,
    find_mapping,
    mood_key,
    new_mapping_id,
    remove_mapping,
)
from models.utils import find_similar_strings


def _not_found(key: str, mappings: list[Mapping]):
    click.echo(f"Error: Mapping '{key}' not found.")
    suggestions = find_similar_strings(key, [m.external_id for m in mappings], limit=3)
    if suggestions:
        click.secho("Did you mean one of these?", fg='yellow')
        for suggestion in suggestions:
            click.secho(f"  • {suggestion}", fg='green')
    click.echo()


@click.command(name='mappings')
@click.option('--all', '-a', 'show_all', is_flag=True, help='Include disabled mappings')
@click.pass_context
def mappings_command(ctx, show_all: bool):
    """List Loxone → Hue mappings."""
    config = get_config(ctx, env_overrides=False)
    mappings = mappings_from_config(config)
    if not show_all:
        mappings = [m for m in mappings if m.enabled]

    if not mappings:
        click.echo("No mappings configured yet.")
        click.echo("\nUse 'map' command to create mappings.")
        click.echo()
        return

    rows = [{
        'external_id': m.external_id,
        'arrow': '→',
        'type': m.resource_type,
        'resource_id': m.resource_id,
        'name': m.name,
        'enabled': '✓' if m.enabled else '✗',
        'id': m.id,
    } for m in sorted(mappings, key=lambda m: m.external_id)]

    display_table(rows, [
        {'key': 'external_id', 'header': 'External ID', 'color': 'green'},
        {'key': 'arrow', 'header': ' '},
        {'key': 'type', 'header': 'Type'},
        {'key': 'resource_id', 'header': 'Resource'},
        {'key': 'name', 'header': 'Name'},
        {'key': 'enabled', 'header': 'On'},
        {'key': 'id', 'header': 'Mapping ID', 'color': 'bright_black'},
    ], f"=== Mappings ({len(rows)}) ===")
    click.echo()


@click.command(name='map')
@click.argument('external_id')
@click.argument('resource_type', type=click.Choice(RESOURCE_TYPES))
@click.argument('resource_id')
@click.option('--mood', '-m', type=click.IntRange(1), help='Map this scene as mood N of EXTERNAL_ID')
@click.option('--name', '-n', default='', help='Display name')
@click.option('--description', '-d', default='', help='Free text description')
@click.option('--disabled', is_flag=True, help='Create the mapping disabled')
@click.pass_context
def map_command(ctx, external_id: str, resource_type: str, resource_id: str, mood: int | None,
                name: str, description: str, disabled: bool):
    """Map a Loxone external id to a Hue light, group or scene.

    \b
    Examples:
      loxone-hue map kitchen light 3f1c...
      loxone-hue map living group 8a2b... -n "Living room"
      loxone-hue map living scene 55d0... --mood 2
      This maps 'MOOD living 2' to scene 55d0....

    \b
    To find IDs:
      - Use 'lights', 'groups' or 'scenes'
    """
    if mood is not None:
        if resource_type != 'scene':
            raise click.BadParameter("moods can only be mapped to scenes", param_hint='--mood')
        external_id = mood_key(external_id, mood)

    config = get_config(ctx, env_overrides=False)
    mappings = mappings_from_config(config)

    mapping = Mapping(
        id=new_mapping_id(),
        external_id=external_id,
        resource_id=resource_id,
        resource_type=resource_type,
        name=name,
        enabled=not disabled,
        description=description,
    )

    try:
        mappings = add_mapping(mappings, mapping)
    except DuplicateMappingError as e:
        raise click.ClickException(f"{e}. Use 'unmap' or 'disable' first.")

    save_mappings(config, mappings, get_config_file(ctx))

    click.echo("\n✓ Mapping created:")
    click.echo(f"  External ID: {mapping.external_id}")
    click.echo(f"  → {mapping.resource_type}: {mapping.resource_id}")
    click.echo(f"  Mapping ID:  {mapping.id}")
    if disabled:
        click.secho("  (disabled)", fg='yellow')
    click.echo()


@click.command(name='unmap')
@click.argument('key')
@click.pass_context
def unmap_command(ctx, key: str):
    """Delete a mapping by mapping id or external id."""
    config = get_config(ctx, env_overrides=False)
    mappings = mappings_from_config(config)

    mapping = find_mapping(mappings, key)
    if mapping is None:
        _not_found(key, mappings)
        ctx.exit(1)

    mappings, _ = remove_mapping(mappings, mapping.id)
    save_mappings(config, mappings, get_config_file(ctx))
    click.echo(f"✓ Removed mapping {mapping.external_id} → {mapping.resource_type} {mapping.resource_id}")
    click.echo()


def _set_enabled(ctx, key: str, enabled: bool):
    config = get_config(ctx, env_overrides=False)
    mappings = mappings_from_config(config)

    mapping = find_mapping(mappings, key)
    if mapping is None:
        _not_found(key, mappings)
        ctx.exit(1)

    if mapping.enabled == enabled:
        click.echo(f"Mapping {mapping.external_id} is already {'enabled' if enabled else 'disabled'}.")
        return

    try:
        mappings = add_mapping(mappings, replace(mapping, enabled=enabled))
    except DuplicateMappingError as e:
        raise click.ClickException(str(e))

    save_mappings(config, mappings, get_config_file(ctx))
    click.echo(f"✓ Mapping {mapping.external_id} {'enabled' if enabled else 'disabled'}")


@click.command(name='enable')
@click.argument('key')
@click.pass_context
def enable_command(ctx, key: str):
    """Enable a mapping (by mapping id or external id)."""
    _set_enabled(ctx, key, True)


@click.command(name='disable')
@click.argument('key')
@click.pass_context
def disable_command(ctx, key: str):
    """Disable a mapping without deleting it."""
    _set_enabled(ctx, key, False)
