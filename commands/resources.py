"""
Bridge resource listing commands.

Lists lights, groups (rooms and zones) and scenes together with the
external id each one is mapped under, so the ids can be copied into
'map' commands.
"""

import click

from commands.helpers import display_table, get_bridge, get_config
from core.config import mappings_from_config
from core.errors import BridgeError
from models.utils import create_name_lookup, resource_name


def _mapped_ids(config: dict) -> dict[str, str]:
    """Resource id -> comma-separated external ids of its enabled mappings."""
    mapped = {}
    for mapping in mappings_from_config(config):
        if mapping.enabled:
            mapped.setdefault(mapping.resource_id, []).append(mapping.external_id)
    return {rid: ', '.join(sorted(ids)) for rid, ids in mapped.items()}


def _fetch(config: dict, fetch):
    """Run a bridge fetch, turning failures into a CLI error."""
    bridge = get_bridge(config)
    if bridge is None:
        return None, None
    try:
        return bridge, fetch(bridge)
    except BridgeError as e:
        raise click.ClickException(f"Bridge request failed: {e.technical_message}")


@click.command(name='lights')
@click.option('--room', '-r', help='Filter by room name')
@click.pass_context
def lights_command(ctx, room: str | None):
    """List lights with their current state.

    \b
    Examples:
      loxone-hue lights
      loxone-hue lights -r kitchen
    """
    config = get_config(ctx)
    bridge, lights = _fetch(config, lambda b: b.get_lights())
    if bridge is None:
        return
    if not lights:
        click.echo("No lights found on the bridge.")
        return

    # Lights belong to rooms through their device
    room_by_device = {}
    try:
        for r in bridge.get_rooms():
            for child in r.get('children', []):
                room_by_device[child.get('rid')] = resource_name(r)
    except BridgeError as e:
        click.secho(f"⚠ Could not fetch rooms: {e}", fg='yellow')

    mapped = _mapped_ids(config)
    rows = []
    for light in lights:
        state = bridge.cache.peek(light['id'])
        light_room = room_by_device.get((light.get('owner') or {}).get('rid'), 'Unassigned')
        if room and room.lower() not in light_room.lower():
            continue
        rows.append({
            'room': light_room,
            'name': resource_name(light),
            'state': ('ON' if state.on else 'off') if state else '?',
            'brightness': f"{state.brightness:.0f}%" if state else '',
            'mapped': mapped.get(light['id'], ''),
            'id': light['id'],
        })

    if not rows:
        click.echo(f"No lights found matching room '{room}'")
        return

    rows.sort(key=lambda r: (r['room'], r['name']))
    display_table(rows, [
        {'key': 'room', 'header': 'Room'},
        {'key': 'name', 'header': 'Light'},
        {'key': 'state', 'header': 'State', 'color': 'green'},
        {'key': 'brightness', 'header': 'Bri'},
        {'key': 'mapped', 'header': 'External ID', 'color': 'yellow'},
        {'key': 'id', 'header': 'ID', 'color': 'bright_black'},
    ], f"=== Lights ({len(rows)}) ===", group_key='room')
    click.echo()


@click.command(name='groups')
@click.pass_context
def groups_command(ctx):
    """List rooms and zones (map them with resource type 'group')."""
    config = get_config(ctx)
    bridge, groups = _fetch(config, lambda b: b.get_groups())
    if bridge is None:
        return
    if not groups:
        click.echo("No rooms or zones found on the bridge.")
        return

    mapped = _mapped_ids(config)
    rows = []
    for group in groups:
        grouped = bridge.cache.peek(group.get('grouped_light') or '')
        rows.append({
            'kind': group.get('type', 'room').capitalize(),
            'name': resource_name(group),
            'state': ('ON' if grouped.on else 'off') if grouped else '?',
            'mapped': mapped.get(group['id'], ''),
            'id': group['id'],
        })

    rows.sort(key=lambda r: (r['kind'], r['name']))
    display_table(rows, [
        {'key': 'kind', 'header': 'Type'},
        {'key': 'name', 'header': 'Name'},
        {'key': 'state', 'header': 'State', 'color': 'green'},
        {'key': 'mapped', 'header': 'External ID', 'color': 'yellow'},
        {'key': 'id', 'header': 'ID', 'color': 'bright_black'},
    ], f"=== Groups ({len(rows)}) ===", group_key='kind')
    click.echo()


@click.command(name='scenes')
@click.option('--room', '-r', help='Filter scenes by room or zone name')
@click.pass_context
def scenes_command(ctx, room: str | None):
    """List scenes with the room or zone they belong to."""
    config = get_config(ctx)
    bridge, scenes = _fetch(config, lambda b: b.get_scenes())
    if bridge is None:
        return
    if not scenes:
        click.echo("No scenes found on the bridge.")
        return

    try:
        group_lookup = create_name_lookup(bridge.get_rooms())
        group_lookup.update(create_name_lookup(bridge.get_zones()))
    except BridgeError as e:
        click.secho(f"⚠ Could not fetch rooms: {e}", fg='yellow')
        group_lookup = {}

    mapped = _mapped_ids(config)
    rows = []
    for scene in scenes:
        scene_group = group_lookup.get((scene.get('group') or {}).get('rid'), 'Unknown')
        if room and room.lower() not in scene_group.lower():
            continue
        rows.append({
            'group': scene_group,
            'name': resource_name(scene, 'Unnamed'),
            'mapped': mapped.get(scene['id'], ''),
            'id': scene['id'],
        })

    if not rows:
        click.echo(f"No scenes found matching room '{room}'")
        return

    rows.sort(key=lambda r: (r['group'], r['name']))
    display_table(rows, [
        {'key': 'group', 'header': 'Room/Zone'},
        {'key': 'name', 'header': 'Scene'},
        {'key': 'mapped', 'header': 'External ID', 'color': 'yellow'},
        {'key': 'id', 'header': 'ID', 'color': 'bright_black'},
    ], f"=== Scenes ({len(rows)}) ===", group_key='group')
    click.echo()
