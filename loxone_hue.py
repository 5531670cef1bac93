#!/usr/bin/env python3
"""
Loxone Hue Gateway CLI
Bridge Loxone Miniserver commands to Philips Hue lights, groups and scenes.
"""

import click

from commands.setup import ColouredGroup, help_command, setup_command, configure_command
from commands.serve import serve_command
from commands.control import send_command
from commands.resources import lights_command, groups_command, scenes_command
from commands.mapping import (
    mappings_command,
    map_command,
    unmap_command,
    enable_command,
    disable_command
)
from commands.backup import export_mappings_command, import_mappings_command


@click.group(
    cls=ColouredGroup,
    context_settings={
        'help_option_names': ['-h', '--help'],
        'max_content_width': 999  # Very wide to prevent wrapping on wide terminals
    }
)
@click.option('--config', '-c', 'config_file', type=click.Path(dir_okay=False),
              envvar='LOXONE_HUE_CONFIG', help='Configuration file (default: ~/.loxone_hue/config.json)')
@click.version_option(version='0.1.0', prog_name='Loxone Hue Gateway')
@click.pass_context
def cli(ctx, config_file):
    """Loxone Hue Gateway - Control Philips Hue from a Loxone Miniserver.

Runs a websocket gateway that translates Loxone commands (SET/SCENE/MOOD/GET)
into Hue Bridge API v2 calls and pushes light state changes back to Loxone.

Run 'configure' for first-time setup or 'setup' to check configuration.

Use 'help' for a quick reference of all commands.
Use 'COMMAND -h' or 'COMMAND --help' for detailed help on a specific command."""
    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config_file


# Register setup and help commands
cli.add_command(help_command)
cli.add_command(setup_command, name='setup')
cli.add_command(configure_command, name='configure')

# Register gateway commands
cli.add_command(serve_command, name='serve')
cli.add_command(send_command, name='send')

# Register bridge resource commands
cli.add_command(lights_command)
cli.add_command(groups_command)
cli.add_command(scenes_command)

# Register mapping commands
cli.add_command(mappings_command)
cli.add_command(map_command)
cli.add_command(unmap_command)
cli.add_command(enable_command)
cli.add_command(disable_command)
cli.add_command(export_mappings_command)
cli.add_command(import_mappings_command)


if __name__ == '__main__':
    cli()
