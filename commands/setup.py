"""
Setup and help commands for the Loxone Hue gateway CLI.

Contains custom Click group class for coloured help output and typo suggestions.
"""

from dataclasses import dataclass

import click

from commands.helpers import get_bridge, get_config, get_config_file
from core.config import save_config
from core.errors import BridgeError
from models.utils import find_similar_strings


@dataclass(frozen=True)
class CommandSection:
    """Represents a section in the help command."""
    name: str
    icon: str
    commands: list[tuple[str, str]]


COMMAND_SECTIONS = [
    CommandSection(
        name="GATEWAY",
        icon="🔌",
        commands=[
            ("serve", "Run the gateway (websocket + HTTP command endpoint)"),
            ("send <command>", "Execute one command, e.g. send SET kitchen BRI 50"),
        ]
    ),
    CommandSection(
        name="STATUS & CONFIGURATION",
        icon="📋",
        commands=[
            ("setup", "Show configuration and test the bridge connection"),
            ("configure", "Set bridge IP, application key and server port"),
        ]
    ),
    CommandSection(
        name="BRIDGE RESOURCES",
        icon="💡",
        commands=[
            ("lights", "List lights with state and mapped external id"),
            ("groups", "List rooms and zones"),
            ("scenes", "List scenes"),
        ]
    ),
    CommandSection(
        name="MAPPINGS",
        icon="🔗",
        commands=[
            ("mappings", "List Loxone → Hue mappings"),
            ("map <ext> <type> <id>", "Create a mapping"),
            ("map <ext> scene <id> -m 2", "Map mood 2 of <ext> to a scene"),
            ("unmap <mapping>", "Delete a mapping (by id or external id)"),
            ("enable/disable <mapping>", "Toggle a mapping"),
            ("export-mappings [file]", "Write a mapping backup"),
            ("import-mappings <file>", "Restore a backup (--mode replace|merge)"),
        ]
    ),
]


class ColouredGroup(click.Group):
    """Custom Group class that adds colour to help output and suggests similar commands."""

    def resolve_command(self, ctx, args):
        """Resolve command with suggestions for typos."""
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError as e:
            if 'No such command' in str(e):
                cmd_name = args[0] if args else ''
                suggestions = self._get_suggestions(ctx, cmd_name)

                if suggestions:
                    error_msg = f"Error: No such command '{cmd_name}'.\n\n"
                    error_msg += click.style("Did you mean one of these?\n", fg='yellow')
                    for suggestion in suggestions:
                        error_msg += click.style(f"  • {suggestion}\n", fg='green')
                    raise click.UsageError(error_msg)
            raise

    def _get_suggestions(self, ctx, cmd_name, max_suggestions=3):
        """Get visible command names similar to cmd_name."""
        if not cmd_name:
            return []

        visible = []
        for command in self.list_commands(ctx):
            cmd_obj = self.get_command(ctx, command)
            if cmd_obj and not cmd_obj.hidden:
                visible.append(command)
        return find_similar_strings(cmd_name, visible, limit=max_suggestions)

    def format_usage(self, ctx, formatter):
        """Format the usage line with colour."""
        formatter.write_paragraph()
        formatter.write_text(
            click.style('Usage: ', fg='cyan', bold=True) +
            click.style(f'{ctx.command_path} [OPTIONS] COMMAND [ARGS]...', fg='white')
        )

    def format_commands(self, ctx, formatter):
        """Format commands with colour."""
        commands = []
        for subcommand in self.list_commands(ctx):
            cmd = self.get_command(ctx, subcommand)
            if cmd is None or cmd.hidden:
                continue
            commands.append((subcommand, cmd.get_short_help_str(limit=500)))

        if commands:
            formatter.write_paragraph()
            formatter.write_text(click.style('Commands:', fg='yellow', bold=True))

            max_len = max(max(len(cmd[0]) for cmd in commands), 20)

            with formatter.indentation():
                for subcommand, help_text in commands:
                    formatter.write_text(
                        click.style(subcommand.ljust(max_len), fg='green') + '  ' +
                        click.style(help_text, fg='white', dim=True)
                    )


@click.command(name='help')
def help_command():
    """Display help and common commands."""
    click.echo()
    click.secho("=== Loxone Hue Gateway - Quick Reference ===", fg='cyan', bold=True)
    click.echo()

    for section in COMMAND_SECTIONS:
        click.secho(f"{section.icon} {section.name}", fg='yellow', bold=True)
        for cmd, desc in section.commands:
            click.echo("  ", nl=False)
            click.secho(cmd, fg='green', nl=False)
            click.echo(" " * max(2, 32 - len(cmd)) + desc)
        click.echo()

    click.secho("📖 For detailed help on any command:", fg='cyan')
    click.echo(f"  loxone-hue {click.style('<command> -h', fg='white', bold=True)}")
    click.echo()


@click.command()
@click.option('--bridge-ip', '-i', help='Bridge IP address')
@click.option('--application-key', '-k', help='Application key created when pairing with the bridge')
@click.option('--port', '-p', type=click.IntRange(1, 65535), help='Gateway listen port')
@click.pass_context
def configure_command(ctx, bridge_ip: str | None, application_key: str | None, port: int | None):
    """Store bridge credentials and server settings.

    Values not given as options are prompted for, with the current value
    as default. The application key must already exist on the bridge;
    create one with the Hue app or the bridge's link-button flow.

    \b
    Examples:
      loxone-hue configure
      loxone-hue configure -i 192.168.1.20 -k <application-key>
    """
    config = get_config(ctx, env_overrides=False)
    hue = config['hue']

    if bridge_ip is None:
        bridge_ip = click.prompt("Bridge IP address", default=hue.get('bridge_ip') or None, type=str)
    if application_key is None:
        application_key = click.prompt("Application key", default=hue.get('application_key') or None,
                                       type=str, hide_input=True, show_default=False)
    if port is None:
        port = click.prompt("Gateway port", default=config['server'].get('port', 8080),
                            type=click.IntRange(1, 65535))

    hue['bridge_ip'] = bridge_ip.strip()
    hue['application_key'] = application_key.strip()
    config['server']['port'] = port

    save_config(config, get_config_file(ctx))
    click.secho(f"✓ Configuration saved to {get_config_file(ctx)}", fg='green')
    click.echo()


@click.command()
@click.pass_context
def setup_command(ctx):
    """Show current configuration and test the bridge connection.

    Configuration sources (priority order):
    1. Environment (HUE_BRIDGE_IP, HUE_APPLICATION_KEY)
    2. Configuration file (--config, LOXONE_HUE_CONFIG or ~/.loxone_hue/config.json)
    """
    config = get_config(ctx)
    config_file = get_config_file(ctx)

    click.echo()
    click.secho("=== Gateway Configuration ===", fg='cyan', bold=True)
    click.echo()

    click.echo(click.style("1. Configuration File", fg='cyan', bold=True))
    if config_file.exists():
        click.echo(f"   Status:      {click.style('✓ Available', fg='green')}")
    else:
        click.echo(f"   Status:      {click.style('✗ Not found (using defaults)', fg='yellow')}")
    click.echo(f"   Path:        {config_file}")
    click.echo()

    hue = config['hue']
    click.echo(click.style("2. Hue Bridge", fg='cyan', bold=True))
    click.echo(f"   Bridge IP:   {hue.get('bridge_ip') or click.style('not set', fg='yellow')}")
    key_state = click.style('✓ set', fg='green') if hue.get('application_key') else click.style('✗ not set', fg='yellow')
    click.echo(f"   App key:     {key_state}")
    click.echo()

    server = config['server']
    gateway = config['gateway']
    enabled = sum(1 for m in config.get('mappings', []) if m.get('enabled', True))
    click.echo(click.style("3. Gateway", fg='cyan', bold=True))
    click.echo(f"   Listen:      ws://{server['host']}:{server['port']}/ws")
    click.echo(f"   Mappings:    {len(config.get('mappings', []))} ({enabled} enabled)")
    click.echo(f"   Direct IDs:  {'allowed' if gateway.get('allow_direct_ids') else 'rejected'}")
    click.echo()

    bridge = get_bridge(config)
    if bridge is None:
        return

    click.echo(click.style("Connection Test", fg='cyan', bold=True))
    click.echo("Testing connection to bridge...")
    try:
        info = bridge.get_bridge_info()
    except BridgeError as e:
        click.secho(f"✗ Connection failed: {e}", fg='red', bold=True)
        click.echo()
        click.echo("Check the bridge IP and application key:")
        click.echo(click.style("  loxone-hue configure", fg='green', bold=True))
        click.echo()
        return

    click.secho(f"✓ Successfully connected to bridge at {bridge.bridge_ip}!", fg='green', bold=True)
    click.echo(f"  Bridge ID:  {info.get('bridge_id', 'Unknown')}")
    click.echo()
