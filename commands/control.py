"""
Control command for running one gateway command from the shell.

Uses the same parser, resolver and bridge calls as the running gateway,
so it is the quickest way to check a mapping before wiring it in Loxone.
"""

import json

import click

from commands.helpers import get_bridge, get_config
from core.context import build_context
from core.errors import BridgeError, GatewayError, ResolutionError
from models.command import parse_message


@click.command()
@click.argument('words', nargs=-1, required=True)
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
def send_command(ctx, words: tuple[str, ...], as_json: bool):
    """Execute one command against the bridge.

    The command uses the Loxone text grammar (SET/SCENE/MOOD/GET) or a
    JSON payload.

    \b
    Examples:
      loxone-hue send SET kitchen ON
      loxone-hue send SET kitchen COLOR '#ff8800'
      loxone-hue send MOOD living 2
      loxone-hue send GET kitchen STATUS
      loxone-hue send '{"target": "kitchen", "action": "set", "params": {"brightness": 40}}'
    """
    config = get_config(ctx)
    bridge = get_bridge(config)
    if bridge is None:
        ctx.exit(1)

    context = build_context(config, bridge=bridge)
    line = ' '.join(words)

    try:
        command = parse_message(line)
        result = context.hub.execute(command)
    except ResolutionError as e:
        click.secho(f"✗ {e}", fg='red')
        click.echo("Use 'mappings' to see configured external ids.")
        click.echo()
        ctx.exit(1)
    except BridgeError as e:
        click.secho(f"✗ Bridge error: {e.technical_message}", fg='red')
        click.echo()
        ctx.exit(1)
    except GatewayError as e:
        click.secho(f"✗ {e}", fg='red')
        click.echo()
        ctx.exit(1)

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.secho(f"✓ {result['action']} {result['target']}", fg='green', nl=False)
    click.echo(f" → {result['resource_type']} {result['resource_id']}")

    state = result.get('state')
    if state:
        on_state = click.style('ON', fg='green') if state['on'] else click.style('OFF', fg='bright_black')
        click.echo(f"  Power:       {on_state}")
        click.echo(f"  Brightness:  {state['brightness']:.0f}%")
        if state.get('colorTemperature'):
            click.echo(f"  Colour temp: {state['colorTemperature']} mirek")
        if state.get('color'):
            x, y = state['color']
            click.echo(f"  Colour xy:   {x:.4f}, {y:.4f}")
        if not state.get('reachable', True):
            click.secho("  Unreachable", fg='yellow')
    click.echo()
